"""Package metadata lookup.

A kiln package directory is a directory holding a kiln.ini whose
[package] section declares the package name. This module answers whether
a directory is such a package and what name and version it declares.
"""

from pathlib import Path
from typing import Optional, Tuple

from ..config import DESCRIPTOR_NAME, ProjectConfig, ProjectConfigError


class AppMetadataReader:
    """Reads package identity from kiln.ini manifests."""

    def is_app_dir(self, path: Path) -> Tuple[bool, Optional[Path]]:
        """Check whether a directory is a package directory.

        Args:
            path: Candidate directory

        Returns:
            Tuple of (is_package, manifest_path); manifest_path is None when
            the directory is not a package
        """
        manifest = Path(path) / DESCRIPTOR_NAME
        if not manifest.is_file():
            return False, None

        try:
            name = ProjectConfig(manifest).package_name
        except ProjectConfigError:
            return False, None

        if not name:
            return False, None
        return True, manifest

    def app_name(self, manifest: Path) -> Optional[str]:
        return ProjectConfig(manifest).package_name

    def app_vsn(self, manifest: Path) -> str:
        return ProjectConfig(manifest).package_version or ""
