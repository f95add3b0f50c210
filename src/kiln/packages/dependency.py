"""Dependency records and the availability check shared by resolution and fetching."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .app_metadata import AppMetadataReader
from .scm import SourceSpec

MATCH_ANY = ".*"


@dataclass
class Dependency:
    """A declared dependency.

    Attributes:
        app: Package identifier
        vsn_regex: Regular expression the installed version must match
        source: Where to fetch it from; None means it must already be installed
        dir: Directory the package was found in, or would be fetched to.
            Assigned during resolution.
    """

    app: str
    vsn_regex: str = MATCH_ANY
    source: Optional[SourceSpec] = None
    dir: Optional[Path] = None

    def __str__(self) -> str:
        source = f" ({self.source})" if self.source else ""
        return f"{self.app}-{self.vsn_regex}{source}"


class AvailabilityChecker:
    """Decides whether a directory holds an acceptable version of a package.

    A directory qualifies only if it is a package directory whose declared
    name equals the dependency identifier and whose declared version
    matches the requested regex.
    """

    def __init__(self, metadata: Optional[AppMetadataReader] = None):
        self.metadata = metadata or AppMetadataReader()

    def is_app_available(self, app: str, vsn_regex: str, path: Path) -> bool:
        """Check a candidate directory for a package.

        Args:
            app: Expected package name
            vsn_regex: Regex searched in the declared version
            path: Candidate directory

        Returns:
            True when name and version both verify
        """
        if not Path(path).is_dir():
            logging.debug(f"No directory at {path} for {app}")
            return False

        is_app, manifest = self.metadata.is_app_dir(path)
        if not is_app or manifest is None:
            logging.warning(
                f"Expected {path} to be a package dir (containing a kiln.ini [package] section), "
                + "but none was found"
            )
            return False

        name = self.metadata.app_name(manifest)
        if name != app:
            logging.warning(f"{manifest} has package name {name!r}; expected {app!r}")
            return False

        vsn = self.metadata.app_vsn(manifest)
        logging.info(f"Looking for {app}-{vsn_regex} ; found {name}-{vsn} at {path}")
        if re.search(vsn_regex, vsn) is None:
            logging.warning(f"{manifest} has version {vsn!r}; requested regex was {vsn_regex}")
            return False
        return True

    def check(self, dep: Dependency) -> bool:
        """Check a dependency against its recorded directory."""
        if dep.dir is None:
            return False
        return self.is_app_available(dep.app, dep.vsn_regex, dep.dir)
