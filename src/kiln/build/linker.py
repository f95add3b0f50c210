"""
Shared object linker for port builds.

This module decides which link specs need relinking and runs
$CC <objects> $LDFLAGS $DRV_LDFLAGS -o <output> for them.
"""

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, List, Mapping, Optional

from ..config import LinkSpec
from ..file_utils import last_modified
from ..process_utils import run_command
from .environment import render

LINK_TEMPLATE = "$CC"
LINK_FLAGS_TEMPLATE = "$LDFLAGS $DRV_LDFLAGS"
DEFAULT_OUTPUT_DIR = "priv"


class LinkerError(Exception):
    """Raised when linking fails."""

    pass


@dataclass
class LinkResult:
    """Result of processing one link spec."""

    output: Path
    linked: bool
    stdout: str = ""
    stderr: str = ""


def default_link_spec(package_name: str, objects: List[Path]) -> LinkSpec:
    """
    Link spec used when a project declares none.

    Args:
        package_name: Declared package name
        objects: Every object file of the project

    Returns:
        LinkSpec for priv/<name>_drv.so
    """
    return LinkSpec.create(Path(DEFAULT_OUTPUT_DIR) / f"{package_name}_drv.so", objects)


class Linker:
    """
    Links object files into shared objects, skipping up-to-date outputs.

    Paths in link specs are relative to the project directory.
    """

    def __init__(self, project_dir: Path, env: Mapping[str, str], show_progress: bool = True):
        """
        Initialize linker.

        Args:
            project_dir: Directory the link command runs in
            env: Composed port environment
            show_progress: Whether to print progress messages
        """
        self.project_dir = Path(project_dir)
        self.env = dict(env)
        self.show_progress = show_progress

    def needs_link(self, output: Path, new_objects: Collection[Path]) -> bool:
        """
        Decide whether an output must be relinked.

        Args:
            output: Shared object path
            new_objects: Objects of this output compiled during this run

        Returns:
            True if the output does not exist, or if the newest freshly
            compiled object is at least as new as the output
        """
        output_mtime = last_modified(self.project_dir / output)
        if output_mtime == 0:
            logging.debug(f"Last mod is 0 on {output}")
            return True
        if not new_objects:
            return False

        newest = max(last_modified(self.project_dir / obj) for obj in new_objects)
        logging.debug(f"Checking {newest} >= {output_mtime}")
        return newest >= output_mtime

    def build_link_command(self, spec: LinkSpec) -> List[str]:
        return (
            shlex.split(render(LINK_TEMPLATE, self.env))
            + [str(obj) for obj in spec.objects]
            + shlex.split(render(LINK_FLAGS_TEMPLATE, self.env))
            + ['-o', str(spec.output)]
        )

    def link(self, spec: LinkSpec, fresh_objects: Collection[Path]) -> LinkResult:
        """
        Link one spec if needed.

        Args:
            spec: Output and its contributing objects
            fresh_objects: Every object compiled during this run

        Returns:
            LinkResult; linked is False when the output was up to date

        Raises:
            LinkerError: If the link command fails
        """
        fresh = set(fresh_objects)
        new_objects = [obj for obj in spec.objects if obj in fresh]

        if not self.needs_link(spec.output, new_objects):
            logging.info(f"Skipping relink of {spec.output}")
            return LinkResult(output=spec.output, linked=False)

        (self.project_dir / spec.output).parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_link_command(spec)
        if self.show_progress:
            print(f"Linking {spec.output}")
        logging.info(f"Link command: {' '.join(cmd)}")

        result = run_command(cmd, cwd=self.project_dir, env=self.env)
        if not result.success:
            raise LinkerError(
                f"Linking {spec.output} failed (exit {result.returncode})\n{result.output}"
            )
        return LinkResult(output=spec.output, linked=True, stdout=result.stdout, stderr=result.stderr)

    def link_all(self, specs: List[LinkSpec], fresh_objects: Collection[Path]) -> List[LinkResult]:
        """Process every link spec in order; the first failure aborts."""
        return [self.link(spec, fresh_objects) for spec in specs]

    @staticmethod
    def outputs(specs: Optional[List[LinkSpec]]) -> List[Path]:
        return [spec.output for spec in specs or []]
