"""Source control backends for fetching dependencies.

The set of backends is closed: each one is a single SCMClient record in
SCM_CLIENTS describing how to probe the client version and how to check
out a revision. Adding a backend means adding a record, nothing else.
"""

import logging
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..process_utils import CommandResult, run_command


class SCMClientError(Exception):
    """Raised when an SCM client is missing or older than required."""

    pass


class SCMCommandError(Exception):
    """Raised when an SCM client command exits with a non-zero status."""

    def __init__(self, message: str, result: CommandResult, step: str):
        super().__init__(message)
        self.result = result
        self.step = step


class Backend(Enum):
    """Supported version control systems."""

    HG = "hg"
    GIT = "git"
    BZR = "bzr"
    SVN = "svn"


@dataclass(frozen=True)
class SCMClient:
    """Command line client description for one backend.

    Attributes:
        executable: Client binary name looked up on PATH
        version_regex: Pattern capturing (major, minor) from `<client> --version`
        required_version: Minimum usable (major, minor)
        clone_args: Arguments cloning {url} into {name} without updating the
            working copy, run from the parent directory
        update_args: Arguments moving the working copy to {rev}, run inside it
    """

    executable: str
    version_regex: str
    required_version: Tuple[int, int]
    clone_args: Tuple[str, ...]
    update_args: Tuple[str, ...]

    def clone_command(self, url: str, name: str) -> List[str]:
        return [self.executable] + [a.format(url=url, name=name) for a in self.clone_args]

    def update_command(self, rev: str) -> List[str]:
        return [self.executable] + [a.format(rev=rev) for a in self.update_args]


SCM_CLIENTS: Dict[Backend, SCMClient] = {
    Backend.HG: SCMClient(
        executable="hg",
        version_regex=r"version (\d+)\.(\d+)",
        required_version=(1, 1),
        clone_args=("clone", "-U", "{url}", "{name}"),
        update_args=("update", "{rev}"),
    ),
    Backend.GIT: SCMClient(
        executable="git",
        version_regex=r"git version (\d+)\.(\d+)",
        required_version=(1, 5),
        clone_args=("clone", "-n", "{url}", "{name}"),
        update_args=("checkout", "{rev}"),
    ),
    Backend.BZR: SCMClient(
        executable="bzr",
        version_regex=r"Bazaar \(bzr\) (\d+)\.(\d+)",
        required_version=(2, 0),
        clone_args=("branch", "{url}", "{name}"),
        update_args=("update", "-r", "{rev}"),
    ),
    Backend.SVN: SCMClient(
        executable="svn",
        version_regex=r"svn, version (\d+)\.(\d+)",
        required_version=(1, 6),
        clone_args=("checkout", "{url}", "{name}"),
        update_args=("update", "-r", "{rev}"),
    ),
}


@dataclass(frozen=True)
class SourceSpec:
    """Where to fetch a dependency from."""

    backend: Backend
    url: str
    revision: str

    @property
    def client(self) -> SCMClient:
        return SCM_CLIENTS[self.backend]

    @classmethod
    def parse(cls, value: Any) -> "SourceSpec":
        """Build a SourceSpec from a (backend, url, revision) triple.

        Args:
            value: SourceSpec or triple whose backend is a Backend or its name

        Returns:
            SourceSpec

        Raises:
            ValueError: If the value is not a triple of strings or names an
                unknown backend
        """
        if isinstance(value, SourceSpec):
            return value
        if not isinstance(value, (tuple, list)) or len(value) != 3:
            raise ValueError(f"Source must be a (backend, url, revision) triple, got {value!r}")

        backend, url, revision = value
        if not isinstance(backend, Backend):
            try:
                backend = Backend(str(backend).lower())
            except ValueError:
                known = ", ".join(b.value for b in Backend)
                raise ValueError(f"Unknown source backend {backend!r} (expected one of: {known})")
        if not isinstance(url, str) or not isinstance(revision, str):
            raise ValueError(f"Source url and revision must be strings, got {value!r}")
        return cls(backend=backend, url=url, revision=revision)

    def __str__(self) -> str:
        return f"{self.backend.value} {self.url} {self.revision}"


class VersionProbe:
    """Determines whether an SCM client is installed and recent enough."""

    def client_version(self, backend: Backend) -> Optional[Tuple[int, int]]:
        """Run `<client> --version` and parse (major, minor).

        Args:
            backend: Backend to probe

        Returns:
            Version tuple, or None when the client is not installed or its
            output does not match the expected pattern
        """
        client = SCM_CLIENTS[backend]
        executable = shutil.which(client.executable)
        if executable is None:
            return None

        result = run_command([executable, "--version"])
        match = re.search(client.version_regex, result.stdout + result.stderr)
        if not match:
            return None
        return int(match.group(1)), int(match.group(2))

    def is_usable(self, backend: Backend) -> bool:
        version = self.client_version(backend)
        return version is not None and version >= SCM_CLIENTS[backend].required_version

    def require(self, source: SourceSpec) -> None:
        """Ensure the client for a source is usable.

        Raises:
            SCMClientError: If the client is missing or below its minimum version
        """
        version = self.client_version(source.backend)
        required = source.client.required_version
        if version is None:
            raise SCMClientError(
                f"No command line interface available to process {source.backend.value} "
                + f"source {source.url} ({source.client.executable} not found)"
            )
        if version < required:
            raise SCMClientError(
                f"Kiln requires version {required[0]}.{required[1]} or higher of "
                + f"{source.client.executable} (found {version[0]}.{version[1]})"
            )


def checkout(source: SourceSpec, target_dir: Path) -> None:
    """Check out a source into target_dir.

    Runs the clone step from the parent directory, then the revision step
    inside the new working copy. Both are blocking.

    Args:
        source: What to fetch
        target_dir: Directory to create

    Raises:
        SCMCommandError: If either step fails; .step is "clone" or "update"
    """
    target_dir = Path(target_dir)
    target_dir.parent.mkdir(parents=True, exist_ok=True)
    client = source.client

    clone = run_command(client.clone_command(source.url, target_dir.name), cwd=target_dir.parent)
    if not clone.success:
        raise SCMCommandError(
            f"{' '.join(clone.command)} failed with error: {clone.returncode}\n{clone.output}",
            clone,
            "clone",
        )

    if not target_dir.is_dir():
        logging.warning(f"{' '.join(clone.command)} succeeded but {target_dir} was not created")
        return

    update = run_command(client.update_command(source.revision), cwd=target_dir)
    if not update.success:
        raise SCMCommandError(
            f"{' '.join(update.command)} failed with error: {update.returncode}\n{update.output}",
            update,
            "update",
        )
