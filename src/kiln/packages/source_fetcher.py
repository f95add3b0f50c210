"""Fetching dependencies from source control.

SourceFetcher makes a missing dependency available by checking it out
into its target directory and verifying the result with the same name
and version check used during resolution.
"""

import logging
from pathlib import Path
from typing import Optional

from ..file_utils import safe_rmtree
from .code_path import CodePath
from .dependency import AvailabilityChecker, Dependency
from .scm import SCMCommandError, SourceSpec, VersionProbe, checkout


class SourceFetchError(Exception):
    """Raised when a dependency cannot be acquired from its source."""

    pass


class SourceFetcher:
    """Checks out dependencies with bounded retry.

    Example usage:
        fetcher = SourceFetcher(code_path)
        dep = fetcher.use_source(dep)
        print(f"{dep.app} available at {dep.dir}")
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        code_path: CodePath,
        checker: Optional[AvailabilityChecker] = None,
        probe: Optional[VersionProbe] = None,
        max_attempts: int = MAX_ATTEMPTS,
        show_progress: bool = True,
    ):
        """Initialize source fetcher.

        Args:
            code_path: Search path that fetched packages are added to
            checker: Name/version verification
            probe: SCM client version probe
            max_attempts: Number of checkout attempts before giving up
            show_progress: Whether to print progress messages
        """
        self.code_path = code_path
        self.checker = checker or AvailabilityChecker()
        self.probe = probe or VersionProbe()
        self.max_attempts = max_attempts
        self.show_progress = show_progress

    def use_source(self, dep: Dependency) -> Dependency:
        """Ensure a dependency is present in its target directory.

        An existing target directory is only verified, never re-fetched.
        Otherwise the source is checked out until the directory exists or
        the attempt budget runs out.

        Args:
            dep: Dependency with dir and source set

        Returns:
            The same dependency, now verified and on the code path

        Raises:
            SourceFetchError: If the existing directory does not match, the
                revision step fails, or every attempt left no directory
            SCMClientError: If the SCM client is unusable
        """
        target, source = dep.dir, dep.source
        if target is None or source is None:
            raise SourceFetchError(f"Dependency {dep.app} has no target directory or source")

        attempts = 0
        while not target.is_dir():
            if attempts == self.max_attempts:
                raise SourceFetchError(
                    f"Failed to acquire source from {source} after {self.max_attempts} tries"
                )
            attempts += 1

            if self.show_progress:
                print(f"Pulling {dep.app} from {source}")
            self.probe.require(source)
            self._download(dep.app, source, target)

        if not self.checker.check(dep):
            raise SourceFetchError(
                f"Dependency dir {target} does not satisfy version regex {dep.vsn_regex}"
            )

        self.code_path.add(target)
        return dep

    def _download(self, app: str, source: SourceSpec, target: Path) -> None:
        try:
            checkout(source, target)
        except SCMCommandError as e:
            if e.step != "clone":
                raise SourceFetchError(f"Failed to check out {app}: {e}") from e
            logging.warning(f"Fetching {app} failed: {e}")
            safe_rmtree(target)
