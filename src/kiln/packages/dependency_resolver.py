"""Dependency resolution for Kiln projects.

This module classifies a project's declared dependencies as available or
missing, fetches missing ones that declare a source, and reports missing
ones in strict verification mode.

Lookup order for each dependency:
1. The system library roots (KILN_LIBS)
2. The project-local deps directory (<base_dir>/deps/<app>)

A dependency found in neither place is missing, with the project-local
directory recorded as the target a fetch would create.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from .code_path import CodePath
from .dependency import MATCH_ANY, AvailabilityChecker, Dependency
from .scm import SourceSpec
from .source_fetcher import SourceFetcher

LIBS_ENV = "KILN_LIBS"
DEPS_DIR_NAME = "deps"

# <app>-<version> directories; the version must start with a digit
VERSIONED_SUFFIX = re.compile(r"-(\d.*)$")


class DependencyConfigError(Exception):
    """Raised for a malformed dependency declaration."""

    pass


class DependencyResolutionError(Exception):
    """Raised when required dependencies are missing.

    Attributes:
        missing: Every missing dependency, in declaration order
    """

    def __init__(self, missing: List[Dependency]):
        self.missing = missing
        lines = [f"Dependency not available: {dep}" for dep in missing]
        super().__init__("\n".join(lines))


@dataclass
class FetchResult:
    """Outcome of a fetch phase.

    Attributes:
        fetched: Dependencies checked out (or verified in place) this phase
        unfetchable: Missing dependencies that declare no source
    """

    fetched: List[Dependency] = field(default_factory=list)
    unfetchable: List[Dependency] = field(default_factory=list)

    @property
    def fetched_dirs(self) -> List[Path]:
        return [dep.dir for dep in self.fetched if dep.dir is not None]


def version_key(version: str) -> Tuple[Tuple[int, Any], ...]:
    """Sort key that compares numeric parts as numbers, so 1.9 < 1.10."""
    return tuple(
        (1, int(part)) if part.isdigit() else (0, part)
        for part in re.split(r"[.\-_+]", version)
    )


def default_lib_roots() -> List[Path]:
    """Library roots from the KILN_LIBS environment variable."""
    value = os.environ.get(LIBS_ENV, "")
    return [Path(p) for p in value.split(os.pathsep) if p]


class DependencyResolver:
    """Resolves dependency declarations against installed packages.

    Example usage:
        resolver = DependencyResolver(base_dir=Path("."))
        dirs = resolver.preprocess(config.get_deps())
        resolver.check_deps(config.get_deps())
    """

    def __init__(
        self,
        base_dir: Path,
        lib_roots: Optional[Sequence[Path]] = None,
        code_path: Optional[CodePath] = None,
        checker: Optional[AvailabilityChecker] = None,
        fetcher: Optional[SourceFetcher] = None,
        show_progress: bool = True,
    ):
        """Initialize dependency resolver.

        Args:
            base_dir: Top-level project directory; fetched dependencies go to
                base_dir/deps
            lib_roots: System library roots (defaults to KILN_LIBS)
            code_path: Search path that available packages are appended to
            checker: Name/version verification
            fetcher: Source fetcher for the fetch phase
            show_progress: Whether to print progress messages
        """
        self.base_dir = Path(base_dir)
        self.lib_roots = [Path(p) for p in lib_roots] if lib_roots is not None else default_lib_roots()
        self.code_path = code_path if code_path is not None else CodePath()
        self.checker = checker or AvailabilityChecker()
        self.fetcher = fetcher or SourceFetcher(
            self.code_path, checker=self.checker, show_progress=show_progress
        )
        self.show_progress = show_progress

    @property
    def deps_dir(self) -> Path:
        return self.base_dir / DEPS_DIR_NAME

    def normalize(self, decl: Any) -> Dependency:
        """Convert a declaration to a Dependency.

        Accepted shapes: 'app', ('app',), ('app', regex) and
        ('app', regex, source) where source is a SourceSpec, a
        (backend, url, revision) triple or None.

        Raises:
            DependencyConfigError: For any other shape
        """
        if isinstance(decl, str):
            decl = (decl,)

        if not isinstance(decl, (tuple, list)) or not 1 <= len(decl) <= 3:
            raise self._invalid(decl)

        app = decl[0]
        vsn_regex = decl[1] if len(decl) > 1 else MATCH_ANY
        raw_source = decl[2] if len(decl) > 2 else None

        if not isinstance(app, str) or not app or not isinstance(vsn_regex, str):
            raise self._invalid(decl)

        try:
            re.compile(vsn_regex)
        except re.error as e:
            raise DependencyConfigError(
                f"Invalid version regex {vsn_regex!r} for dependency {app}: {e}"
            ) from e

        source = None
        if raw_source is not None:
            try:
                source = SourceSpec.parse(raw_source)
            except ValueError as e:
                raise DependencyConfigError(
                    f"Invalid dependency specification {decl!r} in {self.base_dir}: {e}"
                ) from e

        return Dependency(app=app, vsn_regex=vsn_regex, source=source)

    def find_deps(self, decls: Sequence[Any]) -> Tuple[List[Dependency], List[Dependency]]:
        """Classify declarations as available or missing.

        Every declaration is normalized before any probing, so a malformed
        one aborts the whole pass.

        Args:
            decls: Dependency declarations in declaration order

        Returns:
            Tuple of (available, missing), both in declaration order

        Raises:
            DependencyConfigError: If any declaration is malformed
        """
        deps = [self.normalize(decl) for decl in decls]

        available: List[Dependency] = []
        missing: List[Dependency] = []
        for dep in deps:
            installed = self._find_installed(dep)
            if installed is not None:
                dep.dir = installed
                available.append(dep)
                continue

            dep.dir = self.deps_dir / dep.app
            if self.checker.is_app_available(dep.app, dep.vsn_regex, dep.dir):
                available.append(dep)
            else:
                missing.append(dep)

        return available, missing

    def preprocess(self, decls: Sequence[Any]) -> List[Path]:
        """Add available dependencies to the code path.

        Args:
            decls: Dependency declarations

        Returns:
            Directories of the available dependencies, in order
        """
        available, missing = self.find_deps(decls)
        logging.debug(f"Available deps: {[str(d) for d in available]}")
        logging.debug(f"Missing deps  : {[str(d) for d in missing]}")

        dirs = [dep.dir for dep in available if dep.dir is not None]
        for dep_dir in dirs:
            self.code_path.add(dep_dir)
        return dirs

    def check_deps(self, decls: Sequence[Any]) -> List[Dependency]:
        """Verify that every dependency is available, without fetching.

        Returns:
            The available dependencies

        Raises:
            DependencyResolutionError: Listing every missing dependency
        """
        available, missing = self.find_deps(decls)
        if missing:
            raise DependencyResolutionError(missing)
        return available

    def get_deps(self, decls: Sequence[Any]) -> FetchResult:
        """Fetch every missing dependency that declares a source.

        Returns:
            FetchResult to hand to collect() once the fetched packages'
            own descriptors have been processed

        Raises:
            SourceFetchError: If a fetch fails
            SCMClientError: If a required SCM client is unusable
        """
        _available, missing = self.find_deps(decls)

        result = FetchResult()
        for dep in missing:
            if dep.source is None:
                logging.warning(f"Dependency {dep} is missing and declares no source")
                result.unfetchable.append(dep)
                continue
            result.fetched.append(self.fetcher.use_source(dep))
        return result

    @staticmethod
    def collect(result: Optional[FetchResult]) -> List[Path]:
        """Return the directories fetched by a previous get_deps call.

        Args:
            result: Value returned by get_deps, or None when no fetch ran

        Returns:
            Fetched directories; empty when nothing was fetched
        """
        if result is None:
            return []
        return result.fetched_dirs

    def _find_installed(self, dep: Dependency) -> Optional[Path]:
        """First system-installed directory matching the dependency's name and version."""
        for candidate in self._installed_dirs(dep.app):
            if self.checker.is_app_available(dep.app, dep.vsn_regex, candidate):
                return candidate
        return None

    def _installed_dirs(self, app: str) -> Iterator[Path]:
        """Candidate directories in lookup order.

        Roots are searched in order. Within a root, <app> comes first, then
        <app>-<version> directories from the highest version down.
        """
        for root in self.lib_roots:
            exact = root / app
            if exact.is_dir():
                yield exact

            versioned = []
            for path in root.glob(f"{app}-*"):
                match = VERSIONED_SUFFIX.match(path.name[len(app):])
                if match and path.is_dir():
                    versioned.append((version_key(match.group(1)), path))
            for _key, path in sorted(versioned, key=lambda item: item[0], reverse=True):
                yield path

    def _invalid(self, decl: Any) -> DependencyConfigError:
        return DependencyConfigError(
            f"Invalid dependency specification {decl!r} in {self.base_dir}"
        )
