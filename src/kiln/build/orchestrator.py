"""
Build orchestration for Kiln projects.

This module coordinates the project-level commands:
- check-deps: verify that every declared dependency is available
- get-deps: fetch missing dependencies, then the dependencies they declare
- compile: build project-local dependencies first, then the project's port
- clean: delete port artifacts and run the cleanup script

Dependencies are shared by the whole tree: every fetched package lands in
the top-level project's deps directory, and each package is processed
once even when several packages depend on it.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set

from ..config import DESCRIPTOR_NAME, EnvironmentConfigError, ProjectConfig, ProjectConfigError
from ..packages import (
    CodePath,
    Dependency,
    DependencyConfigError,
    DependencyResolutionError,
    DependencyResolver,
    SCMClientError,
    SourceFetchError,
)
from .compilation_executor import CompilationError
from .environment import EnvironmentExpansionError
from .linker import LinkerError
from .port_compiler import PortBuildResult, PortCompiler

# Failures reported through BuildResult instead of propagating
BUILD_ERRORS = (
    ProjectConfigError,
    DependencyConfigError,
    DependencyResolutionError,
    SCMClientError,
    SourceFetchError,
    EnvironmentConfigError,
    EnvironmentExpansionError,
    CompilationError,
    LinkerError,
)


@dataclass
class BuildResult:
    """Result of a project-level command."""

    success: bool
    message: str
    build_time: float = 0.0
    compiled: List[Path] = field(default_factory=list)
    linked: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    deleted: List[Path] = field(default_factory=list)
    fetched: List[Dependency] = field(default_factory=list)
    projects: List[Path] = field(default_factory=list)


class BuildOrchestrator:
    """
    Runs Kiln commands over a project and its dependency tree.

    Example usage:
        orchestrator = BuildOrchestrator(jobs=4)
        result = orchestrator.compile(Path("."))
        if result.success:
            print(f"Compiled {len(result.compiled)} sources")
    """

    def __init__(
        self,
        jobs: int = 1,
        lib_roots: Optional[Sequence[Path]] = None,
        verbose: bool = False,
        show_progress: bool = True,
    ):
        """
        Initialize build orchestrator.

        Args:
            jobs: Parallel compilations per project
            lib_roots: System library roots (defaults to KILN_LIBS)
            verbose: Enable verbose output
            show_progress: Whether to print progress messages
        """
        self.jobs = jobs
        self.lib_roots = lib_roots
        self.verbose = verbose
        self.show_progress = show_progress

    def check_deps(self, project_dir: Path) -> BuildResult:
        """
        Verify every dependency of the project tree without fetching.

        Args:
            project_dir: Top-level project directory

        Returns:
            BuildResult; on failure the message lists every missing dependency
        """
        return self._run(project_dir, self._check_tree, "All dependencies available")

    def get_deps(self, project_dir: Path) -> BuildResult:
        """
        Fetch missing dependencies, transitively.

        Each fetched package's own descriptor is processed in turn, so
        dependencies of dependencies are fetched into the same deps directory.

        Args:
            project_dir: Top-level project directory

        Returns:
            BuildResult with the fetched dependencies
        """
        return self._run(project_dir, self._fetch_tree, "Dependencies up to date")

    def compile(self, project_dir: Path) -> BuildResult:
        """
        Build the project tree.

        Project-local dependencies are built before the projects that
        depend on them; system-installed packages are used as they are.

        Args:
            project_dir: Top-level project directory

        Returns:
            BuildResult listing compiled sources and linked/skipped outputs
        """
        return self._run(project_dir, self._build_tree, "Build successful")

    def clean(self, project_dir: Path) -> BuildResult:
        """
        Delete the project's port artifacts and run its cleanup script.

        Args:
            project_dir: Project directory

        Returns:
            BuildResult listing deleted files
        """
        return self._run(project_dir, self._clean_project, "Clean complete")

    def _check_tree(self, top: Path, result: BuildResult) -> None:
        def check(project: Path, config: ProjectConfig, resolver: DependencyResolver) -> None:
            resolver.check_deps(config.get_deps())

        self._walk(top, result, check)

    def _build_tree(self, top: Path, result: BuildResult) -> None:
        def build(project: Path, config: ProjectConfig, resolver: DependencyResolver) -> None:
            resolver.check_deps(config.get_deps())
            if self.show_progress:
                print(f"==> {config.package_name or project.name} ({project})")
            compiler = PortCompiler(project, jobs=self.jobs, show_progress=self.show_progress)
            self._merge(result, compiler.compile(config, code_path=resolver.code_path))

        self._walk(top, result, build)

    def _fetch_tree(self, top: Path, result: BuildResult) -> None:
        resolver = self._resolver(top)
        pending: List[Path] = [top]
        visited: Set[Path] = set()

        while pending:
            project = pending.pop(0)
            if project in visited:
                continue
            visited.add(project)
            result.projects.append(project)

            decls = ProjectConfig.load(project).get_deps()

            # Local packages already present may still miss their own deps
            local = [d for d in resolver.preprocess(decls) if self._is_local(resolver, d)]
            fetch_result = resolver.get_deps(decls)
            if fetch_result.unfetchable:
                raise DependencyResolutionError(fetch_result.unfetchable)

            result.fetched.extend(fetch_result.fetched)
            pending.extend(local + DependencyResolver.collect(fetch_result))

        if self.show_progress and result.fetched:
            print(f"Fetched {len(result.fetched)} dependencies")

    def _clean_project(self, top: Path, result: BuildResult) -> None:
        compiler = PortCompiler(top, jobs=self.jobs, show_progress=self.show_progress)
        self._merge(result, compiler.clean(ProjectConfig.load(top)))
        result.projects.append(top)

    def _walk(
        self,
        top: Path,
        result: BuildResult,
        action: Callable[[Path, ProjectConfig, DependencyResolver], None],
    ) -> None:
        """Apply an action to every project-local package, dependencies first."""
        resolver = self._resolver(top)
        visited: Set[Path] = set()

        def visit(project: Path) -> None:
            visited.add(project)
            config = ProjectConfig.load(project)
            for dep_dir in resolver.preprocess(config.get_deps()):
                if self._is_local(resolver, dep_dir) and dep_dir not in visited:
                    visit(dep_dir)
            action(project, config, resolver)
            result.projects.append(project)

        visit(top)

    def _run(
        self,
        project_dir: Path,
        body: Callable[[Path, BuildResult], None],
        success_message: str,
    ) -> BuildResult:
        start_time = time.time()
        top = Path(project_dir).resolve()
        result = BuildResult(success=False, message="")

        if not (top / DESCRIPTOR_NAME).exists():
            result.message = f"{DESCRIPTOR_NAME} not found in {top}"
            return result

        try:
            body(top, result)
        except BUILD_ERRORS as e:
            logging.debug(f"{type(e).__name__}: {e}")
            result.message = str(e)
        else:
            result.success = True
            result.message = success_message

        result.build_time = time.time() - start_time
        return result

    def _resolver(self, top: Path) -> DependencyResolver:
        return DependencyResolver(
            base_dir=top,
            lib_roots=self.lib_roots,
            code_path=CodePath(),
            show_progress=self.show_progress,
        )

    @staticmethod
    def _is_local(resolver: DependencyResolver, dep_dir: Path) -> bool:
        return Path(dep_dir).parent == resolver.deps_dir

    @staticmethod
    def _merge(result: BuildResult, port: PortBuildResult) -> None:
        result.compiled.extend(port.compiled)
        result.linked.extend(port.linked)
        result.skipped.extend(port.skipped)
        result.deleted.extend(port.deleted)
