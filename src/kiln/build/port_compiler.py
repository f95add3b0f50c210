"""
Incremental port compilation.

This module builds the native part of a project: it expands the source
patterns, compiles stale sources, and relinks the shared objects whose
inputs changed. Timestamps are the only state; nothing is recorded
between runs.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from tqdm import tqdm

from ..config import LinkSpec, ProjectConfig, ProjectConfigError
from ..file_utils import delete_each, last_modified
from ..packages.code_path import CodePath
from .compilation_executor import CompilationExecutor
from .environment import EnvironmentComposer
from .linker import Linker, default_link_spec
from .source_scanner import SourceScanner


@dataclass
class PortBuildResult:
    """Outcome of a port build or clean."""

    compiled: List[Path] = field(default_factory=list)
    linked: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    deleted: List[Path] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.compiled and not self.linked


class PortCompiler:
    """
    Compiles and links a project's port.

    Example usage:
        compiler = PortCompiler(Path("."), jobs=4)
        result = compiler.compile(ProjectConfig.load(Path(".")))
        print(f"Compiled {len(result.compiled)} sources")
    """

    def __init__(
        self,
        project_dir: Path,
        jobs: int = 1,
        composer: Optional[EnvironmentComposer] = None,
        show_progress: bool = True,
    ):
        """
        Initialize port compiler.

        Args:
            project_dir: Project root; sources and artifacts are relative to it
            jobs: Number of parallel compilations
            composer: Environment composer (defaults to the current platform)
            show_progress: Whether to print progress messages
        """
        self.project_dir = Path(project_dir)
        self.jobs = max(1, jobs)
        self.composer = composer or EnvironmentComposer()
        self.show_progress = show_progress
        self.scanner = SourceScanner(self.project_dir)

    def compose_env(
        self,
        config: ProjectConfig,
        code_path: Optional[CodePath] = None,
        process_env: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """
        Compose the port environment for a project.

        The code path is exported through the process layer so that hook
        scripts and overrides can reference $KILN_CODE_PATH.
        """
        environ = dict(os.environ if process_env is None else process_env)
        if code_path is not None:
            environ.update(code_path.to_environ())
        return self.composer.compose(config.get_port_envs(), process_env=environ)

    def compile(
        self,
        config: ProjectConfig,
        code_path: Optional[CodePath] = None,
        process_env: Optional[Mapping[str, str]] = None,
    ) -> PortBuildResult:
        """
        Compile stale sources and relink changed outputs.

        Args:
            config: Project descriptor
            code_path: Dependency directories to export to the build
            process_env: Process environment layer (defaults to os.environ)

        Returns:
            PortBuildResult listing compiled sources, linked and skipped outputs

        Raises:
            ProjectConfigError: If the default link spec needs a package name
                that is not declared
            EnvironmentConfigError: If an environment entry is malformed
            EnvironmentExpansionError: If variable references do not converge
            CompilationError: If the pre-build script or a compilation fails
            LinkerError: If linking fails
        """
        result = PortBuildResult()

        sources = self.scanner.expand_sources(config.get_port_sources())
        if not sources:
            logging.info(f"No port sources in {self.project_dir}")
            return result

        env = self.compose_env(config, code_path, process_env)
        executor = CompilationExecutor(self.project_dir, env, self.show_progress)

        self._run_pre_script(config, executor, env)

        stale = self._stale_sources(sources)
        result.compiled = self._compile_all(executor, stale)
        fresh = {SourceScanner.object_for(s) for s in result.compiled}

        objects = SourceScanner.expand_objects(sources)
        specs = self.link_specs(config, objects)

        linker = Linker(self.project_dir, env, self.show_progress)
        for link_result in linker.link_all(specs, fresh):
            if link_result.linked:
                result.linked.append(link_result.output)
            else:
                result.skipped.append(link_result.output)
        return result

    def clean(self, config: ProjectConfig, process_env: Optional[Mapping[str, str]] = None) -> PortBuildResult:
        """
        Delete every object and output artifact, then run the cleanup script.

        Output paths come from link_specs, as in compile.

        Raises:
            ProjectConfigError: If the default link spec needs a package name
            CompilationError: If the cleanup script fails
        """
        sources = self.scanner.expand_sources(config.get_port_sources())
        objects = SourceScanner.expand_objects(sources)
        # Without sources compile links nothing, so there is no default output either
        if objects or config.get_so_specs() is not None:
            specs = self.link_specs(config, objects)
        else:
            specs = []

        targets = [self.project_dir / p for p in objects + Linker.outputs(specs)]
        result = PortBuildResult(deleted=delete_each(targets))
        for path in result.deleted:
            logging.debug(f"Deleted {path}")

        script = config.get_cleanup_script()
        if script:
            environ = dict(os.environ if process_env is None else process_env)
            CompilationExecutor(self.project_dir, environ, self.show_progress).run_script(script, environ)
        return result

    def link_specs(self, config: ProjectConfig, objects: List[Path]) -> List[LinkSpec]:
        """
        Explicit link specs, or the default one when none are declared.

        Raises:
            ProjectConfigError: If the default is needed and the package has no name
        """
        specs = config.get_so_specs()
        if specs is not None:
            return specs

        name = config.package_name
        if not name:
            raise ProjectConfigError(
                f"Cannot derive the default shared object name: no [package] name in {config.ini_path}"
            )
        return [default_link_spec(name, objects)]

    def needs_compile(self, source: Path) -> bool:
        """A source is stale when its object is missing or strictly older."""
        obj = SourceScanner.object_for(source)
        return last_modified(self.project_dir / obj) < last_modified(self.project_dir / source)

    def _stale_sources(self, sources: List[Path]) -> List[Path]:
        stale = []
        seen_objects = set()
        for source in sources:
            obj = SourceScanner.object_for(source)
            if obj in seen_objects:
                continue
            if self.needs_compile(source):
                stale.append(source)
                seen_objects.add(obj)
            else:
                logging.info(f"Skipping {source}")
        return stale

    def _run_pre_script(self, config: ProjectConfig, executor: CompilationExecutor, env: Mapping[str, str]) -> None:
        pre = config.get_pre_script()
        if pre is None:
            return

        script, sentinel = pre
        if (self.project_dir / sentinel).exists():
            logging.info(f"{sentinel} exists; skipping {script}")
            return
        executor.run_script(script, env)

    def _compile_all(self, executor: CompilationExecutor, sources: List[Path]) -> List[Path]:
        if self.jobs == 1 or len(sources) <= 1:
            for source in sources:
                executor.compile_source(source, SourceScanner.object_for(source))
            return list(sources)

        # Sources are distinct per object path, so workers never share an output
        pool = ThreadPoolExecutor(max_workers=self.jobs)
        try:
            futures = [
                pool.submit(executor.compile_source, source, SourceScanner.object_for(source))
                for source in sources
            ]
            with tqdm(total=len(futures), desc="Compiling", unit="file", disable=not self.show_progress) as bar:
                for future in as_completed(futures):
                    future.result()
                    bar.update(1)
        except BaseException:
            pool.shutdown(wait=True, cancel_futures=True)
            raise
        pool.shutdown(wait=True)
        return list(sources)
