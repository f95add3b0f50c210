"""Compilation Executor.

This module runs compiler commands and hook scripts for port builds.

Design:
    - Compiler commands come from templates rendered against the composed
      port environment ($CC -c $CFLAGS $DRV_CFLAGS ...)
    - Commands run in the project directory with the composed environment
    - A non-zero exit is fatal and reported with the tool's output
"""

import logging
import shlex
from pathlib import Path
from typing import List, Mapping

from ..process_utils import run_command
from .environment import render
from .source_scanner import SourceScanner

COMPILE_TEMPLATES = {
    'CC': "$CC -c $CFLAGS $DRV_CFLAGS",
    'CXX': "$CXX -c $CXXFLAGS $DRV_CFLAGS",
}


class CompilationError(Exception):
    """Raised when compilation operations fail."""
    pass


class CompilationExecutor:
    """Executes compiler commands and hook scripts.

    This class handles:
    - Choosing $CC or $CXX by source extension
    - Rendering commands against the port environment
    - Running user scripts through the shell
    """

    def __init__(self, project_dir: Path, env: Mapping[str, str], show_progress: bool = True):
        """Initialize compilation executor.

        Args:
            project_dir: Directory commands run in
            env: Composed port environment
            show_progress: Whether to show compilation progress
        """
        self.project_dir = Path(project_dir)
        self.env = dict(env)
        self.show_progress = show_progress

    def build_compile_command(self, source: Path, output: Path) -> List[str]:
        """Build the compiler command for a source file.

        Args:
            source: Source file (relative to the project dir)
            output: Object file to produce

        Returns:
            Argument list
        """
        template = COMPILE_TEMPLATES[SourceScanner.compiler_var(source)]
        return shlex.split(render(template, self.env)) + [str(source), '-o', str(output)]

    def compile_source(self, source: Path, output: Path) -> Path:
        """Compile a single source file.

        Args:
            source: Source file
            output: Object file to produce

        Returns:
            Path to the object file

        Raises:
            CompilationError: If the compiler fails
        """
        cmd = self.build_compile_command(source, output)
        if self.show_progress:
            print(f"Compiling {source}")
        logging.info(f"Compile command: {' '.join(cmd)}")

        result = run_command(cmd, cwd=self.project_dir, env=self.env)
        if not result.success:
            raise CompilationError(
                f"Compilation failed for {source} (exit {result.returncode})\n{result.output}"
            )

        if self.show_progress and result.stderr:
            print(result.stderr)

        return output

    def run_script(self, script: str, env: Mapping[str, str]) -> None:
        """Run a hook script through the shell.

        Args:
            script: Command line to run
            env: Environment for the script

        Raises:
            CompilationError: If the script exits non-zero
        """
        if self.show_progress:
            print(f"Running {script}")

        result = run_command(script, cwd=self.project_dir, env=env, shell=True)
        if result.stdout and self.show_progress:
            print(result.stdout.rstrip())
        if not result.success:
            raise CompilationError(
                f"{script} failed with error: {result.returncode}\n{result.output}"
            )
