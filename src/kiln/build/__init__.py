"""Port build system components.

This module provides environment composition, source scanning,
compilation and linking of a project's native sources. The project-level
BuildOrchestrator lives in kiln.build.orchestrator.
"""

from .compilation_executor import CompilationError, CompilationExecutor
from .environment import (
    EnvironmentComposer,
    EnvironmentExpansionError,
    default_env,
    expand_env_variable,
)
from .linker import Linker, LinkerError, LinkResult, default_link_spec
from .port_compiler import PortBuildResult, PortCompiler
from .source_scanner import CXX_EXTENSIONS, SourceScanner

__all__ = [
    "CXX_EXTENSIONS",
    "CompilationError",
    "CompilationExecutor",
    "EnvironmentComposer",
    "EnvironmentExpansionError",
    "LinkResult",
    "Linker",
    "LinkerError",
    "PortBuildResult",
    "PortCompiler",
    "SourceScanner",
    "default_env",
    "default_link_spec",
    "expand_env_variable",
]
