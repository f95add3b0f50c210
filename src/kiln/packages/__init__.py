"""Package management for Kiln.

This module handles locating installed packages, verifying their name
and version, and fetching missing dependencies from source control.
"""

from .app_metadata import AppMetadataReader
from .code_path import CODE_PATH_ENV, CodePath
from .dependency import AvailabilityChecker, Dependency
from .dependency_resolver import (
    DependencyConfigError,
    DependencyResolutionError,
    DependencyResolver,
    FetchResult,
)
from .platform_utils import PlatformDetector
from .scm import (
    SCM_CLIENTS,
    Backend,
    SCMClient,
    SCMClientError,
    SCMCommandError,
    SourceSpec,
    VersionProbe,
)
from .source_fetcher import SourceFetcher, SourceFetchError

__all__ = [
    "AppMetadataReader",
    "AvailabilityChecker",
    "Backend",
    "CODE_PATH_ENV",
    "CodePath",
    "Dependency",
    "DependencyConfigError",
    "DependencyResolutionError",
    "DependencyResolver",
    "FetchResult",
    "PlatformDetector",
    "SCMClient",
    "SCMClientError",
    "SCMCommandError",
    "SCM_CLIENTS",
    "SourceFetchError",
    "SourceFetcher",
    "SourceSpec",
    "VersionProbe",
]
