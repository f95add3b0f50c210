"""Configuration parsing for Kiln.

This module handles parsing of kiln.ini project descriptors and the
port build entries (environment variables, link specs) they declare.
"""

from .port_spec import EnvironmentConfigError, EnvVar, LinkSpec
from .project_config import (
    DEFAULT_PORT_SOURCES,
    DESCRIPTOR_NAME,
    ProjectConfig,
    ProjectConfigError,
)

__all__ = [
    "DEFAULT_PORT_SOURCES",
    "DESCRIPTOR_NAME",
    "EnvVar",
    "EnvironmentConfigError",
    "LinkSpec",
    "ProjectConfig",
    "ProjectConfigError",
]
