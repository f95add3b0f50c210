"""
kiln.ini project descriptor parser.

This module provides functionality to parse kiln.ini files and extract the
package identity, dependency declarations and port build settings.

Example kiln.ini:
    [package]
    name = mydriver
    version = 1.4.0

    [deps]
    stdlib_ext
    zlib_drv = 1\\.2\\..* git https://example.org/zlib_drv.git v1.2.0

    [port]
    sources = c_src/*.c c_src/*.cpp

    [port.env]
    CFLAGS = $CFLAGS -O2

    [port.env:x86_64.*-linux]
    CFLAGS = $CFLAGS -march=x86-64
"""

import configparser
import shlex
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .port_spec import EnvironmentConfigError, EnvVar, LinkSpec

DESCRIPTOR_NAME = "kiln.ini"
DEFAULT_PORT_SOURCES = ["c_src/*.c"]

ENV_SECTION = "port.env"
SO_SPECS_SECTION = "port.so_specs"


class ProjectConfigError(Exception):
    """Exception raised for kiln.ini configuration errors."""

    pass


class ProjectConfig:
    """
    Parser for kiln.ini project descriptors.

    Interpolation is disabled because environment values reference other
    variables with shell syntax ($CFLAGS), and keys keep their case so
    that variable names and paths survive parsing.

    Usage:
        config = ProjectConfig.load(Path("."))
        deps = config.get_deps()
        sources = config.get_port_sources()
    """

    def __init__(self, ini_path: Path):
        """
        Initialize the parser with a kiln.ini file.

        Args:
            ini_path: Path to the kiln.ini file

        Raises:
            ProjectConfigError: If the file doesn't exist or cannot be parsed
        """
        self.ini_path = Path(ini_path)
        self.project_dir = self.ini_path.parent

        if not self.ini_path.exists():
            raise ProjectConfigError(f"Configuration file not found: {self.ini_path}")

        self.config = configparser.ConfigParser(allow_no_value=True, interpolation=None)
        self.config.optionxform = str  # type: ignore[assignment]

        try:
            self.config.read(self.ini_path, encoding="utf-8")
        except (configparser.Error, UnicodeDecodeError, OSError) as e:
            raise ProjectConfigError(f"Failed to parse {self.ini_path}: {e}") from e

    @classmethod
    def load(cls, project_dir: Path) -> "ProjectConfig":
        """Load the descriptor of a project directory."""
        return cls(Path(project_dir) / DESCRIPTOR_NAME)

    @property
    def package_name(self) -> Optional[str]:
        return self._get("package", "name")

    @property
    def package_version(self) -> Optional[str]:
        return self._get("package", "version")

    def get_deps(self) -> List[Any]:
        """
        Parse dependency declarations in declaration order.

        Returns:
            List where each entry is a bare identifier string, a
            (name, version_regex) pair, or a
            (name, version_regex, (backend, url, revision)) triple.
            Values with any other token count are passed through as
            (name, *tokens) so the resolver can reject them.

        Example:
            For
                [deps]
                stdlib_ext
                json_c = 1\\..*
            Returns: ['stdlib_ext', ('json_c', '1\\..*')]
        """
        if "deps" not in self.config:
            return []

        deps: List[Any] = []
        for name, value in self.config.items("deps", raw=True):
            if value is None or not value.strip():
                deps.append(name)
                continue

            try:
                tokens = _split_tokens(value)
            except ValueError as e:
                raise ProjectConfigError(
                    f"Invalid dependency specification for {name} in {self.ini_path}: {e}"
                ) from e

            if len(tokens) == 1:
                deps.append((name, tokens[0]))
            elif len(tokens) == 4:
                deps.append((name, tokens[0], tuple(tokens[1:])))
            else:
                deps.append((name, *tokens))
        return deps

    def get_port_sources(self) -> List[str]:
        """
        Return the source glob patterns.

        Returns:
            List of glob patterns relative to the project directory,
            ['c_src/*.c'] when none are configured
        """
        value = self._get("port", "sources")
        if not value:
            return list(DEFAULT_PORT_SOURCES)
        return value.split()

    def get_port_envs(self) -> List[EnvVar]:
        """
        Return port environment overrides in declaration order.

        Entries of [port.env] are ungated; entries of [port.env:<regex>]
        only apply on architectures matching <regex>.

        Raises:
            ProjectConfigError: If an entry is malformed
        """
        envs = []
        for section in self.config.sections():
            if section == ENV_SECTION:
                gate = None
            elif section.startswith(ENV_SECTION + ":"):
                gate = section.split(":", 1)[1]
            else:
                continue

            for key, value in self.config.items(section, raw=True):
                try:
                    envs.append(EnvVar(key=key, value=value or "", arch_gate=gate))
                except EnvironmentConfigError as e:
                    raise ProjectConfigError(f"[{section}] in {self.ini_path}: {e}") from e
        return envs

    def get_so_specs(self) -> Optional[List[LinkSpec]]:
        """
        Return explicit link specs.

        Returns:
            None when [port.so_specs] is absent, otherwise one LinkSpec per
            entry (output = space separated object files)
        """
        if SO_SPECS_SECTION not in self.config:
            return None

        specs = []
        for output, objects in self.config.items(SO_SPECS_SECTION, raw=True):
            specs.append(LinkSpec.create(output, (objects or "").split()))
        return specs

    def get_pre_script(self) -> Optional[Tuple[str, str]]:
        """
        Return the pre-build script and the sentinel file it produces.

        Raises:
            ProjectConfigError: If a script is configured without a sentinel
        """
        script = self._get("port", "pre_script")
        if not script:
            return None

        sentinel = self._get("port", "pre_script_sentinel")
        if not sentinel:
            raise ProjectConfigError(
                f"pre_script in {self.ini_path} requires pre_script_sentinel"
            )
        return script, sentinel

    def get_cleanup_script(self) -> Optional[str]:
        return self._get("port", "cleanup_script") or None

    def _get(self, section: str, key: str) -> Optional[str]:
        if section not in self.config:
            return None
        value = self.config[section].get(key)
        return value.strip() if value is not None else None


def _split_tokens(value: str) -> List[str]:
    """Split a declaration on whitespace, honoring quotes but not backslashes."""
    lexer = shlex.shlex(value, posix=True)
    lexer.whitespace_split = True
    lexer.escape = ""
    lexer.commenters = ""
    return list(lexer)
