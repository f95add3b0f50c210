"""Port build environment composition.

The compiler and linker run with an environment assembled from three
layers, lowest precedence first:

1. The process environment
2. Kiln defaults (compilers, host runtime include/lib flags, platform flags)
3. Project overrides from [port.env] sections

Each layer may contain entries gated on the architecture descriptor.
Values may reference other variables as $NAME or ${NAME}. A redefinition
sees the previous value of its own key, so CFLAGS = "$CFLAGS -O2" extends
instead of replacing. After merging, references between variables are
expanded repeatedly until nothing changes.
"""

import logging
import os
import re
import sysconfig
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from ..config import EnvVar
from ..packages.platform_utils import PlatformDetector

MAX_EXPANSION_PASSES = 10

_REFERENCE_RE = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EnvironmentExpansionError(Exception):
    """Raised when variable references do not converge (reference cycle)."""

    pass


@lru_cache(maxsize=None)
def _reference_pattern(name: str) -> Pattern[str]:
    escaped = re.escape(name)
    return re.compile(r"\$" + escaped + r"(?![A-Za-z0-9_])|\$\{" + escaped + r"\}")


def expand_env_variable(in_str: str, var_name: str, var_value: str) -> str:
    """Replace every $VAR and ${VAR} reference to one variable.

    Args:
        in_str: String to expand
        var_name: Variable name
        var_value: Replacement text (inserted literally)

    Returns:
        Expanded string
    """
    if "$" not in in_str:
        return in_str
    return _reference_pattern(var_name).sub(lambda _m: var_value, in_str)


def references(value: str) -> List[str]:
    """Names referenced by a value, in order of appearance."""
    return [m.group(1) or m.group(2) for m in _REFERENCE_RE.finditer(value)]


def render(template: str, env: Mapping[str, str]) -> str:
    """Render a command template the way a POSIX shell would.

    Unlike expand_env_variable, references to undefined variables render
    as empty strings.
    """
    return _REFERENCE_RE.sub(lambda m: env.get(m.group(1) or m.group(2), ""), template)


def os_env(environ: Optional[Mapping[str, str]] = None) -> List[EnvVar]:
    """Process environment as ungated entries.

    Variables whose names are not valid identifiers (e.g., Windows'
    'ProgramFiles(x86)') cannot be referenced and are skipped.
    """
    environ = os.environ if environ is None else environ
    return [EnvVar(key=k, value=v) for k, v in environ.items() if _NAME_RE.match(k)]


def default_env() -> List[EnvVar]:
    """Default compiler settings for building drivers against the host runtime."""
    include_dir = sysconfig.get_paths()["include"]
    lib_dir = sysconfig.get_config_var("LIBDIR") or ""

    return [
        EnvVar("CC", "gcc"),
        EnvVar("CXX", "g++"),
        EnvVar("PY_CFLAGS", f" -I{include_dir} "),
        EnvVar("PY_LDFLAGS", f" -L{lib_dir}" if lib_dir else ""),
        EnvVar("DRV_CFLAGS", "-g -Wall -fPIC $PY_CFLAGS"),
        EnvVar("DRV_LDFLAGS", "-shared $PY_LDFLAGS"),
        EnvVar("DRV_LDFLAGS", "-bundle -flat_namespace -undefined suppress $PY_LDFLAGS", "darwin"),
        EnvVar("KILN_ARCH", str(PlatformDetector.word_size())),
        EnvVar("KILN_TARGET", PlatformDetector.get_arch()),
        # Solaris specific flags
        EnvVar("CFLAGS", "-D_REENTRANT -m64", "solaris.*-64$"),
        EnvVar("LDFLAGS", "-m64", "solaris.*-64$"),
        # OS X Leopard flags for 64-bit
        EnvVar("CFLAGS", "-m64", "darwin9.*-64$"),
        EnvVar("LDFLAGS", "-arch x86_64", "darwin9.*-64$"),
        # OS X Snow Leopard flags for 32-bit
        EnvVar("CFLAGS", "-m32", "darwin10.*-32"),
        EnvVar("LDFLAGS", "-arch i386", "darwin10.*-32"),
    ]


class EnvironmentComposer:
    """
    Merges environment layers into one fully expanded environment.

    Example usage:
        composer = EnvironmentComposer()
        env = composer.compose(config.get_port_envs())
        print(env["DRV_CFLAGS"])
    """

    def __init__(self, arch: Optional[str] = None, max_passes: int = MAX_EXPANSION_PASSES):
        """
        Initialize composer.

        Args:
            arch: Architecture descriptor gates are matched against
                (defaults to the current platform)
            max_passes: Expansion passes allowed before giving up
        """
        self.arch = arch if arch is not None else PlatformDetector.get_arch()
        self.max_passes = max_passes

    def compose(
        self,
        overrides: Sequence[Any],
        defaults: Optional[Sequence[Any]] = None,
        process_env: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """
        Build the resolved environment.

        Args:
            overrides: Project entries (EnvVar or tuple shapes), highest precedence
            defaults: Default entries (defaults to default_env())
            process_env: Process environment (defaults to os.environ)

        Returns:
            Mapping of every variable to its expanded value

        Raises:
            EnvironmentConfigError: If an entry is malformed
            EnvironmentExpansionError: If references do not converge
        """
        pairs = (
            self.filter_envs(os_env(process_env))
            + self.filter_envs(default_env() if defaults is None else defaults)
            + self.filter_envs(overrides)
        )
        return self.expand_vars_loop(self.merge_each_var(pairs))

    def filter_envs(self, entries: Sequence[Any]) -> List[Tuple[str, str]]:
        """
        Keep the entries that apply to the current architecture.

        Args:
            entries: EnvVar instances, (key, value) pairs or
                (arch_regex, key, value) triples

        Returns:
            (key, value) pairs in input order

        Raises:
            EnvironmentConfigError: If an entry has any other shape
        """
        kept = []
        for entry in entries:
            var = EnvVar.parse(entry)
            if var.applies_to(self.arch):
                kept.append((var.key, var.value))
        return kept

    @staticmethod
    def merge_each_var(pairs: Sequence[Tuple[str, str]]) -> Dict[str, str]:
        """
        Collapse repeated keys, expanding each self-reference.

        A first definition expands references to itself as empty; a later
        one expands them to the previous value.
        """
        merged: Dict[str, str] = {}
        for key, value in pairs:
            merged[key] = expand_env_variable(value, key, merged.get(key, ""))
        return merged

    def expand_vars_loop(self, variables: Mapping[str, str]) -> Dict[str, str]:
        """
        Expand references between variables until nothing changes.

        Raises:
            EnvironmentExpansionError: If max_passes run without reaching a
                fixpoint, or the fixpoint still references defined variables
                (a reference cycle)
        """
        current = dict(variables)
        for _ in range(self.max_passes):
            expanded = dict(current)
            for key in sorted(expanded):
                value = expanded[key]
                for other in expanded:
                    if other != key:
                        expanded[other] = expand_env_variable(expanded[other], key, value)

            if expanded == current:
                self._check_resolved(expanded)
                return expanded
            current = expanded

        raise EnvironmentExpansionError(
            f"Max. expansion reached for ENV vars! ({self.max_passes} passes)"
        )

    @staticmethod
    def _check_resolved(variables: Mapping[str, str]) -> None:
        cyclic = sorted(
            key for key, value in variables.items()
            if any(name in variables for name in references(value))
        )
        if cyclic:
            for key in cyclic:
                logging.debug(f"Unresolved reference: {key}={variables[key]}")
            raise EnvironmentExpansionError(
                f"ENV var expansion did not converge; cyclic references in: {', '.join(cyclic)}"
            )
