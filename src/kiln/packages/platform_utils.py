"""Platform Detection Utilities.

This module provides utilities for describing the current platform as a
single architecture string, used to gate platform-specific environment
entries.

Descriptor format:
    <machine>-<vendor>-<system>-<wordsize>

Examples:
    x86_64-unknown-linux-gnu-64
    arm64-apple-darwin23.1.0-64
    sparc-sun-solaris2.11-64
"""

import platform
import re
import sys


class PlatformDetector:
    """Detects the current platform and architecture for environment gating."""

    @staticmethod
    def word_size() -> int:
        """Return the interpreter word size in bits (32 or 64)."""
        return 64 if sys.maxsize > 2**32 else 32

    @staticmethod
    def system_architecture() -> str:
        """Describe the host as a target triple.

        Returns:
            Triple such as 'x86_64-unknown-linux-gnu' or 'arm64-apple-darwin23.1.0'
        """
        system = platform.system().lower()
        machine = platform.machine() or "unknown"

        if system == "darwin":
            return f"{machine}-apple-darwin{platform.release()}"
        elif system == "linux":
            return f"{machine}-unknown-linux-gnu"
        elif system in ("sunos", "solaris"):
            # SunOS 5.x is marketed as Solaris 2.x
            release = platform.release()
            if release.startswith("5."):
                release = "2." + release[2:]
            return f"{machine}-sun-solaris{release}"
        elif system == "windows":
            return f"{machine}-pc-win32"
        else:
            return f"{machine}-unknown-{system}"

    @staticmethod
    def get_arch() -> str:
        """Return the architecture descriptor including the word size."""
        return f"{PlatformDetector.system_architecture()}-{PlatformDetector.word_size()}"

    @staticmethod
    def is_arch(arch_regex: str) -> bool:
        """Check whether the current architecture descriptor matches a regex.

        Args:
            arch_regex: Regular expression searched in the descriptor

        Returns:
            True on match
        """
        return re.search(arch_regex, PlatformDetector.get_arch()) is not None

