"""Ordered search path of package directories."""

import os
from pathlib import Path
from typing import Dict, Iterator, List

CODE_PATH_ENV = "KILN_CODE_PATH"


class CodePath:
    """Ordered, duplicate-free list of directories holding package artifacts.

    Directories are appended in the order dependencies are resolved; adding
    a directory twice keeps its first position.
    """

    def __init__(self) -> None:
        self._dirs: List[Path] = []

    def add(self, directory: Path) -> None:
        directory = Path(directory)
        if directory not in self._dirs:
            self._dirs.append(directory)

    def to_environ(self) -> Dict[str, str]:
        """Export the path as a KILN_CODE_PATH environment entry."""
        return {CODE_PATH_ENV: os.pathsep.join(str(d) for d in self._dirs)}

    def __iter__(self) -> Iterator[Path]:
        return iter(list(self._dirs))

    def __len__(self) -> int:
        return len(self._dirs)

    def __contains__(self, directory: object) -> bool:
        return Path(directory) in self._dirs if isinstance(directory, (str, Path)) else False

    def __repr__(self) -> str:
        return f"CodePath({[str(d) for d in self._dirs]})"
