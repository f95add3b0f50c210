"""
Port source discovery.

This module expands the configured source glob patterns of a project and
derives the object file each source compiles to. Object files live next
to their sources (c_src/foo.c -> c_src/foo.o).
"""

import glob
from pathlib import Path
from typing import List, Sequence


# Extensions compiled with $CXX; everything else goes through $CC
CXX_EXTENSIONS = {'.cc', '.cp', '.cxx', '.cpp', '.CPP', '.c++', '.C'}


class SourceScanner:
    """
    Expands source patterns relative to a project directory.

    Matches are returned pattern by pattern, in the order the patterns are
    configured, each pattern's matches sorted. A file matched by two
    patterns is listed twice.
    """

    def __init__(self, project_dir: Path):
        """
        Initialize source scanner.

        Args:
            project_dir: Root project directory patterns are relative to
        """
        self.project_dir = Path(project_dir)

    def expand_sources(self, patterns: Sequence[str]) -> List[Path]:
        """
        Expand source glob patterns.

        Args:
            patterns: Glob patterns (e.g., ['c_src/*.c', 'c_src/*.cpp'])

        Returns:
            Matching source files, relative to the project directory
        """
        sources: List[Path] = []
        root = str(self.project_dir)
        for pattern in patterns:
            matches = glob.glob(pattern, root_dir=root, recursive=True)
            sources.extend(Path(m) for m in sorted(matches))
        return sources

    @staticmethod
    def object_for(source: Path) -> Path:
        """Object file for a source: the source path with a .o extension."""
        return Path(source).with_suffix('.o')

    @staticmethod
    def expand_objects(sources: Sequence[Path]) -> List[Path]:
        return [SourceScanner.object_for(s) for s in sources]

    @staticmethod
    def compiler_var(source: Path) -> str:
        """
        Choose the compiler variable for a source file.

        Returns:
            'CXX' for C++ extensions, otherwise 'CC'
        """
        return 'CXX' if Path(source).suffix in CXX_EXTENSIONS else 'CC'
