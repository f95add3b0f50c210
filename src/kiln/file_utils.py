"""Filesystem helpers shared by fetching and cleanup."""

import os
import shutil
import stat
import time
from pathlib import Path
from typing import Any, Callable, Iterable, List


def remove_readonly(func: Callable[[str], None], path: str, excinfo: Any) -> None:
    """
    Error handler for shutil.rmtree on Windows.

    Version control clients mark their object stores read-only, which
    Windows refuses to delete. Clear the attribute and retry.
    """
    os.chmod(path, stat.S_IWRITE)
    func(path)


def safe_rmtree(path: Path, max_retries: int = 3) -> None:
    """
    Remove a directory tree, retrying while files are briefly locked.

    Args:
        path: Directory to remove; absence is not an error
        max_retries: Maximum number of attempts

    Raises:
        OSError: If the directory cannot be removed after all retries
    """
    if not path.exists():
        return

    for attempt in range(max_retries):
        try:
            shutil.rmtree(path, onerror=remove_readonly)
            return
        except OSError as e:
            if attempt < max_retries - 1:
                time.sleep(0.5)
            else:
                raise OSError(
                    f"Failed to remove directory {path} after {max_retries} attempts: {e}"
                ) from e


def delete_each(paths: Iterable[Path]) -> List[Path]:
    """
    Delete files, ignoring the ones that do not exist.

    Args:
        paths: Files to delete

    Returns:
        The files that were actually deleted
    """
    deleted = []
    for path in paths:
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        deleted.append(path)
    return deleted


def last_modified(path: Path) -> float:
    """Modification time of a file, 0 when it does not exist."""
    try:
        return Path(path).stat().st_mtime
    except FileNotFoundError:
        return 0
