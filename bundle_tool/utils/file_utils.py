# bundle_tool/utils/file_utils.py
"""File operation utilities"""

import contextlib
import fnmatch
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union


def format_size(size: int) -> str:
    """
    Format file size in human-readable format

    Args:
        size: Size in bytes

    Returns:
        Formatted size string
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"


def file_exists(path: Union[str, Path]) -> bool:
    """Check that a path exists, treating permission errors as absence"""
    try:
        return Path(path).exists()
    except OSError:
        return False


def trim_extension(entry: str) -> str:
    """Strip the last extension from a path string"""
    ext = os.path.splitext(entry)[1]
    return entry[:-len(ext)] if ext else entry


def to_posix(path: Union[str, Path]) -> str:
    """Archive and entry paths always use forward slashes"""
    return str(path).replace(os.sep, '/')


def find_up(names: Sequence[str], directory: Optional[Path] = None) -> Optional[Path]:
    """
    Find the closest directory containing any of the given names

    Args:
        names: File names to look for
        directory: Start directory (defaults to cwd)

    Returns:
        Directory containing a match, or None when the filesystem root is reached
    """
    current = Path(directory or os.getcwd()).resolve()

    while True:
        if any(file_exists(current / name) for name in names):
            return current
        if current.parent == current:
            return None
        current = current.parent


@contextlib.contextmanager
def scoped_temp_dir(prefix: str = "bundle-tool-",
                    parent: Optional[Path] = None) -> Iterator[Path]:
    """
    Create a temporary directory that is removed on exit, including on errors

    Args:
        prefix: Directory name prefix
        parent: Parent directory (system temp dir if None)

    Yields:
        Path to the temporary directory
    """
    if parent is not None:
        parent.mkdir(parents=True, exist_ok=True)
    temp_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent else None))
    try:
        yield temp_dir
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def copy_path(src: Path, dst: Path) -> None:
    """
    Copy a file or a directory tree, creating parent directories

    Args:
        src: Source file or directory
        dst: Destination path
    """
    dst.parent.mkdir(parents=True, exist_ok=True)

    if src.is_dir():
        shutil.copytree(src, dst, dirs_exist_ok=True)
    else:
        # copy2 keeps permission bits
        shutil.copy2(src, dst)


def ensure_parent_dir(file_path: Path) -> Path:
    """
    Ensure parent directory exists

    Args:
        file_path: File path

    Returns:
        Parent directory path
    """
    parent = file_path.parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def safe_remove(path: Path) -> bool:
    """
    Remove file or directory if present

    Args:
        path: Path to remove

    Returns:
        True if something was removed
    """
    if path.is_file() or path.is_symlink():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def scan_directory(directory: Path,
                   include_patterns: Optional[List[str]] = None,
                   exclude_patterns: Optional[List[str]] = None) -> List[Path]:
    """
    Scan directory for files

    Args:
        directory: Directory to scan
        include_patterns: Glob patterns a relative path must match (all files if None)
        exclude_patterns: Patterns to exclude; a pattern also matches any path below it

    Returns:
        Sorted list of file paths
    """
    exclude_patterns = exclude_patterns or []
    files = []

    for path in directory.rglob('*'):
        if not path.is_file():
            continue

        relative_path = to_posix(path.relative_to(directory))
        if include_patterns and not matches_any(relative_path, include_patterns):
            continue
        if exclude_patterns and matches_any(relative_path, exclude_patterns, prefix=True):
            continue

        files.append(path)

    return sorted(files)


def matches_any(relative_path: str, patterns: Sequence[str], prefix: bool = False) -> bool:
    """
    Match a posix relative path against glob patterns

    ``**/`` may match zero directories. With ``prefix`` a pattern naming a
    directory also matches everything below it.
    """
    for pattern in patterns:
        pattern = pattern[2:] if pattern.startswith('./') else pattern
        candidates = [pattern]
        if pattern.startswith('**/'):
            candidates.append(pattern[3:])
        for candidate in candidates:
            if fnmatch.fnmatch(relative_path, candidate):
                return True
            if prefix and (relative_path.startswith(candidate.rstrip('/') + '/')
                           or any(fnmatch.fnmatch(part, candidate)
                                  for part in relative_path.split('/')[:-1])):
                return True
    return False


def pin_mtimes(directory: Path, timestamp: float) -> None:
    """Set every file and directory below ``directory`` to one fixed mtime"""
    for path in directory.rglob('*'):
        os.utime(path, (timestamp, timestamp), follow_symlinks=False)


def atomic_write(file_path: Path,
                 content: Union[str, bytes],
                 mode: str = 'w') -> None:
    """
    Write file atomically

    Args:
        file_path: Target file path
        content: Content to write
        mode: Write mode
    """
    ensure_parent_dir(file_path)

    # Write to temporary file first
    temp_fd, temp_path = tempfile.mkstemp(dir=file_path.parent)

    try:
        with os.fdopen(temp_fd, mode) as f:
            f.write(content)

        # Atomic rename
        os.replace(temp_path, file_path)

    except Exception:
        # Clean up temp file on error
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
