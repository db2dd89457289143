"""Deterministic zip archives

Files are staged in a temporary directory with pinned mtimes, zipped in
sorted order to ``<zip>.partial`` and moved onto the final path, so the
same inputs always produce the same bytes and a failed write never leaves
an archive behind.
"""

import asyncio
import functools
import logging
import os
import posixpath
import shutil
import time
import zipfile
from pathlib import Path
from typing import Any, Callable, Iterable, List

from ..api.exceptions import ArchiveError, SpawnError
from ..constants import NATIVE_ZIP_COMMAND, PARTIAL_SUFFIX, ZIP_EPOCH, ZIP_EPOCH_TIMESTAMP
from ..models import ArchiveFile, ArchiveResult
from ..utils.async_utils import spawn_process
from ..utils.file_utils import ensure_parent_dir, format_size, pin_mtimes, scoped_temp_dir

logger = logging.getLogger(__name__)


async def _run_blocking(func: Callable[..., Any], *args) -> Any:
    """Run in the default executor; on cancellation wait for the worker before re-raising"""
    future = asyncio.get_running_loop().run_in_executor(None, functools.partial(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        if not future.cancelled():
            future.exception()
        raise


def archive_name(local_path: str) -> str:
    """
    Normalized member name for a local path

    Raises:
        ValueError: Absolute path or one escaping the archive root
    """
    name = posixpath.normpath(local_path.replace("\\", "/"))
    if name.startswith("/") or name == "." or name == ".." or name.startswith("../"):
        raise ValueError(f"Invalid archive path: {local_path}")
    return name


def check_unique(files: Iterable[ArchiveFile]) -> List[str]:
    """
    Member names of ``files``, sorted

    Raises:
        ValueError: Two files share a local path
    """
    seen = {}
    for file in files:
        name = archive_name(file.local_path)
        if name in seen:
            raise ValueError(f"Duplicate archive path {name}: {seen[name]} and {file.root_path}")
        seen[name] = file.root_path
    return sorted(seen)


def stage_files(stage_dir: Path, files: Iterable[ArchiveFile]) -> None:
    """Copy files to their local paths below ``stage_dir`` and pin every mtime"""
    for file in files:
        target = stage_dir / archive_name(file.local_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(file.root_path, target)
    pin_mtimes(stage_dir, ZIP_EPOCH_TIMESTAMP)


def write_internal_zip(target: Path, stage_dir: Path, names: List[str]) -> None:
    """Write a zip with fixed timestamps and permission-only attributes"""
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name in names:
            source = stage_dir / name
            info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = (source.stat().st_mode & 0o777) << 16
            with open(source, "rb") as src, archive.open(info, "w") as dst:
                shutil.copyfileobj(src, dst)


async def write_native_zip(target: Path, stage_dir: Path, names: List[str]) -> None:
    """Run ``zip`` in the staging directory, reading member names from stdin"""
    listing = "".join(f"{name}\n" for name in names).encode("utf-8")
    await spawn_process(
        NATIVE_ZIP_COMMAND,
        ["-q", "-X", "-D", str(target.resolve()), "-@"],
        cwd=stage_dir,
        input=listing,
    )


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def zip_files(zip_path: Path,
                    files: Iterable[ArchiveFile],
                    use_native_zip: bool = False) -> ArchiveResult:
    """
    Write a deterministic zip archive

    Args:
        zip_path: Final archive path
        files: Files to include; local paths must be unique
        use_native_zip: Use the system ``zip`` binary

    Returns:
        ArchiveResult

    Raises:
        ArchiveError: Staging or writing failed; no file is left at
            ``zip_path`` or its partial path
    """
    zip_path = Path(zip_path)
    files = list(files)
    partial = zip_path.with_name(zip_path.name + PARTIAL_SUFFIX)
    start_time = time.time()

    try:
        names = check_unique(files)
        ensure_parent_dir(zip_path)
        _discard(partial)

        with scoped_temp_dir(prefix="bundle-tool-zip-") as stage_dir:
            await _run_blocking(stage_files, stage_dir, files)

            if use_native_zip and names:
                await write_native_zip(partial, stage_dir, names)
            else:
                await _run_blocking(write_internal_zip, partial, stage_dir, names)

        os.replace(partial, zip_path)
    except (OSError, ValueError, SpawnError, zipfile.BadZipFile) as e:
        _discard(partial)
        raise ArchiveError(str(zip_path), e) from e
    except asyncio.CancelledError:
        _discard(partial)
        raise

    size = zip_path.stat().st_size
    duration = time.time() - start_time
    logger.info(f"Zip created: {zip_path.name} ({format_size(size)}, {len(names)} files) in {duration:.2f}s")

    return ArchiveResult(path=zip_path, size=size, file_count=len(names), duration=duration)
