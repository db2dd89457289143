"""Hash calculation utilities"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import aiofiles


async def calculate_sha256_async(file_path: Path, chunk_size: int = 65536) -> str:
    """
    Calculate SHA256 hash of file asynchronously

    Args:
        file_path: Path to file
        chunk_size: Read chunk size

    Returns:
        Hex digest string
    """
    sha256_hash = hashlib.sha256()

    async with aiofiles.open(file_path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            sha256_hash.update(chunk)

    return sha256_hash.hexdigest()


def hash_options(options: Optional[Dict[str, Any]]) -> str:
    """Stable digest of a JSON-compatible options mapping"""
    payload = json.dumps(options or {}, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


async def calculate_inputs_fingerprint(paths: Iterable[Path],
                                       options: Optional[Dict[str, Any]] = None) -> str:
    """
    Fingerprint a set of source inputs plus the options they are built with

    Missing inputs are recorded as such, so deleting a tracked file changes
    the fingerprint.

    Args:
        paths: Tracked input files
        options: Build options that also affect the output

    Returns:
        Hex digest string
    """
    fingerprint = hashlib.sha256()
    fingerprint.update(hash_options(options).encode('utf-8'))

    for path in sorted({Path(p) for p in paths}, key=str):
        fingerprint.update(str(path).encode('utf-8'))
        if path.is_file():
            fingerprint.update(b'\0')
            fingerprint.update((await calculate_sha256_async(path)).encode('utf-8'))
        else:
            fingerprint.update(b'\0missing')

    return fingerprint.hexdigest()
