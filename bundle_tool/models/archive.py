"""Archive data models"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ArchiveFile:
    """A file to stage: ``root_path`` on disk, ``local_path`` inside the archive"""
    local_path: str
    root_path: Path


@dataclass(frozen=True)
class ArchiveResult:
    """Written archive with size and timing"""
    path: Path
    size: int
    file_count: int
    duration: float
