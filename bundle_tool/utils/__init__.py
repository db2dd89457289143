# bundle_tool/utils/__init__.py
"""Utility functions for bundle-tool"""

from .file_utils import (
    format_size,
    file_exists,
    trim_extension,
    find_up,
    scoped_temp_dir,
    copy_path,
    scan_directory,
)

from .async_utils import (
    map_concurrent,
    spawn_process,
    ProcessResult,
)

from .hash_utils import (
    calculate_inputs_fingerprint,
)

__all__ = [
    # File utilities
    'format_size',
    'file_exists',
    'trim_extension',
    'find_up',
    'scoped_temp_dir',
    'copy_path',
    'scan_directory',

    # Async utilities
    'map_concurrent',
    'spawn_process',
    'ProcessResult',

    # Hash utilities
    'calculate_inputs_fingerprint',
]
