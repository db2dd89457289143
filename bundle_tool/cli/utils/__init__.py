"""CLI utility functions"""

from .output import (
    console,
    format_build_report,
    format_rebuild,
    print_error,
    print_info,
    print_success,
)

__all__ = [
    'console',
    'format_build_report',
    'format_rebuild',
    'print_error',
    'print_info',
    'print_success',
]
