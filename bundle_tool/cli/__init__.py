"""Command line interface for bundle-tool"""

from .main import cli, main

__all__ = ["cli", "main"]
