# bundle_tool/cli/main.py
"""Command line entry point for bundle-tool"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.logging import RichHandler

from ..__version__ import __version__
from ..constants import APP_NAME, ENV_LOG_LEVEL, LOG_FORMAT
from .commands import clean, package, watch
from .utils.output import console

# Loggers of libraries we call into; only their warnings are interesting
QUIET_LOGGERS = ("asyncio", "aiofiles")


def _resolve_level(verbose: bool, debug: bool) -> int:
    override = os.environ.get(ENV_LOG_LEVEL)
    if override:
        level = logging.getLevelName(override.upper())
        if isinstance(level, int):
            return level
    if debug:
        return logging.DEBUG
    return logging.INFO if verbose else logging.WARNING


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Route log records through rich; BUNDLE_TOOL_LOG_LEVEL wins over the flags"""
    handler = RichHandler(
        console=console,
        show_time=debug,
        show_path=debug,
        rich_tracebacks=True,
        tracebacks_suppress=[click],
    )
    logging.basicConfig(level=_resolve_level(verbose, debug), format=LOG_FORMAT, handlers=[handler])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class Context:
    """Options of the top-level group, handed to every command"""

    def __init__(self, project_root: Optional[Path] = None, verbose: bool = False, debug: bool = False):
        self.project_root = project_root
        self.verbose = verbose
        self.debug = debug


@click.group(name=APP_NAME)
@click.version_option(__version__, prog_name=APP_NAME)
@click.option('-v', '--verbose', is_flag=True, help='Show progress messages')
@click.option('-d', '--debug', is_flag=True, help='Show debug messages and full tracebacks')
@click.option('-q', '--quiet', is_flag=True, help='Only print results and errors')
@click.option(
    '--cwd', 'project_root',
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Project directory (default: current directory)'
)
@click.pass_context
def cli(ctx, verbose, debug, quiet, project_root):
    """Bundle Tool - Bundle and package Node.js functions

    Each function's handler is bundled with esbuild, its external
    packages are installed into a staging folder and everything is
    written to one deterministic zip archive per function.
    """
    if quiet:
        logging.disable(logging.CRITICAL)
    else:
        setup_logging(verbose=verbose, debug=debug)

    ctx.obj = Context(project_root, verbose=verbose, debug=debug)


cli.add_command(package.package)
cli.add_command(watch.watch)
cli.add_command(clean.clean)


def main():
    """Run the CLI; Ctrl+C exits with 130 and unexpected errors with 1"""
    try:
        cli(prog_name=APP_NAME)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if '--debug' in sys.argv or '-d' in sys.argv:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
