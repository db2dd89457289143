"""Watch command implementation"""

from pathlib import Path

import click

from ..utils.output import console, format_rebuild, print_error
from ...api.builder import Builder
from ...api.exceptions import BundleToolError


@click.command()
@click.option(
    '--config', '-c', 'config_path',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Configuration file (default: nearest .bundle-tool.yaml)'
)
@click.option(
    '--function', '-f', 'functions',
    multiple=True,
    help='Function to watch (can be specified multiple times)'
)
@click.pass_obj
def watch(obj, config_path, functions):
    """Build once and rebuild bundles when sources change

    Press Ctrl+C to stop.
    """
    builder = Builder(project_root=obj.project_root, config_path=config_path)

    console.print("[bold]Watching for changes...[/bold] (Ctrl+C to stop)")

    try:
        builder.watch(list(functions) or None, on_rebuild=format_rebuild)
    except BundleToolError as e:
        print_error("Watch failed", e)
        raise click.exceptions.Exit(1)
