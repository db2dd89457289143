"""Clean command implementation"""

from pathlib import Path

import click

from ..utils.output import print_info, print_success
from ...api.builder import Builder


@click.command()
@click.option(
    '--config', '-c', 'config_path',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Configuration file (default: nearest .bundle-tool.yaml)'
)
@click.pass_obj
def clean(obj, config_path):
    """Remove the work folder with bundles, staging folders and archives"""
    builder = Builder(project_root=obj.project_root, config_path=config_path)
    if builder.clean():
        print_success("Build output removed")
    else:
        print_info("Nothing to clean")
