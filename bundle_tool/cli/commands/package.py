"""Package command implementation"""

from pathlib import Path

import click

from ..utils.output import console, format_build_report, print_error
from ...api.builder import Builder
from ...api.exceptions import BundleToolError
from ...constants import EMOJI_PACKAGE


@click.command()
@click.option(
    '--config', '-c', 'config_path',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Configuration file (default: nearest .bundle-tool.yaml)'
)
@click.option(
    '--function', '-f', 'functions',
    multiple=True,
    help='Function to package (can be specified multiple times)'
)
@click.option('--native-zip', is_flag=True, default=None, help='Use the system zip binary')
@click.option('--concurrency', type=click.IntRange(min=1), help='Maximum parallel bundler builds')
@click.option('--zip-concurrency', type=click.IntRange(min=1), help='Maximum parallel package pipelines')
@click.option('--strict', is_flag=True, default=None, help='Stop at the first failing function')
@click.pass_obj
def package(obj, config_path, functions, native_zip, concurrency, zip_concurrency, strict):
    """Bundle, install and zip functions

    Examples:
        bundle-tool package
        bundle-tool package -f hello1 -f hello2 --native-zip
        bundle-tool package --concurrency 4 --strict
    """
    builder = Builder(
        project_root=obj.project_root,
        config_path=config_path,
        native_zip=native_zip,
        concurrency=concurrency,
        zip_concurrency=zip_concurrency,
        strict=strict,
    )

    console.print(f"\n{EMOJI_PACKAGE} Packaging functions...")

    try:
        report = builder.package(list(functions) or None)
    except BundleToolError as e:
        print_error("Packaging failed", e)
        raise click.exceptions.Exit(1)

    format_build_report(report)
    if not report.success:
        raise click.exceptions.Exit(1)
