# bundle_tool/cli/utils/output.py
"""Output formatting utilities"""

from typing import Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from ...api.exceptions import BundleError
from ...constants import EMOJI_ERROR, EMOJI_PACKAGE, EMOJI_SUCCESS, FunctionStatus
from ...models import BuildReport
from ...utils.file_utils import format_size

console = Console()


def format_build_report(report: BuildReport) -> None:
    """Display one row per function and a summary panel"""
    table = Table(title=f"{EMOJI_PACKAGE} Packaged functions", box=box.SIMPLE_HEAVY)
    table.add_column("Function", style="cyan")
    table.add_column("Status")
    table.add_column("Archive")
    table.add_column("Size", justify="right")
    table.add_column("Dependencies", justify="right")
    table.add_column("Time", justify="right")

    for result in report.results:
        if result.status == FunctionStatus.SUCCESS:
            status = f"[green]{EMOJI_SUCCESS} {result.status.value}[/green]"
        else:
            status = f"[red]{EMOJI_ERROR} {result.status.value}[/red]"
        table.add_row(
            result.function_alias,
            status,
            str(result.archive_path) if result.archive_path else "-",
            format_size(result.size) if result.size is not None else "-",
            str(len(result.dependencies)),
            f"{result.duration:.2f}s",
        )

    console.print(table)

    if report.success:
        console.print(Panel(
            f"[green]{EMOJI_SUCCESS}[/green] {len(report.artifacts)} function(s) packaged "
            f"in {report.duration:.2f}s",
            title="Package Result",
            border_style="green",
        ))
        return

    lines = [f"[red]{EMOJI_ERROR} {len(report.failures)} function(s) failed:[/red]", ""]
    for alias, error in report.failures.items():
        lines.append(f"[bold]{alias}:[/bold] {error}")
    console.print(Panel("\n".join(lines), title="Package Errors", border_style="red"))


def format_rebuild(outcomes: Dict[str, object]) -> None:
    """One line per rebuilt function"""
    for alias, outcome in outcomes.items():
        if isinstance(outcome, BundleError):
            console.print(f"[red]{EMOJI_ERROR}[/red] {alias}: {outcome}")
        else:
            console.print(f"[green]{EMOJI_SUCCESS}[/green] Rebuilt {alias}")


def print_error(message: str, error: Optional[Exception] = None) -> None:
    """Print error message"""
    if error:
        console.print(f"[red]Error:[/red] {message}: {str(error)}")
    else:
        console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print success message"""
    console.print(f"[green]Success:[/green] {message}")


def print_info(message: str) -> None:
    """Print info message"""
    console.print(f"[blue]Info:[/blue] {message}")
