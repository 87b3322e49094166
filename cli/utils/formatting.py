"""Rich Formatting Utilities for CLI Output"""

from rich import box
from rich.console import Console
from rich.table import Table

from jobengine.v1.jobs.schemas import JobStats

console = Console()


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def create_stats_tables(stats: JobStats) -> list[Table]:
    """Create status, type and recent failure tables for job stats"""
    status_table = Table(title="Jobs by Status", box=box.ROUNDED)
    status_table.add_column("Status", style="cyan")
    status_table.add_column("Count", justify="right", style="green")
    for entry in stats.by_status:
        status_table.add_row(entry.status.value, str(entry.count))

    type_table = Table(title="Jobs by Type", box=box.ROUNDED)
    type_table.add_column("Type", style="magenta")
    type_table.add_column("Count", justify="right", style="green")
    for entry in stats.by_type:
        type_table.add_row(entry.type, str(entry.count))

    failures_table = Table(title="Recent Failures (24h)", box=box.ROUNDED)
    failures_table.add_column("ID", style="cyan", no_wrap=True)
    failures_table.add_column("Type", style="magenta")
    failures_table.add_column("Error", style="red")
    failures_table.add_column("Created", style="yellow")
    for failure in stats.recent_failures:
        failures_table.add_row(
            str(failure.id)[:8],  # Short ID
            failure.type,
            failure.error or "-",
            failure.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    return [status_table, type_table, failures_table]
