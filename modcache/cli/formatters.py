"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from modcache.exceptions import ReconciliationError
from modcache.models.changeset import Changeset, RemovalReason
from modcache.models.state import CacheState
from modcache.models.stats import ReconcileStats
from modcache.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ValidationError": [
            "• Check the manifest record named in the message.",
            "• projectID and fileID must be numbers; required must be true/false.",
        ],
        "ConfigurationError": [
            "• Run `modcache validate` to see the effective settings.",
            "• Run `modcache init <API_KEY>` to recreate the configuration file.",
        ],
        "PersistenceError": [
            "• Check free disk space and permissions of the state file's folder.",
            "• The next run will redo work from the last saved state.",
        ],
        "FilesystemError": [
            "• Check permissions of the cache directory.",
        ],
        "AggregateReconciliationError": [
            "• Successfully reconciled mods were kept; rerun to retry the rest.",
            "• Run the command with -vv for detailed logs.",
        ],
        "NetworkError": [
            "• Check your internet connection and API key.",
            "• CurseForge might be temporarily unavailable; try again later.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding the API key."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "api_key" and value:
            value = "[hidden]"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{escape(str(config_path))}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config, manifest_entries: int | None = None):
    """Displays a summary of the effective settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row(
        "API Key:", "[green]set[/green]" if config.api_key else "[red]missing[/red]"
    )
    table.add_row("Manifest:", escape(config.manifest_path))
    if manifest_entries is not None:
        table.add_row("Manifest Entries:", str(manifest_entries))
    table.add_row("Cache Dir:", escape(config.cache_dir))
    table.add_row("State File:", escape(config.state_file))
    table.add_row("Max Workers:", str(config.max_workers))
    table.add_row("Checkpoint:", "✓ Enabled" if config.checkpoint else "✗ Disabled")
    table.add_row(
        "Prune Orphans:", "✓ Enabled" if config.prune_orphans else "✗ Disabled"
    )
    table.add_row(
        "Verify Hashes:", "✓ Enabled" if config.verify_hashes else "✗ Disabled"
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_changeset_table(changeset: Changeset, console: Console | None = None):
    """Lists every planned removal and fetch."""
    console = console or Console()
    if changeset.is_empty:
        console.print(
            f"[green]✓ Nothing to do[/green] [dim]({len(changeset.unchanged)} "
            "unchanged)[/dim]"
        )
        return

    table = Table(title="Planned Changes", box=box.ROUNDED)
    table.add_column("Action", style="bold")
    table.add_column("Project", style="cyan")
    table.add_column("File ID", justify="right")
    table.add_column("Note", style="dim")

    for removal in changeset.to_remove:
        if removal.reason is RemovalReason.DROPPED:
            table.add_row(
                "[red]remove[/red]",
                removal.artifact_id,
                removal.version_id,
                "dropped from manifest",
            )
    for fetch in changeset.to_fetch:
        if fetch.is_update:
            table.add_row(
                "[yellow]update[/yellow]",
                fetch.artifact_id,
                fetch.version_id,
                "version changed",
            )
        else:
            table.add_row(
                "[green]add[/green]",
                fetch.artifact_id,
                fetch.version_id,
                "" if fetch.required else "optional",
            )

    console.print(table)
    console.print(f"[dim]{len(changeset.unchanged)} unchanged[/dim]")


def print_failures_table(failures: list[ReconciliationError]):
    """Enumerates every failed artifact with its cause."""
    if not failures:
        return
    console = Console()
    table = Table(title="[bold red]Failed Artifacts[/bold red]", box=box.ROUNDED)
    table.add_column("Project", style="cyan")
    table.add_column("Error", style="red")
    table.add_column("Cause")
    for failure in failures:
        table.add_row(
            failure.artifact_id, type(failure.cause).__name__, escape(str(failure.cause))
        )
    console.print(table)


def print_state_table(state: CacheState, state_path: Path):
    """Displays the persisted cache state."""
    console = Console()
    if not state:
        console.print(f"[dim]No cached artifacts in '{escape(str(state_path))}'.[/dim]")
        return
    table = Table(title=f"Cache State ({len(state)} artifacts)", box=box.ROUNDED)
    table.add_column("Project", style="cyan")
    table.add_column("File ID", justify="right")
    table.add_column("File")
    for artifact_id, record in state.items():
        table.add_row(
            artifact_id,
            record.version_id,
            escape(record.file_name) if record.file_name else "[yellow]pending[/yellow]",
        )
    console.print(table)


def print_summary_panel(
    stats: ReconcileStats,
    duration_s: float,
    progress_stats: dict | None = None,
    state_saved: bool = True,
):
    """Displays the final summary of a run."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=18)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Fetched:", f"[bold green]{stats.artifacts_fetched}[/bold green]"
    )
    if stats.artifacts_updated > 0:
        stats_table.add_row(
            "  of which updated:", f"[yellow]{stats.artifacts_updated}[/yellow]"
        )
    stats_table.add_row("○ Removed:", f"[yellow]{stats.artifacts_removed}[/yellow]")
    stats_table.add_row("= Unchanged:", f"{stats.artifacts_unchanged}")
    if stats.orphans_removed > 0:
        stats_table.add_row("Orphans Pruned:", f"[dim]{stats.orphans_removed}[/dim]")
    if stats.artifacts_failed > 0:
        stats_table.add_row(
            "✗ Failed:", f"[bold red]{stats.artifacts_failed}[/bold red]"
        )

    stats_table.add_row("", "")
    stats_table.add_row("Written:", f"[cyan]{format_size(stats.bytes_written)}[/cyan]")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")
    if progress_stats and progress_stats.get("peak_concurrent"):
        stats_table.add_row(
            "Peak Concurrent:", f"[green]{progress_stats['peak_concurrent']}[/green]"
        )
    if not state_saved:
        stats_table.add_row("State:", "[bold red]NOT SAVED[/bold red]")

    if stats.dry_run:
        title = "🔍 [bold]Dry Run Summary[/bold]"
        border_color = "yellow"
    elif stats.artifacts_failed or not state_saved:
        title = "⚠ [bold]Sync Finished With Errors[/bold]"
        border_color = "red"
    else:
        title = "📦 [bold]Sync Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
