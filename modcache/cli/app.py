"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from modcache import __version__
from modcache.api.base import ArtifactSource
from modcache.api.client import CurseForgeClient
from modcache.core.manifest import read_manifest
from modcache.core.modlist import build_modlist, write_modlist
from modcache.core.reconciler import Reconciler, RunReport
from modcache.exceptions import ConfigurationError, ModcacheError
from modcache.models.config import SyncConfig
from modcache.storage.cache import MetadataCache
from modcache.storage.config_manager import ConfigManager
from modcache.storage.state_store import CacheStateStore
from modcache.utils.formatting import pluralize
from modcache.utils.structured_logger import create_structured_logger

from .formatters import (
    format_error_with_suggestions,
    print_changeset_table,
    print_config,
    print_failures_table,
    print_state_table,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("modcache")

app = typer.Typer(
    name="modcache",
    help=(
        "Keeps a local cache of CurseForge mod files in sync with a modpack"
        " manifest. Use 'modcache <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "modcache"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def create_source(config: SyncConfig) -> ArtifactSource:
    """Builds the artifact source used for downloads and metadata."""
    return CurseForgeClient(
        api_key=config.api_key,
        base_url=config.api_base_url,
        max_workers=config.max_workers,
        verify_hashes=config.verify_hashes,
    )


async def _close_source(source: ArtifactSource) -> None:
    close = getattr(source, "close", None)
    if close is not None:
        await close()


def _load_config(cli_options: dict | None = None) -> SyncConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _require_api_key(config: SyncConfig) -> None:
    if not config.api_key:
        error = ConfigurationError(
            "No CurseForge API key configured. Use --api-key, the "
            "CURSEFORGE_API_KEY variable, or 'modcache init'."
        )
        console.print(format_error_with_suggestions(error))
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the mod metadata cache and exit."
    ),
):
    """modcache - modpack mod cache synchronizer"""
    if version:
        console.print(f"[bold]modcache[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("modcache").setLevel(log_level)

    if clear_cache:
        cache = MetadataCache(CONFIG_DIR)
        console.print("[cyan]Clearing metadata cache...[/cyan]")
        removed = cache.clear()
        console.print(
            f"[green]✓ Cache cleared successfully ({removed} entries removed).[/green]"
        )
        raise typer.Exit()

    if show_config:
        try:
            config_data = ConfigManager(CONFIG_FILE).get_config_as_dict()
        except ConfigurationError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(code=1) from e
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    api_key: str = typer.Argument(..., help="Your CurseForge API key."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Initialize the configuration with a CurseForge API key."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config({"api_key": api_key})
    except ConfigurationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to sync! Try: [cyan]modcache sync[/cyan]")


def _run_sync(
    cli_options: dict, dry_run: bool, log_dir: Path | None
) -> RunReport:
    config = _load_config(cli_options)
    if not dry_run:
        _require_api_key(config)

    async def _sync_async() -> tuple[RunReport, dict]:
        base_logger, events = create_structured_logger(log_dir)
        source = create_source(config)
        try:
            async with ProgressManager(console=console, dry_run=dry_run) as progress:
                reconciler = Reconciler(config, source, progress=progress, events=events)
                report = await reconciler.run(dry_run=dry_run)
                return report, progress.get_statistics()
        finally:
            await _close_source(source)
            base_logger.close()

    try:
        report, progress_stats = asyncio.run(_sync_async())
    except ModcacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    print_changeset_table(report.changeset, console)
    print_summary_panel(
        report.stats,
        report.duration_s,
        progress_stats,
        state_saved=report.dry_run or report.persistence_error is None,
    )
    print_failures_table(report.failures)
    if report.persistence_error:
        console.print(
            "[bold red]✗ The cache state could not be saved.[/bold red] "
            "[yellow]The next run will redo work from the previous state.[/yellow]"
        )
    return report


@app.command(name="sync")
def sync_command(
    manifest: Path | None = typer.Option(
        None, "--manifest", "-m", help="Path to the modpack manifest.json."
    ),
    cache_dir: Path | None = typer.Option(
        None, "--cache-dir", "-c", help="Directory holding the cached mod files."
    ),
    state_file: Path | None = typer.Option(
        None, "--state-file", help="Where the cache state record is kept."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of mods processed simultaneously."
    ),
    api_key: str | None = typer.Option(
        None, "--api-key", envvar="CURSEFORGE_API_KEY", help="CurseForge API key."
    ),
    checkpoint: bool | None = typer.Option(
        None,
        "--checkpoint/--no-checkpoint",
        help="Save the cache state after every mod, not only at the end.",
    ),
    prune: bool | None = typer.Option(
        None,
        "--prune/--no-prune",
        help="Delete files in the cache directory that no mod owns.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show the planned changes without touching anything."
    ),
    log_dir: Path | None = typer.Option(
        None, "--log-dir", help="Write a JSON-lines event log into this directory."
    ),
):
    """Bring the mod cache in line with the manifest."""
    cli_options = {
        key: value
        for key, value in {
            "manifest_path": str(manifest) if manifest else None,
            "cache_dir": str(cache_dir) if cache_dir else None,
            "state_file": str(state_file) if state_file else None,
            "max_workers": workers,
            "api_key": api_key,
            "checkpoint": checkpoint,
            "prune_orphans": prune,
        }.items()
        if value is not None
    }
    report = _run_sync(cli_options, dry_run, log_dir)
    if report.exit_code:
        raise typer.Exit(code=report.exit_code)


@app.command()
def plan(
    manifest: Path | None = typer.Option(
        None, "--manifest", "-m", help="Path to the modpack manifest.json."
    ),
    cache_dir: Path | None = typer.Option(
        None, "--cache-dir", "-c", help="Directory holding the cached mod files."
    ),
    state_file: Path | None = typer.Option(
        None, "--state-file", help="Where the cache state record is kept."
    ),
):
    """Show what 'sync' would change (same as 'sync --dry-run')."""
    cli_options = {
        key: str(value)
        for key, value in {
            "manifest_path": manifest,
            "cache_dir": cache_dir,
            "state_file": state_file,
        }.items()
        if value is not None
    }
    _run_sync(cli_options, dry_run=True, log_dir=None)


@app.command()
def status(
    cache_dir: Path | None = typer.Option(None, "--cache-dir", "-c"),
    state_file: Path | None = typer.Option(None, "--state-file"),
):
    """Show the persisted cache state."""
    cli_options = {
        key: str(value)
        for key, value in {"cache_dir": cache_dir, "state_file": state_file}.items()
        if value is not None
    }
    config = _load_config(cli_options)
    state_path = Path(config.state_file)
    state = CacheStateStore(state_path, Path(config.cache_dir)).load()
    print_state_table(state, state_path)


@app.command()
def modlist(
    manifest: Path | None = typer.Option(
        None, "--manifest", "-m", help="Path to the modpack manifest.json."
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Where to write the HTML modlist."
    ),
    api_key: str | None = typer.Option(
        None, "--api-key", envvar="CURSEFORGE_API_KEY", help="CurseForge API key."
    ),
):
    """Write an HTML list of the mods in the manifest."""
    cli_options = {
        key: value
        for key, value in {
            "manifest_path": str(manifest) if manifest else None,
            "modlist_path": str(output) if output else None,
            "api_key": api_key,
        }.items()
        if value is not None
    }
    config = _load_config(cli_options)
    _require_api_key(config)

    async def _modlist_async() -> tuple[str, list[str]]:
        entries = read_manifest(Path(config.manifest_path))
        cache = MetadataCache(CONFIG_DIR, max_age_days=config.metadata_cache_days)
        source = create_source(config)
        try:
            return await build_modlist(
                entries, source, cache, max_concurrent=config.max_workers
            )
        finally:
            await _close_source(source)

    try:
        content, missing = asyncio.run(_modlist_async())
        write_modlist(content, Path(config.modlist_path))
    except ModcacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    except OSError as e:
        console.print(f"[red]✗ Could not write modlist: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]✓ Modlist written to '{config.modlist_path}'.[/green]")
    if missing:
        console.print(
            f"[yellow]⚠️  No info for {pluralize(len(missing), 'mod')}: "
            f"{', '.join(missing)}[/yellow]"
        )


@app.command()
def clean(
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete the mod cache, its state record and the modlist."""
    config = _load_config()
    if not force and not typer.confirm(
        f"Delete '{config.cache_dir}', '{config.state_file}' and "
        f"'{config.modlist_path}'? Every mod will be downloaded again."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    cache_dir = Path(config.cache_dir)
    ok = True
    if cache_dir.is_dir():
        try:
            shutil.rmtree(cache_dir)
        except OSError as e:
            console.print(f"[red]✗ Failed to delete '{cache_dir}': {e}[/red]")
            ok = False
    ok = CacheStateStore(Path(config.state_file), cache_dir).clear() and ok
    try:
        Path(config.modlist_path).unlink(missing_ok=True)
    except OSError as e:
        console.print(f"[red]✗ Failed to delete modlist: {e}[/red]")
        ok = False

    if not ok:
        raise typer.Exit(code=1)
    console.print("[green]✓ Cache cleaned.[/green]")


@app.command()
def validate():
    """Validate the configuration and the manifest."""
    config = _load_config()
    entries = None
    manifest_path = Path(config.manifest_path)
    if manifest_path.is_file():
        try:
            entries = len(read_manifest(manifest_path))
        except ModcacheError as e:
            console.print(f"[red]✗ Manifest is invalid: {e}[/red]")
            raise typer.Exit(code=1) from e
    else:
        console.print(f"[yellow]⚠️  Manifest '{manifest_path}' not found.[/yellow]")
    print_validation_table(config, entries)
