"""
The main orchestrator for one run: manifest → diff → execute → persist.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from modcache.api.base import ArtifactSource
from modcache.cli.progress_manager import ProgressManager
from modcache.exceptions import PersistenceError, ReconciliationError
from modcache.models.changeset import Changeset
from modcache.models.config import SyncConfig
from modcache.models.manifest import ManifestEntry
from modcache.models.state import CacheState
from modcache.models.stats import ReconcileStats
from modcache.storage.state_store import CacheStateStore
from modcache.utils.structured_logger import ReconcileLogger

from .diff import diff
from .executor import ReconciliationExecutor
from .manifest import read_manifest

log = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Everything the caller needs to report on a run."""

    entries: list[ManifestEntry]
    changeset: Changeset
    state: CacheState
    stats: ReconcileStats
    failures: list[ReconciliationError] = field(default_factory=list)
    persistence_error: PersistenceError | None = None
    duration_s: float = 0.0
    dry_run: bool = False

    @property
    def exit_code(self) -> int:
        return 1 if self.failures or self.persistence_error else 0


class Reconciler:
    """Runs one reconciliation of the cache directory against the manifest."""

    def __init__(
        self,
        config: SyncConfig,
        source: ArtifactSource,
        progress: ProgressManager | None = None,
        events: ReconcileLogger | None = None,
    ):
        self.config = config
        self.source = source
        self.progress = progress
        self.events = events
        self.cache_dir = Path(config.cache_dir)
        self.store = CacheStateStore(Path(config.state_file), self.cache_dir)

    async def run(self, dry_run: bool = False) -> RunReport:
        """
        Brings the cache directory in line with the manifest.

        Raises:
            ValidationError: If the manifest is malformed; nothing is touched.
        """
        start_time = time.monotonic()
        entries = read_manifest(Path(self.config.manifest_path))
        old_state = self.store.load()
        changeset = diff(entries, old_state)
        stats = ReconcileStats(dry_run=dry_run)

        summary = changeset.summary()
        log.info(
            f"Manifest has {len(entries)} entries: {summary['added']} new, "
            f"{summary['updated']} updated, {summary['dropped']} dropped, "
            f"{summary['unchanged']} unchanged."
        )

        if dry_run:
            stats.artifacts_unchanged = len(changeset.unchanged)
            return RunReport(
                entries=entries,
                changeset=changeset,
                state=old_state,
                stats=stats,
                duration_s=time.monotonic() - start_time,
                dry_run=dry_run,
            )

        if changeset.is_empty:
            log.info("[green]✓ Cache is already up to date.[/green]")

        if self.events:
            self.events.run_started(
                len(entries), len(changeset.to_remove), len(changeset.to_fetch)
            )

        executor = ReconciliationExecutor(
            source=self.source,
            cache_dir=self.cache_dir,
            max_workers=self.config.max_workers,
            stats=stats,
            progress=self.progress,
            events=self.events,
            on_checkpoint=self.store.save if self.config.checkpoint else None,
        )
        result = await executor.execute(changeset, old_state)

        if result.ok and self.config.prune_orphans:
            executor.sweep_orphans(result.state)

        persistence_error = None
        try:
            self.store.save(result.state)
        except PersistenceError as e:
            persistence_error = e
            log.error(
                f"[red]✗ {e}[/red]\n[yellow]The next run will re-diff from the "
                "previously saved state.[/yellow]"
            )

        duration = time.monotonic() - start_time
        if self.events:
            self.events.run_completed(
                duration,
                stats.artifacts_fetched,
                stats.artifacts_removed,
                stats.artifacts_failed,
                persistence_error is None,
            )

        report = RunReport(
            entries=entries,
            changeset=changeset,
            state=result.state,
            stats=stats,
            failures=result.failures,
            persistence_error=persistence_error,
            duration_s=duration,
        )
        self.save_session_stats(report)
        return report

    def save_session_stats(self, report: RunReport) -> None:
        """Appends the run's counters to a history file next to the state record."""
        stats_file = Path(self.config.state_file).parent / "session_history.jsonl"
        try:
            with open(stats_file, "a", encoding="utf-8") as f:
                session_data = {
                    "timestamp": int(time.time()),
                    **report.stats.as_dict(),
                    "failed_artifacts": [f.artifact_id for f in report.failures],
                    "state_saved": report.persistence_error is None,
                    "duration_seconds": round(report.duration_s, 2),
                }
                json.dump(session_data, f)
                f.write("\n")
        except OSError as e:
            log.warning(f"[yellow]Could not save session stats:[/] {e}")
