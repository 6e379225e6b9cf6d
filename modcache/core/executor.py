"""
Applies a changeset to the cache directory and produces the next cache state.

Removals run first, concurrently up to `max_workers`; fetches start only once
every removal has finished. An artifact whose removal failed is not fetched.
A failing artifact never aborts its siblings: failures are collected and
returned alongside the state reflecting everything that succeeded.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
from pathvalidate import sanitize_filename
from rich.markup import escape

from modcache.api.base import ArtifactSource
from modcache.cli.progress_manager import ProgressManager
from modcache.exceptions import (
    AggregateReconciliationError,
    FilesystemError,
    ModcacheError,
    ReconciliationError,
)
from modcache.models.changeset import Changeset, Fetch, Removal
from modcache.models.state import CacheRecord, CacheState
from modcache.models.stats import ReconcileStats
from modcache.utils.structured_logger import ReconcileLogger

log = logging.getLogger(__name__)

PART_SUFFIX = ".part"


def _unlink_if_exists(path: Path) -> bool:
    """Deletes a file; a missing file is not an error. Returns True if deleted."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


@dataclass
class ExecutionResult:
    """The state after a run, and the artifacts that failed along the way."""

    state: CacheState
    failures: list[ReconciliationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise AggregateReconciliationError(self.failures, self.state)


class ReconciliationExecutor:
    """
    Owns the cache directory for the duration of one run.

    An executor instance handles one `execute` call at a time.
    """

    def __init__(
        self,
        source: ArtifactSource,
        cache_dir: Path,
        max_workers: int = 8,
        stats: ReconcileStats | None = None,
        progress: ProgressManager | None = None,
        events: ReconcileLogger | None = None,
        on_checkpoint: Callable[[CacheState], None] | None = None,
    ):
        """
        Args:
            source: Where artifact files come from.
            cache_dir: Directory holding one file per cached artifact.
            max_workers: Maximum number of artifacts processed concurrently.
            stats: Counters to update, a fresh instance if omitted.
            progress: Optional live display.
            events: Optional structured event log.
            on_checkpoint: Called with a snapshot of the working state after
            each artifact completes, to persist progress incrementally.
        """
        self.source = source
        self.cache_dir = cache_dir
        self.max_workers = max_workers
        self.stats = stats or ReconcileStats()
        self.progress = progress
        self.events = events
        self.on_checkpoint = on_checkpoint

        self._working: CacheState = {}
        self._claimed: dict[str, str] = {}
        self._failures: list[ReconciliationError] = []
        self._checkpoint_lock = asyncio.Lock()

    async def execute(
        self, changeset: Changeset, old_state: Mapping[str, CacheRecord]
    ) -> ExecutionResult:
        """
        Applies `changeset` on top of `old_state`.

        Raises:
            FilesystemError: Only if the cache directory itself cannot be created.
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Cannot create cache directory '{self.cache_dir}': {e}"
            ) from e

        self._working = dict(old_state)
        self._claimed = {
            record.file_name: artifact_id
            for artifact_id, record in self._working.items()
            if record.file_name
        }
        self._failures = []

        fetches = {f.artifact_id: f for f in changeset.to_fetch}
        self.stats.artifacts_unchanged += len(changeset.unchanged)

        if self.progress:
            self.progress.initialize_session(len(changeset.artifact_ids()))

        semaphore = asyncio.Semaphore(self.max_workers)
        blocked: set[str] = set()

        async def run_removal(removal: Removal) -> None:
            artifact_id = removal.artifact_id
            async with semaphore:
                task_id = self._start_task(f"Removing {artifact_id}")
                ok = await self._attempt(
                    artifact_id, "remove", self._remove(removal, old_state.get(artifact_id))
                )
                if not ok:
                    # the old file is still there, fetching now would put two
                    # versions in the same slot
                    blocked.add(artifact_id)
                if self.progress:
                    self.progress.remove_task(
                        task_id, success=ok, finished=not ok or artifact_id not in fetches
                    )
            if self.on_checkpoint:
                await self._checkpoint()

        async def run_fetch(fetch: Fetch) -> None:
            async with semaphore:
                task_id = self._start_task(self._describe(fetch))
                ok = await self._attempt(fetch.artifact_id, "fetch", self._fetch(fetch))
                if self.progress:
                    self.progress.remove_task(task_id, success=ok)
            if self.on_checkpoint:
                await self._checkpoint()

        # every removal finishes before any fetch starts, so a file name given
        # up by one artifact is free for another
        await asyncio.gather(*(run_removal(r) for r in changeset.to_remove))
        await asyncio.gather(
            *(run_fetch(f) for f in changeset.to_fetch if f.artifact_id not in blocked)
        )

        return ExecutionResult(state=dict(self._working), failures=list(self._failures))

    def _start_task(self, description: str):
        if self.progress:
            return self.progress.add_artifact_task(description)
        return None

    @staticmethod
    def _describe(fetch: Fetch) -> str:
        if fetch.is_update:
            return f"Updating {fetch.artifact_id} → {fetch.version_id}"
        return f"Fetching {fetch.artifact_id} ({fetch.version_id})"

    async def _attempt(self, artifact_id: str, stage: str, step) -> bool:
        """Awaits one step for an artifact, recording its failure. Returns success."""
        try:
            await step
        except Exception as e:
            self._record_failure(artifact_id, stage, e)
            return False
        return True

    def _record_failure(self, artifact_id: str, stage: str, error: Exception) -> None:
        self.stats.artifacts_failed += 1
        self._failures.append(ReconciliationError(artifact_id, error))
        if self.events:
            self.events.artifact_failed(artifact_id, stage, str(error))
        log.error(
            f"  [red]✗ Failed to {stage}:[/] {artifact_id} ({escape(str(error))})",
            exc_info=log.getEffectiveLevel() == logging.DEBUG
            and not isinstance(error, ModcacheError),
        )

    async def _remove(self, removal: Removal, old_record: CacheRecord | None) -> None:
        artifact_id = removal.artifact_id
        file_name = old_record.file_name if old_record else None

        if file_name:
            try:
                deleted = await asyncio.to_thread(
                    _unlink_if_exists, self.cache_dir / file_name
                )
            except OSError as e:
                raise FilesystemError(f"Could not delete '{file_name}': {e}") from e
            if not deleted:
                log.debug(f"'{file_name}' was already gone from the cache.")
            if self._claimed.get(file_name) == artifact_id:
                del self._claimed[file_name]

        self._working.pop(artifact_id, None)
        self.stats.artifacts_removed += 1
        if self.events:
            self.events.artifact_removed(
                artifact_id, removal.version_id, removal.reason.value
            )
        log.info(
            f"  [yellow]○ Removed:[/] {artifact_id} "
            f"[dim]({removal.reason.value.replace('_', ' ')})[/dim]"
        )

    async def _fetch(self, fetch: Fetch) -> None:
        artifact_id = fetch.artifact_id
        prior = self._working.get(artifact_id)
        if self.on_checkpoint:
            self._working[artifact_id] = CacheRecord(
                artifact_id=artifact_id, version_id=fetch.version_id
            )

        try:
            resolved = await self.source.resolve(artifact_id, fetch.version_id)
            file_name = self._claim_file_name(artifact_id, resolved.file_name, prior)
            try:
                await self._write_file(file_name, resolved.content)
            except Exception:
                if not prior or prior.file_name != file_name:
                    self._claimed.pop(file_name, None)
                raise
        except Exception:
            # leave whatever was there before this fetch untouched
            if prior is None:
                self._working.pop(artifact_id, None)
            else:
                self._working[artifact_id] = prior
            raise

        if prior and prior.file_name and prior.file_name != file_name:
            await self._discard_previous_file(artifact_id, prior.file_name)

        self._working[artifact_id] = CacheRecord(
            artifact_id=artifact_id, version_id=fetch.version_id, file_name=file_name
        )
        size = len(resolved.content)
        self.stats.artifacts_fetched += 1
        self.stats.bytes_written += size
        if fetch.is_update:
            self.stats.artifacts_updated += 1
        if self.events:
            self.events.artifact_fetched(artifact_id, fetch.version_id, file_name, size)
        log.info(f"  [green]✓ Fetched:[/] {artifact_id} [dim]{escape(file_name)}[/dim]")

    def _claim_file_name(
        self, artifact_id: str, raw_name: str, prior: CacheRecord | None
    ) -> str:
        """Sanitizes a file name and reserves it for `artifact_id`."""
        file_name = sanitize_filename(raw_name or "").strip()
        if not file_name or file_name.startswith(".") or file_name.endswith(PART_SUFFIX):
            raise FilesystemError(f"Unusable file name '{raw_name}'.")

        owner = self._claimed.get(file_name)
        if owner is not None and owner != artifact_id:
            raise FilesystemError(
                f"File name '{file_name}' is already used by artifact {owner}."
            )
        self._claimed[file_name] = artifact_id
        return file_name

    async def _write_file(self, file_name: str, content: bytes) -> None:
        """Writes to a hidden partial file, then renames it into place."""
        final_path = self.cache_dir / file_name
        part_path = self.cache_dir / f".{file_name}{PART_SUFFIX}"
        try:
            async with aiofiles.open(part_path, "wb") as f:
                await f.write(content)
            await asyncio.to_thread(os.replace, part_path, final_path)
        except OSError as e:
            try:
                await asyncio.to_thread(_unlink_if_exists, part_path)
            except OSError:
                log.debug(f"Could not remove partial file '{part_path.name}'.")
            raise FilesystemError(f"Could not write '{file_name}': {e}") from e

    async def _discard_previous_file(self, artifact_id: str, file_name: str) -> None:
        if self._claimed.get(file_name) == artifact_id:
            del self._claimed[file_name]
        try:
            await asyncio.to_thread(_unlink_if_exists, self.cache_dir / file_name)
        except OSError as e:
            log.warning(f"Could not delete superseded file '{file_name}': {e}")

    async def _checkpoint(self) -> None:
        async with self._checkpoint_lock:
            snapshot = dict(self._working)
            try:
                await asyncio.to_thread(self.on_checkpoint, snapshot)
            except (ModcacheError, OSError) as e:
                log.warning(f"[yellow]Checkpoint of cache state failed: {e}[/yellow]")

    def sweep_orphans(self, state: Mapping[str, CacheRecord]) -> list[str]:
        """
        Deletes files in the cache directory that no record references,
        including partial files left by interrupted downloads.

        Returns:
            The names of the deleted files.
        """
        if not self.cache_dir.is_dir():
            return []

        referenced = {r.file_name for r in state.values() if r.file_name}
        removed = []
        for entry in sorted(self.cache_dir.iterdir()):
            if not entry.is_file() or entry.name in referenced:
                continue
            try:
                entry.unlink()
                removed.append(entry.name)
            except OSError as e:
                log.warning(f"Could not delete orphaned file '{entry.name}': {e}")

        if removed:
            self.stats.orphans_removed += len(removed)
            log.info(f"Removed {len(removed)} orphaned file(s) from the cache.")
        return removed
