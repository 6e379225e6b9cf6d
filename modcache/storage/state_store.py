"""
Persists the record of which artifact versions are materialized in the cache
directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modcache.exceptions import PersistenceError
from modcache.models.state import CacheRecord, CacheState, StateSnapshot

log = logging.getLogger(__name__)


class CacheStateStore:
    """
    Loads and atomically saves the cache state record.

    A record that is missing, unreadable or unparsable loads as an empty state,
    which degrades to a full refetch rather than to a stale cache.
    """

    def __init__(self, state_path: Path, cache_dir: Path):
        self.state_path = state_path
        self.cache_dir = cache_dir

    def load(self) -> CacheState:
        """
        Reads the persisted state, dropping records that do not match the cache
        directory (interrupted downloads, files removed behind our back).
        """
        if not self.state_path.is_file():
            log.info("No cache state found, every manifest entry will be fetched.")
            return {}

        try:
            with open(self.state_path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning(
                f"[yellow]Cache state '{self.state_path}' is unreadable ({e}); "
                "starting from an empty state.[/yellow]"
            )
            return {}

        try:
            state = self._parse(raw)
        except (ValidationError, TypeError, ValueError) as e:
            log.warning(
                f"[yellow]Cache state '{self.state_path}' is malformed; "
                "starting from an empty state.[/yellow]"
            )
            log.debug(f"State parse error: {e}")
            return {}

        return self._drop_unbacked_records(state)

    def _parse(self, raw: Any) -> CacheState:
        if isinstance(raw, dict) and "artifacts" in raw:
            return StateSnapshot.model_validate(raw).to_state()
        if isinstance(raw, dict):
            return self._migrate_legacy(raw)
        raise TypeError(f"expected a JSON object, got {type(raw).__name__}")

    def _migrate_legacy(self, raw: dict[str, Any]) -> CacheState:
        """
        Converts the flat `{id: {fileID, required, file}}` layout written by the
        old build script.
        """
        state: CacheState = {}
        for artifact_id, legacy in raw.items():
            if not isinstance(legacy, dict) or "fileID" not in legacy:
                raise ValueError(f"unrecognized record for artifact '{artifact_id}'")
            state[str(artifact_id)] = CacheRecord(
                artifact_id=str(artifact_id),
                version_id=str(legacy["fileID"]),
                file_name=legacy.get("file") or None,
            )
        if state:
            log.info(
                f"[yellow]Migrated {len(state)} entries from the legacy cache "
                "state layout.[/yellow]"
            )
        return state

    def _drop_unbacked_records(self, state: CacheState) -> CacheState:
        checked: CacheState = {}
        for artifact_id, record in state.items():
            if record.is_pending:
                log.warning(
                    f"[yellow]Artifact {artifact_id} was mid-download when the "
                    "last run stopped; it will be fetched again.[/yellow]"
                )
                continue
            if Path(record.file_name).name != record.file_name:
                log.warning(
                    f"[yellow]Ignoring artifact {artifact_id}: file name "
                    f"'{record.file_name}' points outside the cache.[/yellow]"
                )
                continue
            if not (self.cache_dir / record.file_name).is_file():
                log.warning(
                    f"[yellow]Cached file '{record.file_name}' for artifact "
                    f"{artifact_id} is missing; it will be fetched again.[/yellow]"
                )
                continue
            checked[artifact_id] = record
        return checked

    def save(self, state: CacheState) -> None:
        """
        Writes the state so that a later `load()` returns it. The write goes to a
        temporary file that replaces the record only once fully on disk.

        Raises:
            PersistenceError: If the record could not be written.
        """
        payload = StateSnapshot.from_state(state).model_dump_json(indent=2)
        temp_path = self.state_path.with_name(f".{self.state_path.name}.tmp")
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.state_path)
        except OSError as e:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                log.debug(f"Could not remove temporary state file '{temp_path}'.")
            raise PersistenceError(
                f"Failed to write cache state to '{self.state_path}': {e}"
            ) from e
        log.debug(f"Saved cache state with {len(state)} entries.")

    def clear(self) -> bool:
        """Removes the persisted record."""
        try:
            self.state_path.unlink(missing_ok=True)
            return True
        except OSError as e:
            log.error(f"Failed to remove cache state '{self.state_path}': {e}")
            return False
