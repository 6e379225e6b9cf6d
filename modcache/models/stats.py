"""
Counters for a single reconciliation run.
"""

from dataclasses import dataclass


@dataclass
class ReconcileStats:
    """Tracks what a run did to the cache directory."""

    artifacts_removed: int = 0
    artifacts_fetched: int = 0
    artifacts_updated: int = 0
    artifacts_failed: int = 0
    artifacts_unchanged: int = 0
    orphans_removed: int = 0
    bytes_written: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, int | bool]:
        return {
            "artifacts_removed": self.artifacts_removed,
            "artifacts_fetched": self.artifacts_fetched,
            "artifacts_updated": self.artifacts_updated,
            "artifacts_failed": self.artifacts_failed,
            "artifacts_unchanged": self.artifacts_unchanged,
            "orphans_removed": self.orphans_removed,
            "bytes_written": self.bytes_written,
            "dry_run": self.dry_run,
        }
