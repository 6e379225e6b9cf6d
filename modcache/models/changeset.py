"""
The diff between the manifest and the previously persisted cache state.
"""

from dataclasses import dataclass, field
from enum import Enum


class RemovalReason(Enum):
    """Why an artifact's cached file is being removed."""

    DROPPED = "dropped"  # no longer in the manifest
    VERSION_CHANGED = "version_changed"  # replaced by a different version


@dataclass(frozen=True)
class Removal:
    artifact_id: str
    version_id: str
    reason: RemovalReason


@dataclass(frozen=True)
class Fetch:
    artifact_id: str
    version_id: str
    required: bool = True
    is_update: bool = False


@dataclass(frozen=True)
class Changeset:
    """
    An immutable plan. For any artifact id present in both `to_remove` and
    `to_fetch`, the removal must complete before the fetch starts.
    """

    to_remove: tuple[Removal, ...] = field(default_factory=tuple)
    to_fetch: tuple[Fetch, ...] = field(default_factory=tuple)
    unchanged: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        """True when applying this changeset would not touch the cache."""
        return not self.to_remove and not self.to_fetch

    def artifact_ids(self) -> list[str]:
        """Ids that need work, removals first, without duplicates."""
        ids = [r.artifact_id for r in self.to_remove]
        ids.extend(f.artifact_id for f in self.to_fetch)
        return list(dict.fromkeys(ids))

    def summary(self) -> dict[str, int]:
        updated = sum(1 for f in self.to_fetch if f.is_update)
        return {
            "added": len(self.to_fetch) - updated,
            "updated": updated,
            "dropped": sum(
                1 for r in self.to_remove if r.reason is RemovalReason.DROPPED
            ),
            "unchanged": len(self.unchanged),
        }
