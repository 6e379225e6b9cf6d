"""
Data types describing what the cache directory holds.
"""

from pydantic import BaseModel, ConfigDict, Field

STATE_FORMAT_VERSION = 1


class CacheRecord(BaseModel):
    """
    What is on disk for one artifact.

    `file_name` is None while a fetch for this record is still in flight; a
    persisted record without a file name marks an interrupted download.
    """

    model_config = ConfigDict(frozen=True)

    artifact_id: str
    version_id: str
    file_name: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.file_name is None


# artifact_id -> record, in insertion order
CacheState = dict[str, CacheRecord]


class StoredRecord(BaseModel):
    """On-disk form of a CacheRecord (the artifact id is the mapping key)."""

    version_id: str
    file_name: str | None = None


class StateSnapshot(BaseModel):
    """The persisted cache state document."""

    format_version: int = STATE_FORMAT_VERSION
    artifacts: dict[str, StoredRecord] = Field(default_factory=dict)

    @classmethod
    def from_state(cls, state: CacheState) -> "StateSnapshot":
        return cls(
            artifacts={
                artifact_id: StoredRecord(
                    version_id=record.version_id, file_name=record.file_name
                )
                for artifact_id, record in state.items()
            }
        )

    def to_state(self) -> CacheState:
        return {
            artifact_id: CacheRecord(
                artifact_id=artifact_id,
                version_id=stored.version_id,
                file_name=stored.file_name,
            )
            for artifact_id, stored in self.artifacts.items()
        }
