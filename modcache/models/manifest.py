"""
Data types for the declarative manifest.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


def normalize_identifier(value: object) -> str:
    """
    Normalizes an integer-or-string identifier to its decimal string form.

    Raises:
        ValueError: If the value is not a non-negative integer or a digit string.
    """
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool):
        raise ValueError("identifier must be numeric, got a boolean")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"identifier must not be negative, got {value}")
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isascii() and stripped.isdigit():
            return str(int(stripped))
        raise ValueError(f"identifier must be numeric, got '{value}'")
    raise ValueError(f"identifier must be an integer or string, got {type(value).__name__}")


@dataclass(frozen=True)
class ManifestEntry:
    """A single desired artifact: which version of it, and whether it is required."""

    artifact_id: str
    version_id: str
    required: bool = True


class ManifestRecord(BaseModel):
    """Validation model for one record of a CurseForge-style manifest."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    artifact_id: str = Field(alias="projectID")
    version_id: str = Field(alias="fileID")
    required: StrictBool

    @field_validator("artifact_id", "version_id", mode="before")
    @classmethod
    def validate_identifier(cls, v: object) -> str:
        return normalize_identifier(v)

    def to_entry(self) -> ManifestEntry:
        return ManifestEntry(
            artifact_id=self.artifact_id,
            version_id=self.version_id,
            required=self.required,
        )
