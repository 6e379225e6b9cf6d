"""
Reads and validates the declarative manifest into normalized entries.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from modcache.exceptions import ValidationError
from modcache.models.manifest import ManifestEntry, ManifestRecord

log = logging.getLogger(__name__)


def _describe_pydantic_error(error: PydanticValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(p) for p in detail.get("loc", ())) or "record"
        parts.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_manifest(raw: Any) -> list[ManifestEntry]:
    """
    Parses a manifest document into an ordered list of entries.

    Args:
        raw: Either a CurseForge manifest object (with a "files" array) or a
            bare array of records.

    Returns:
        Entries in manifest order, with artifact ids unique.

    Raises:
        ValidationError: If the document or any record is malformed.
    """
    if isinstance(raw, dict):
        if "files" not in raw:
            raise ValidationError("Manifest has no 'files' array.")
        records = raw["files"]
    else:
        records = raw

    if not isinstance(records, list):
        raise ValidationError(
            f"Manifest 'files' must be an array, got {type(records).__name__}."
        )

    entries: list[ManifestEntry] = []
    seen: dict[str, int] = {}
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValidationError(
                f"Manifest record #{position} must be an object, "
                f"got {type(record).__name__}.",
                position=position,
            )
        try:
            entry = ManifestRecord.model_validate(record).to_entry()
        except PydanticValidationError as e:
            raise ValidationError(
                f"Manifest record #{position} is invalid: {_describe_pydantic_error(e)}",
                position=position,
            ) from e

        if entry.artifact_id in seen:
            raise ValidationError(
                f"Manifest record #{position} duplicates artifact "
                f"{entry.artifact_id} (first seen at record #{seen[entry.artifact_id]}).",
                position=position,
            )
        seen[entry.artifact_id] = position
        entries.append(entry)

    log.debug(f"Parsed {len(entries)} manifest entries.")
    return entries


def read_manifest(manifest_path: Path) -> list[ManifestEntry]:
    """Reads a manifest file from disk and parses it."""
    try:
        with open(manifest_path, encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ValidationError(f"Manifest not found at '{manifest_path}'.") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Could not read manifest '{manifest_path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"Manifest '{manifest_path}' is not valid JSON: {e}") from e
    return parse_manifest(raw)
