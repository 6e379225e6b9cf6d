"""
Computes the changeset between the desired manifest and the cached state.

The diff is a pure function of (artifact id, version id) pairs: it never looks
at file contents, and the `required` flag does not influence it.
"""

import logging
from collections.abc import Iterable, Mapping

from modcache.exceptions import ValidationError
from modcache.models.changeset import Changeset, Fetch, Removal, RemovalReason
from modcache.models.manifest import ManifestEntry
from modcache.models.state import CacheRecord

log = logging.getLogger(__name__)


def diff(
    manifest_entries: Iterable[ManifestEntry],
    old_state: Mapping[str, CacheRecord],
) -> Changeset:
    """
    Builds the ordered changeset that turns `old_state` into the manifest.

    - in old state only: removal (dropped)
    - in manifest only: fetch
    - in both, version differs: removal (version changed) and fetch (update)
    - in both, same version: unchanged
    """
    desired: dict[str, ManifestEntry] = {}
    for entry in manifest_entries:
        if entry.artifact_id in desired:
            raise ValidationError(
                f"Duplicate artifact {entry.artifact_id} in manifest entries."
            )
        desired[entry.artifact_id] = entry

    to_remove: list[Removal] = []
    for artifact_id, record in old_state.items():
        wanted = desired.get(artifact_id)
        if wanted is None:
            to_remove.append(
                Removal(artifact_id, record.version_id, RemovalReason.DROPPED)
            )
        elif wanted.version_id != record.version_id:
            to_remove.append(
                Removal(artifact_id, record.version_id, RemovalReason.VERSION_CHANGED)
            )

    to_fetch: list[Fetch] = []
    unchanged: list[str] = []
    for artifact_id, entry in desired.items():
        record = old_state.get(artifact_id)
        if record is None:
            to_fetch.append(Fetch(artifact_id, entry.version_id, entry.required))
        elif record.version_id != entry.version_id:
            to_fetch.append(
                Fetch(artifact_id, entry.version_id, entry.required, is_update=True)
            )
        else:
            unchanged.append(artifact_id)

    changeset = Changeset(tuple(to_remove), tuple(to_fetch), tuple(unchanged))
    log.debug(f"Computed changeset: {changeset.summary()}")
    return changeset
