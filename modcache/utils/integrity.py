"""
Checks for validating downloaded artifact bytes.
"""

import hashlib
import io
import logging
import zipfile

log = logging.getLogger(__name__)

# CurseForge hash algorithm codes
HASH_ALGO_SHA1 = 1
HASH_ALGO_MD5 = 2


def find_expected_sha1(hashes: list[dict] | None) -> str | None:
    """Returns the SHA-1 from a CurseForge `hashes` list, if one is listed."""
    for entry in hashes or []:
        if entry.get("algo") == HASH_ALGO_SHA1 and entry.get("value"):
            return str(entry["value"]).lower()
    return None


def sha1_matches(content: bytes, expected: str) -> bool:
    actual = hashlib.sha1(content).hexdigest()  # noqa: S324
    if actual != expected.lower():
        log.warning(f"SHA-1 mismatch: expected {expected}, got {actual}.")
        return False
    return True


def is_valid_archive(content: bytes) -> bool:
    """
    Performs a basic structural check on a jar/zip payload.

    Returns:
        True if the bytes open as a zip archive with at least one entry.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            return bool(archive.namelist())
    except zipfile.BadZipFile:
        return False
    except Exception as e:
        log.debug(f"Archive check failed with unexpected error: {e}")
        return False
