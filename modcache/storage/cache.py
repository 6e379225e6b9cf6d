"""
A simple, file-based JSON cache with a time-to-live (TTL) for artifact metadata
lookups, so repeated modlist builds do not hit the API for every entry.
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


class MetadataCache:
    """
    Manages a JSON-based file cache with TTL and hit/miss counters.
    """

    MAX_CACHE_VALUE_KB = 64

    def __init__(self, cache_dir_path: Path, max_age_days: int = 1):
        """
        Initializes the cache.

        Args:
            cache_dir_path: The directory under which a "metadata" folder is kept.
            max_age_days: The maximum age of a cache entry in days before it
            expires. Zero disables caching.
        """
        self.cache_dir = cache_dir_path / "metadata"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_days * 86400
        self.hits = 0
        self.misses = 0
        self._cleanup_expired_entries()

    def _get_cache_path(self, key: str) -> Path:
        """Generates a safe filename for a given cache key."""
        hashed_key = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.cache_dir / f"{hashed_key}.json"

    def _cleanup_expired_entries(self) -> None:
        """Scans the cache directory and removes expired files."""
        now = time.time()
        cleaned_count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                if now - cache_file.stat().st_mtime > self.max_age_seconds:
                    cache_file.unlink()
                    cleaned_count += 1
            except OSError as e:
                log.warning(
                    f"Failed to remove expired cache file {cache_file.name}: {e}"
                )
        if cleaned_count > 0:
            log.debug(f"Cache cleanup: removed {cleaned_count} expired entries.")

    def get(self, key: str) -> Any | None:
        """
        Retrieves a value from the cache. Returns None if the key is not found or
        expired.
        """
        cache_path = self._get_cache_path(key)

        if not cache_path.is_file():
            self.misses += 1
            return None

        try:
            if time.time() - cache_path.stat().st_mtime > self.max_age_seconds:
                cache_path.unlink()
                self.misses += 1
                return None

            with open(cache_path, encoding="utf-8") as f:
                data = json.load(f)
            self.hits += 1
            return data.get("value")
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Cache read failed for key '{key}': {e}")
            self.misses += 1
            return None

    def set(self, key: str, value: Any) -> bool:
        """
        Saves a value to the cache, with a size limit check.
        """
        if self.max_age_seconds <= 0:
            return False

        cache_path = self._get_cache_path(key)
        try:
            payload = {"key": key, "timestamp": time.time(), "value": value}
            serialized_payload = json.dumps(payload)
            size_kb = len(serialized_payload) / 1024

            if size_kb > self.MAX_CACHE_VALUE_KB:
                log.debug(
                    f"Cache value for key '{key}' is too large ({size_kb:.1f} KB), "
                    "skipping."
                )
                return False

            with open(cache_path, "w", encoding="utf-8") as f:
                f.write(serialized_payload)
            return True
        except (TypeError, OSError) as e:
            log.warning(f"Cache write failed for key '{key}': {e}")
            return False

    def clear(self) -> int:
        """Removes all items from the cache and returns how many were removed."""
        log.info("Clearing all metadata cache entries...")
        removed = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                cache_file.unlink()
                removed += 1
            except OSError as e:
                log.error(f"Failed to remove cache file {cache_file.name}: {e}")
        return removed
