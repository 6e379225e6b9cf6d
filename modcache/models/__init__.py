"""
Data Models Layer.

This package contains the dataclasses and Pydantic models that define the core
data structures used throughout the application: manifest entries, cache state,
changesets, configuration and statistics.
"""

from .changeset import Changeset, Fetch, Removal, RemovalReason
from .config import SyncConfig
from .manifest import ManifestEntry
from .state import CacheRecord, CacheState
from .stats import ReconcileStats

__all__ = [
    "CacheRecord",
    "CacheState",
    "Changeset",
    "Fetch",
    "ManifestEntry",
    "ReconcileStats",
    "Removal",
    "RemovalReason",
    "SyncConfig",
]
