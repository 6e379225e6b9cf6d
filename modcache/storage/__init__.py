"""
Storage Layer.

This package handles all data persistence: the cache state record, the
configuration file, and the metadata cache.
"""

from .cache import MetadataCache
from .config_manager import ConfigManager
from .state_store import CacheStateStore

__all__ = ["CacheStateStore", "ConfigManager", "MetadataCache"]
