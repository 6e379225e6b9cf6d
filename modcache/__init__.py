"""
modcache - keeps a local cache of externally hosted mod files in sync with a
declarative manifest.
"""

__version__ = "0.1.0"
