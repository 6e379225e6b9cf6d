"""
Artifact Source Layer.

This package defines the capability the reconciliation engine downloads
through, and its CurseForge implementation.
"""

from .base import ArtifactMetadata, ArtifactSource, ResolvedArtifact
from .client import CurseForgeClient
from .rate_limiter import AdaptiveRateLimiter

__all__ = [
    "AdaptiveRateLimiter",
    "ArtifactMetadata",
    "ArtifactSource",
    "CurseForgeClient",
    "ResolvedArtifact",
]
