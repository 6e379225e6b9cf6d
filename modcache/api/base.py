"""
The capability the reconciliation engine consumes to obtain artifact files.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ResolvedArtifact:
    """A downloaded artifact: the name it should have on disk and its bytes."""

    file_name: str
    content: bytes


@dataclass(frozen=True)
class ArtifactMetadata:
    """Display information about an artifact, used for reporting only."""

    display_name: str
    homepage_url: str
    author_name: str


@runtime_checkable
class ArtifactSource(Protocol):
    """Turns artifact identifiers into files and metadata."""

    async def resolve(self, artifact_id: str, version_id: str) -> ResolvedArtifact:
        """
        Downloads one version of an artifact.

        Raises:
            NotFoundError: If the artifact or version does not exist.
            NetworkError: If the download failed.
        """
        ...

    async def fetch_metadata(self, artifact_id: str) -> ArtifactMetadata:
        """Looks up display information for an artifact."""
        ...
