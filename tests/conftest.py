"""Shared fixtures: an in-memory artifact source and on-disk workspaces."""

import json
from pathlib import Path

import pytest

from modcache.api.base import ArtifactMetadata, ResolvedArtifact
from modcache.exceptions import NetworkError, NotFoundError
from modcache.models.config import SyncConfig
from modcache.models.state import CacheRecord, CacheState


class FakeArtifactSource:
    """
    Serves `{id}-{version}.jar` for every request unless told otherwise.

    `fail` maps artifact ids to the exception `resolve` raises for them.
    `names` overrides the file name returned for an artifact id.
    `on_resolve` is called with (artifact_id, version_id) before returning.
    """

    def __init__(self, cache_dir: Path | None = None):
        self.cache_dir = cache_dir
        self.fail: dict[str, Exception] = {}
        self.names: dict[str, str] = {}
        self.metadata: dict[str, ArtifactMetadata] = {}
        self.calls: list[tuple[str, str]] = []
        self.metadata_calls: list[str] = []
        self.on_resolve = None

    async def resolve(self, artifact_id: str, version_id: str) -> ResolvedArtifact:
        self.calls.append((artifact_id, version_id))
        if self.on_resolve:
            self.on_resolve(artifact_id, version_id)
        if artifact_id in self.fail:
            raise self.fail[artifact_id]
        file_name = self.names.get(artifact_id, f"{artifact_id}-{version_id}.jar")
        return ResolvedArtifact(
            file_name=file_name, content=f"{artifact_id}:{version_id}".encode()
        )

    async def fetch_metadata(self, artifact_id: str) -> ArtifactMetadata:
        self.metadata_calls.append(artifact_id)
        if artifact_id not in self.metadata:
            raise NotFoundError(f"no project {artifact_id}")
        return self.metadata[artifact_id]


def make_state(cache_dir: Path, *pairs: tuple[str, str]) -> CacheState:
    """Builds a state and materializes its files the way FakeArtifactSource names them."""
    cache_dir.mkdir(parents=True, exist_ok=True)
    state: CacheState = {}
    for artifact_id, version_id in pairs:
        file_name = f"{artifact_id}-{version_id}.jar"
        (cache_dir / file_name).write_bytes(f"{artifact_id}:{version_id}".encode())
        state[artifact_id] = CacheRecord(
            artifact_id=artifact_id, version_id=version_id, file_name=file_name
        )
    return state


def write_manifest(path: Path, *entries: tuple[str, str], required: bool = True) -> Path:
    files = [
        {"projectID": int(aid), "fileID": int(vid), "required": required}
        for aid, vid in entries
    ]
    path.write_text(json.dumps({"manifestType": "minecraftModpack", "files": files}))
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "dist" / "modcache"


@pytest.fixture
def source(cache_dir: Path) -> FakeArtifactSource:
    return FakeArtifactSource(cache_dir)


@pytest.fixture
def sync_config(tmp_path: Path, cache_dir: Path) -> SyncConfig:
    return SyncConfig(
        manifest_path=str(tmp_path / "manifest.json"),
        cache_dir=str(cache_dir),
        state_file=str(tmp_path / "dist" / "cache.json"),
        modlist_path=str(tmp_path / "dist" / "modlist.html"),
        max_workers=4,
    )


@pytest.fixture
def network_error() -> NetworkError:
    return NetworkError("connection reset")


@pytest.fixture
def state_factory():
    return make_state


@pytest.fixture
def manifest_factory():
    return write_manifest
