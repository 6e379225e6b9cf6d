"""
Builds the HTML list of the mods in the manifest, with names, links and authors.
"""

import asyncio
import html
import logging
from pathlib import Path

from modcache.api.base import ArtifactMetadata, ArtifactSource
from modcache.exceptions import ArtifactSourceError
from modcache.models.manifest import ManifestEntry
from modcache.storage.cache import MetadataCache

log = logging.getLogger(__name__)


class MetadataBatchFetcher:
    """
    Fetches metadata for many artifacts in parallel, through the metadata cache.
    """

    def __init__(
        self,
        source: ArtifactSource,
        cache: MetadataCache | None = None,
        max_concurrent: int = 8,
    ):
        self.source = source
        self.cache = cache
        self.semaphore = asyncio.Semaphore(max_concurrent)

    async def fetch_one(self, artifact_id: str) -> ArtifactMetadata | None:
        cache_key = f"artifact_meta_{artifact_id}"
        if self.cache and (cached := self.cache.get(cache_key)):
            return ArtifactMetadata(**cached)

        async with self.semaphore:
            try:
                metadata = await self.source.fetch_metadata(artifact_id)
            except ArtifactSourceError as e:
                log.warning(f"[yellow]Failed to fetch info for {artifact_id}: {e}[/yellow]")
                return None

        if self.cache:
            self.cache.set(
                cache_key,
                {
                    "display_name": metadata.display_name,
                    "homepage_url": metadata.homepage_url,
                    "author_name": metadata.author_name,
                },
            )
        return metadata

    async def fetch_batch(
        self, artifact_ids: list[str]
    ) -> dict[str, ArtifactMetadata | None]:
        """Maps every id to its metadata, or None when the lookup failed."""
        if not artifact_ids:
            return {}
        log.debug(f"Batch fetching metadata for {len(artifact_ids)} artifacts...")
        results = await asyncio.gather(*(self.fetch_one(aid) for aid in artifact_ids))
        return dict(zip(artifact_ids, results))


def render_modlist(
    entries: list[ManifestEntry], metadata: dict[str, ArtifactMetadata | None]
) -> str:
    """Renders a `<ul>` with one item per entry, in manifest order."""
    lines = ["<ul>"]
    for entry in entries:
        info = metadata.get(entry.artifact_id)
        if info is None:
            lines.append(f"<li>Project {html.escape(entry.artifact_id)}</li>")
            continue
        name = html.escape(info.display_name)
        author = html.escape(info.author_name)
        if info.homepage_url:
            url = html.escape(info.homepage_url, quote=True)
            lines.append(f'<li><a href="{url}">{name} (by {author})</a></li>')
        else:
            lines.append(f"<li>{name} (by {author})</li>")
    lines.append("</ul>")
    return "\n".join(lines) + "\n"


async def build_modlist(
    entries: list[ManifestEntry],
    source: ArtifactSource,
    cache: MetadataCache | None = None,
    max_concurrent: int = 8,
) -> tuple[str, list[str]]:
    """
    Fetches metadata for every entry and renders the modlist.

    Returns:
        The HTML, and the ids whose metadata could not be fetched.
    """
    fetcher = MetadataBatchFetcher(source, cache, max_concurrent)
    metadata = await fetcher.fetch_batch([e.artifact_id for e in entries])
    missing = [aid for aid, info in metadata.items() if info is None]
    return render_modlist(entries, metadata), missing


def write_modlist(content: str, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(content)
