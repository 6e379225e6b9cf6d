"""
Async client for the CurseForge REST API, implementing the ArtifactSource
capability with rate limiting, a circuit breaker and download retries.
"""

import asyncio
import logging
import time
from typing import Any

import aiohttp

from modcache.exceptions import FileIntegrityError, NetworkError, NotFoundError
from modcache.models.config import DEFAULT_API_BASE_URL
from modcache.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError
from modcache.utils.integrity import find_expected_sha1, is_valid_archive, sha1_matches

from .base import ArtifactMetadata, ResolvedArtifact
from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)


class CurseForgeClient:
    """
    Resolves CurseForge project/file ids to downloaded files.

    Features:
    - API key authentication
    - Adaptive rate limiting
    - Circuit breaker for API resilience
    - Retried downloads with exponential backoff
    - SHA-1 verification against the file's published hash
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        max_workers: int = 8,
        verify_hashes: bool = True,
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        """
        Args:
            api_key: CurseForge API key, sent as the `x-api-key` header.
            base_url: API root, ending in a slash.
            max_workers: The number of concurrent workers, used to size the pool.
            verify_hashes: Check downloads against the published SHA-1.
            max_attempts: Download attempts per file.
            base_delay: First retry delay in seconds, doubled per attempt.
        """
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.max_workers = max_workers
        self.verify_hashes = verify_hashes
        self.max_attempts = max_attempts
        self.base_delay = base_delay

        self._session: aiohttp.ClientSession | None = None
        self._rate_limiter = AdaptiveRateLimiter()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            success_threshold=2,
            ignored_exceptions=(NotFoundError,),
        )

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "Accept": "application/json",
                    "User-Agent": "modcache",
                    "x-api-key": self.api_key,
                },
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def api_call(self, endpoint: str, **params: Any) -> dict[str, Any]:
        """
        Makes an authenticated API call with rate limiting and circuit breaker.

        Raises:
            NotFoundError: On HTTP 404.
            NetworkError: On any other transport or HTTP failure.
        """
        session = await self._initialize_session()
        try:
            async with self._circuit_breaker:
                await self._rate_limiter.acquire()
                start_time = time.monotonic()
                async with session.get(self.base_url + endpoint, params=params) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(f"GET {endpoint} -> {r.status} in {duration_ms:.0f}ms")

                    if r.status == 404:
                        raise NotFoundError(f"CurseForge has no resource at '{endpoint}'.")
                    if r.status == 429:
                        await self._rate_limiter.on_429()
                    if r.status == 403:
                        raise NetworkError(
                            "CurseForge rejected the request (HTTP 403). "
                            "Check the configured API key."
                        )
                    r.raise_for_status()
                    return await r.json()
        except CircuitBreakerError as e:
            raise NetworkError(str(e)) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"API call to '{endpoint}' failed: {e}") from e

    async def fetch_file_info(self, artifact_id: str, version_id: str) -> dict[str, Any]:
        response = await self.api_call(f"mods/{artifact_id}/files/{version_id}")
        return response.get("data") or {}

    async def fetch_download_url(self, artifact_id: str, version_id: str) -> str | None:
        response = await self.api_call(
            f"mods/{artifact_id}/files/{version_id}/download-url"
        )
        return response.get("data")

    async def _download_bytes(self, url: str) -> bytes:
        """Downloads a file into memory, retrying transient failures."""
        session = await self._initialize_session()
        last_exception: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with session.get(url, allow_redirects=True) as response:
                    if response.status == 404:
                        raise NotFoundError(f"Download URL returned 404: {url}")
                    response.raise_for_status()
                    return await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for '{url}' "
                    f"failed: {e}."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        raise NetworkError(
            f"Download failed after {self.max_attempts} attempts: {last_exception}"
        ) from last_exception

    async def resolve(self, artifact_id: str, version_id: str) -> ResolvedArtifact:
        """Downloads the given file of a project."""
        info = await self.fetch_file_info(artifact_id, version_id)
        file_name = info.get("fileName")
        if not file_name:
            raise NotFoundError(
                f"File {version_id} of project {artifact_id} has no file name."
            )

        url = info.get("downloadUrl") or await self.fetch_download_url(
            artifact_id, version_id
        )
        if not url:
            raise NotFoundError(
                f"Project {artifact_id} does not allow third-party downloads of "
                f"file {version_id}."
            )

        content = await self._download_bytes(url)
        log.debug(f"Downloaded '{file_name}' ({len(content)} bytes).")

        if self.verify_hashes:
            expected = find_expected_sha1(info.get("hashes"))
            if expected and not sha1_matches(content, expected):
                raise FileIntegrityError(
                    f"'{file_name}' does not match its published SHA-1."
                )
            if file_name.lower().endswith(".jar") and not is_valid_archive(content):
                raise FileIntegrityError(f"'{file_name}' is not a valid jar archive.")

        return ResolvedArtifact(file_name=file_name, content=content)

    async def fetch_metadata(self, artifact_id: str) -> ArtifactMetadata:
        """Looks up a project's display name, website and first author."""
        response = await self.api_call(f"mods/{artifact_id}")
        data = response.get("data") or {}
        authors = data.get("authors") or []
        return ArtifactMetadata(
            display_name=data.get("name") or f"Project {artifact_id}",
            homepage_url=(data.get("links") or {}).get("websiteUrl") or "",
            author_name=authors[0].get("name", "Unknown") if authors else "Unknown",
        )
