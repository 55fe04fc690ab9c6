"""
VOD Archive Container Proxy — byte-range passthrough for MP4 containers.

The player seeks by issuing ranged requests; the status code (200/206) and the
Content-Range header must reach it exactly as the origin sent them, so this
module relays them untouched and streams the body without buffering.
Thumbnails and emote assets share the same passthrough path with the origin's
Content-Type kept.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

import httpx

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import InvalidRequest, UpstreamNotFound, UpstreamTransportError
from vodarchive.services.upstream.upstream_client import UpstreamClient, quote_path

logger = logging.getLogger(__name__)

RANGE_HEADERS = ("content-range", "accept-ranges", "content-length")
ASSET_HEADERS = ("content-length", "content-encoding", "last-modified", "etag")

_HEADER_CASE = {
    "content-range": "Content-Range",
    "accept-ranges": "Accept-Ranges",
    "content-length": "Content-Length",
    "last-modified": "Last-Modified",
    "etag": "ETag",
    "content-encoding": "Content-Encoding",
}


@dataclass
class ProxiedResponse:
    """Status, headers and a one-shot body stream relayed from upstream."""

    status: int
    headers: Dict[str, str]
    upstream: httpx.Response

    async def iter_body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream interrupted for {self.upstream.request.url}: {e!r}")
            raise UpstreamTransportError("Upstream stream interrupted", url=str(self.upstream.request.url)) from e
        finally:
            await self.upstream.aclose()

    async def aclose(self) -> None:
        await self.upstream.aclose()


def validate_relative_path(path: str) -> str:
    """Reject anything that could escape the upstream media directory."""
    cleaned = path.strip()
    if not cleaned or cleaned.startswith("/") or "\\" in cleaned or "://" in cleaned:
        raise InvalidRequest(f"Invalid media path: {path!r}")
    if any(part in ("", ".", "..") for part in cleaned.split("/")):
        raise InvalidRequest(f"Invalid media path: {path!r}")
    return cleaned


def _mirror(source: httpx.Headers, names) -> Dict[str, str]:
    mirrored = {}
    for name in names:
        value = source.get(name)
        if value is not None:
            mirrored[_HEADER_CASE.get(name, name)] = value
    return mirrored


class ContainerProxy:
    def __init__(self, upstream: UpstreamClient, settings: Optional[Settings] = None):
        self.upstream = upstream
        self.settings = settings or get_settings()

    def container_path(self, path: str, query: str = "") -> str:
        upstream_path = f"{self.settings.media_dir.strip('/')}/{quote_path(validate_relative_path(path))}"
        return f"{upstream_path}?{query}" if query else upstream_path

    async def fetch_container(
        self,
        path: str,
        range_header: Optional[str] = None,
        query: str = "",
    ) -> ProxiedResponse:
        """
        Forward a (possibly ranged) container request upstream.

        Raises UpstreamNotFound on any upstream non-2xx, UpstreamTransportError
        on network failure. Neither is retried.
        """
        upstream_path = self.container_path(path, query)
        headers = {"Accept-Encoding": "identity"}
        if range_header:
            headers["Range"] = range_header

        logger.debug(f"Container request {path} range={range_header or 'none'}")
        try:
            response = await self.upstream.open_stream(upstream_path, headers=headers, resource="container")
        except UpstreamNotFound as e:
            logger.warning(f"Container not found upstream: {path} (HTTP {e.upstream_status})")
            raise UpstreamNotFound("Container not found", url=e.url, upstream_status=e.upstream_status) from e
        except UpstreamTransportError as e:
            logger.error(f"Container fetch failed for {path}: {e.message}")
            raise

        out_headers = _mirror(response.headers, RANGE_HEADERS)
        out_headers["Content-Type"] = self.settings.container_media_type
        out_headers["Cache-Control"] = f"public, max-age={self.settings.container_cache_seconds}"
        return ProxiedResponse(status=response.status_code, headers=out_headers, upstream=response)

    async def relay_asset(
        self,
        upstream_path: str,
        cache_seconds: int,
        resource: str = "asset",
        default_media_type: str = "application/octet-stream",
    ) -> ProxiedResponse:
        """Passthrough for small images; upstream Content-Type is kept."""
        try:
            response = await self.upstream.open_stream(
                upstream_path, headers={"Accept-Encoding": "identity"}, resource=resource,
            )
        except UpstreamNotFound as e:
            logger.warning(f"{resource.capitalize()} not found upstream: {upstream_path}")
            raise UpstreamNotFound(f"{resource.capitalize()} not found", url=e.url, upstream_status=e.upstream_status) from e
        except UpstreamTransportError as e:
            logger.error(f"{resource.capitalize()} fetch failed for {upstream_path}: {e.message}")
            raise

        out_headers = _mirror(response.headers, ASSET_HEADERS)
        out_headers["Content-Type"] = response.headers.get("content-type", default_media_type)
        out_headers["Cache-Control"] = f"public, max-age={cache_seconds}"
        return ProxiedResponse(status=response.status_code, headers=out_headers, upstream=response)
