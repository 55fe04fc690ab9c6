"""
VOD Archive Upstream Client — thin async wrapper around the fixed origin.

Responsibilities:
  - Issue GETs (optionally conditional, optionally ranged) against the origin
  - Bound every call with a timeout
  - Convert httpx failures into the archive error taxonomy, so no transport
    exception ever crosses a service boundary
  - Hand out streaming responses for container / image passthrough
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import httpx

from vodarchive.core.errors import MalformedUpstreamData, UpstreamNotFound, UpstreamTransportError
from vodarchive.core.metrics import UPSTREAM_LATENCY, UPSTREAM_REQUESTS

logger = logging.getLogger(__name__)


def quote_segment(value: Any) -> str:
    """Percent-encode a single path segment (ids, sizes, names)."""
    return quote(str(value), safe="")


def quote_path(value: str) -> str:
    """Percent-encode a relative path, keeping its slashes."""
    return quote(value, safe="/")


class UpstreamClient:
    """Issues requests against one upstream origin."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        user_agent: str = "vodarchive",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.base_url + path.lstrip("/")

    # ── Buffered requests ────────────────────────────────────────────────

    async def _get(
        self,
        path: str,
        resource: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = self.url_for(path)
        started = time.perf_counter()
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as e:
            UPSTREAM_REQUESTS.labels(resource=resource, outcome="transport_error").inc()
            logger.debug(f"Upstream transport failure for {url}: {e!r}")
            raise UpstreamTransportError(f"Upstream request failed: {type(e).__name__}", url=url) from e
        UPSTREAM_LATENCY.labels(resource=resource).observe(time.perf_counter() - started)
        return response

    def _check(self, response: httpx.Response, resource: str) -> None:
        if response.is_success:
            UPSTREAM_REQUESTS.labels(resource=resource, outcome="ok").inc()
            return
        UPSTREAM_REQUESTS.labels(resource=resource, outcome="not_found").inc()
        url = str(response.request.url)
        logger.debug(f"Upstream returned HTTP {response.status_code} for {url}")
        raise UpstreamNotFound(
            f"Upstream returned HTTP {response.status_code}",
            url=url,
            upstream_status=response.status_code,
        )

    async def fetch_text(self, path: str, resource: str = "text") -> str:
        response = await self._get(path, resource)
        self._check(response, resource)
        return response.text

    async def fetch_json(self, path: str, resource: str = "json") -> Any:
        response = await self._get(path, resource)
        self._check(response, resource)
        return self._decode_json(response)

    async def fetch_json_conditional(
        self,
        path: str,
        etag: Optional[str] = None,
        resource: str = "json",
    ) -> Tuple[Optional[Any], Optional[str]]:
        """
        GET with ``If-None-Match``. Returns ``(None, etag)`` when the origin
        answers 304, otherwise ``(payload, new_etag)``.
        """
        headers = {"If-None-Match": etag} if etag else None
        response = await self._get(path, resource, headers=headers)
        if response.status_code == 304:
            UPSTREAM_REQUESTS.labels(resource=resource, outcome="not_modified").inc()
            return None, etag
        self._check(response, resource)
        return self._decode_json(response), response.headers.get("etag")

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedUpstreamData(
                f"Upstream document is not valid JSON: {e}", url=str(response.request.url)
            ) from e

    # ── Streaming requests ───────────────────────────────────────────────

    async def open_stream(
        self,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        resource: str = "stream",
    ) -> httpx.Response:
        """
        Open a streaming GET. The caller owns the returned response and must
        ``aclose()`` it. Non-2xx responses are closed here and raised as
        ``UpstreamNotFound``.
        """
        url = self.url_for(path)
        request = self._client.build_request("GET", url, headers=headers)
        started = time.perf_counter()
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            UPSTREAM_REQUESTS.labels(resource=resource, outcome="transport_error").inc()
            logger.debug(f"Upstream transport failure for {url}: {e!r}")
            raise UpstreamTransportError(f"Upstream request failed: {type(e).__name__}", url=url) from e
        UPSTREAM_LATENCY.labels(resource=resource).observe(time.perf_counter() - started)

        if not response.is_success:
            await response.aclose()
        self._check(response, resource)
        return response

    async def aclose(self) -> None:
        await self._client.aclose()
