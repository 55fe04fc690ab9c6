from __future__ import annotations

import json as jsonlib
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from vodarchive.core.config import Settings
from vodarchive.services.upstream.upstream_client import UpstreamClient

ORIGIN = "https://origin.test/archive"

Handler = Callable[[httpx.Request], Any]


class _OneShotStream(httpx.AsyncByteStream):
    """Unread body, as a real transport would return it."""

    def __init__(self, body: bytes):
        self.body = body

    async def __aiter__(self):
        if self.body:
            yield self.body


def _as_stream(response: httpx.Response) -> httpx.Response:
    # httpx reads `content=` bodies eagerly, which marks the stream consumed and
    # breaks `aiter_raw()`; re-wrap such bodies as an unread stream.
    if isinstance(response, httpx.Response) and isinstance(response.stream, httpx.ByteStream):
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            stream=_OneShotStream(b"".join(response.stream)),
            extensions=response.extensions,
        )
    return response


class FakeOrigin:
    """In-memory stand-in for the upstream origin, keyed by path relative to ORIGIN."""

    def __init__(self, base_url: str = ORIGIN):
        self.base_path = httpx.URL(base_url).path.rstrip("/")
        self.routes: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        path: str,
        *,
        status: int = 200,
        json=None,
        text: Optional[str] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        handler: Optional[Handler] = None,
    ) -> None:
        if handler is None:
            if json is not None:
                content = jsonlib.dumps(json).encode()
                headers = {"content-type": "application/json", **(headers or {})}
            elif text is not None:
                content = text.encode()

            def handler(request, _status=status, _content=content or b"", _headers=headers or {}):
                return httpx.Response(_status, content=_content, headers=_headers)

        self.routes[path] = handler

    def fail(self, path: str, exc_type=httpx.ConnectError) -> None:
        def handler(request):
            raise exc_type("connection refused", request=request)

        self.routes[path] = handler

    def relative(self, request: httpx.Request) -> str:
        path = request.url.path
        if path.startswith(self.base_path + "/"):
            path = path[len(self.base_path) + 1:]
        return path

    def handle(self, request: httpx.Request):
        self.requests.append(request)
        handler = self.routes.get(self.relative(request))
        if handler is None:
            return _as_stream(httpx.Response(404, text="missing"))
        return _as_stream(handler(request))

    def requested(self) -> List[str]:
        return [self.relative(r) for r in self.requests]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        upstream_base_url=ORIGIN,
        metadata_store_path=str(tmp_path / "data" / "videos.json"),
        sync_interval_seconds=0,
        sync_on_startup=False,
        chat_shard_timeout_seconds=0.2,
        chat_max_concurrency=4,
    )


@pytest.fixture
def make_upstream(origin):
    def factory(timeout: float = 5.0) -> UpstreamClient:
        return UpstreamClient(ORIGIN, timeout=timeout, transport=origin.transport)

    return factory
