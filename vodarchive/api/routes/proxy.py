"""
VOD Archive API — Container proxy route (mounted at the container proxy prefix).
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from vodarchive.api.deps import get_container_proxy
from vodarchive.services.proxy.container_proxy import ContainerProxy

router = APIRouter(tags=["Proxy"])


@router.get("/{path:path}")
async def proxy_container(
    path: str,
    request: Request,
    proxy: ContainerProxy = Depends(get_container_proxy),
):
    """Relay an MP4 container, honouring the client's Range header."""
    relayed = await proxy.fetch_container(
        path,
        range_header=request.headers.get("range"),
        query=request.url.query,
    )
    return StreamingResponse(
        relayed.iter_body(),
        status_code=relayed.status,
        headers=relayed.headers,
        background=BackgroundTask(relayed.aclose),
    )
