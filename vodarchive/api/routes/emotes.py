"""
VOD Archive API — Emote tables and emote asset passthrough.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from vodarchive.api.deps import get_app_settings, get_container_proxy, get_emotes
from vodarchive.core.config import Settings
from vodarchive.services.emotes.emote_catalog import EmoteCatalog
from vodarchive.services.proxy.container_proxy import ContainerProxy

router = APIRouter(tags=["Emotes"])


def _relay(relayed) -> StreamingResponse:
    return StreamingResponse(
        relayed.iter_body(),
        status_code=relayed.status,
        headers=relayed.headers,
        background=BackgroundTask(relayed.aclose),
    )


@router.get("/emotes/{table}")
async def emote_table(
    table: str,
    emotes: EmoteCatalog = Depends(get_emotes),
    settings: Settings = Depends(get_app_settings),
):
    mapping = emotes.snapshot().table(table)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Unknown emote table")
    return JSONResponse(
        content={name: list(v) if isinstance(v, tuple) else v for name, v in mapping.items()},
        headers={"Cache-Control": f"public, max-age={settings.videos_cache_seconds}"},
    )


@router.get("/emote/by-name/{name}")
async def emote_by_name(
    name: str,
    emotes: EmoteCatalog = Depends(get_emotes),
    proxy: ContainerProxy = Depends(get_container_proxy),
    settings: Settings = Depends(get_app_settings),
):
    """Resolve a display name through the emote tables and relay the image."""
    resolved = emotes.snapshot().resolve(name)
    if resolved is None:
        raise HTTPException(status_code=404, detail="Unknown emote")
    kind, emote_id = resolved
    relayed = await proxy.relay_asset(
        emotes.asset_path(kind, emote_id),
        cache_seconds=settings.emote_cache_seconds,
        resource="emote",
    )
    return _relay(relayed)


@router.get("/emote/{kind}/{asset:path}")
async def emote_asset(
    kind: str,
    asset: str,
    emotes: EmoteCatalog = Depends(get_emotes),
    proxy: ContainerProxy = Depends(get_container_proxy),
    settings: Settings = Depends(get_app_settings),
):
    """Emote, badge (``{id}/{version}``) or bits (``{provider}/{amount}``) image by id."""
    relayed = await proxy.relay_asset(
        emotes.asset_path(kind, asset),
        cache_seconds=settings.emote_cache_seconds,
        resource="emote",
    )
    return _relay(relayed)
