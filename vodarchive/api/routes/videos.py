"""
VOD Archive API — Video routes: listing, thumbnails and playlists.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from vodarchive.api.deps import get_app_settings, get_container_proxy, get_manifests, get_store
from vodarchive.core.config import Settings
from vodarchive.schemas.schemas import VideoRecord
from vodarchive.services.manifest.manifest_service import ManifestService
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.proxy.container_proxy import ContainerProxy
from vodarchive.services.upstream.upstream_client import quote_segment

router = APIRouter(tags=["Videos"])


@router.get("/videos", response_model=List[VideoRecord])
async def list_videos(
    store: MetadataStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """All known videos, newest capture date first."""
    records = store.list_videos()
    return JSONResponse(
        content=[r.model_dump(mode="json") for r in records],
        headers={"Cache-Control": f"public, max-age={settings.videos_cache_seconds}"},
    )


@router.get("/videos/{index_key}", response_model=VideoRecord)
async def get_video(index_key: str, store: MetadataStore = Depends(get_store)):
    record = store.get(index_key)
    if record is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return record


@router.get("/thumbnail/{size}/{video_id}")
async def get_thumbnail(
    size: str,
    video_id: str,
    proxy: ContainerProxy = Depends(get_container_proxy),
    settings: Settings = Depends(get_app_settings),
):
    path = settings.thumbnail_path_template.format(
        size=quote_segment(size), video_id=quote_segment(video_id),
    )
    relayed = await proxy.relay_asset(
        path,
        cache_seconds=settings.thumbnail_cache_seconds,
        resource="thumbnail",
        default_media_type="image/webp",
    )
    return StreamingResponse(
        relayed.iter_body(),
        status_code=relayed.status,
        headers=relayed.headers,
        background=BackgroundTask(relayed.aclose),
    )


@router.get("/video/{video_id}")
async def get_manifest(
    video_id: str,
    manifests: ManifestService = Depends(get_manifests),
    settings: Settings = Depends(get_app_settings),
):
    """Upstream HLS playlist with container references routed through the proxy."""
    playlist = await manifests.get_playlist(video_id)
    return Response(
        content=playlist,
        media_type=settings.manifest_media_type,
        headers={"Cache-Control": f"public, max-age={settings.manifest_cache_seconds}"},
    )
