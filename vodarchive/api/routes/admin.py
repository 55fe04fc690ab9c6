"""
VOD Archive API — Admin routes: manual sync and health.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from vodarchive.api.deps import get_store, get_sync
from vodarchive.schemas.schemas import HealthStatus, SyncSummary
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.sync.sync_service import SyncService

router = APIRouter(tags=["Admin"])


@router.api_route("/sync", methods=["GET", "POST"], response_model=SyncSummary)
async def trigger_sync(sync: SyncService = Depends(get_sync)):
    """Reconcile the metadata store against the upstream index right now."""
    return await sync.reconcile()


@router.get("/health", response_model=HealthStatus)
async def health(
    request: Request,
    store: MetadataStore = Depends(get_store),
    sync: SyncService = Depends(get_sync),
):
    return HealthStatus(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        videos=len(store.snapshot()),
        last_sync=sync.last_sync,
        last_summary=sync.last_summary,
    )
