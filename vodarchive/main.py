"""
VOD Archive — Main FastAPI Application

Caching reverse-proxy for a video-on-demand archive: rewritten HLS playlists,
range-forwarding MP4 proxy, chat replay and metadata sync.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import VodArchiveError
from vodarchive.schemas.schemas import ErrorBody
from vodarchive.services.chat.chat_assembler import ChatAssembler
from vodarchive.services.emotes.emote_catalog import EmoteCatalog
from vodarchive.services.manifest.manifest_service import ManifestService
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.proxy.container_proxy import ContainerProxy
from vodarchive.services.sync.sync_service import SyncService
from vodarchive.services.upstream.upstream_client import UpstreamClient

# ── Logging ──────────────────────────────────────────────────────────────


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=logging.getLevelName(level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
    )


logger = structlog.get_logger()


# ── App factory ──────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application. ``transport`` replaces the network for the upstream client."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown hooks."""
        logger.info("Starting VOD Archive", version=settings.app_version, upstream=settings.upstream_base_url)

        upstream = UpstreamClient(
            settings.upstream_base_url,
            timeout=settings.upstream_timeout_seconds,
            user_agent=settings.upstream_user_agent,
            transport=transport,
        )
        store = MetadataStore(settings.metadata_store_path)
        store.load()
        manifests = ManifestService(upstream, settings)
        emotes = EmoteCatalog(upstream, settings)
        sync = SyncService(upstream, store, manifests, emotes, settings)

        app.state.settings = settings
        app.state.started_at = time.monotonic()
        app.state.upstream = upstream
        app.state.store = store
        app.state.manifests = manifests
        app.state.container_proxy = ContainerProxy(upstream, settings)
        app.state.chat = ChatAssembler(upstream, settings)
        app.state.emotes = emotes
        app.state.sync = sync

        sync_task: Optional[asyncio.Task] = None
        if settings.sync_interval_seconds > 0:
            sync_task = asyncio.create_task(
                sync.run_periodic(settings.sync_interval_seconds, run_immediately=settings.sync_on_startup)
            )
        elif settings.sync_on_startup:
            sync_task = asyncio.create_task(sync.run_once())

        logger.info("VOD Archive ready", videos=len(store.snapshot()), sync_interval=settings.sync_interval_seconds)

        yield

        # Shutdown
        if sync_task is not None:
            sync_task.cancel()
            try:
                await sync_task
            except asyncio.CancelledError:
                pass
        await upstream.aclose()
        logger.info("Shutting down VOD Archive")

    app = FastAPI(
        title=settings.app_name,
        description="Caching reverse-proxy for a video-on-demand archive",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    @app.exception_handler(VodArchiveError)
    async def archive_error_handler(request: Request, exc: VodArchiveError):
        body = ErrorBody(error=exc.kind, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    # Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    # ── Routes ───────────────────────────────────────────────────────────

    from vodarchive.api.routes import admin, chat, emotes, proxy, videos

    error_responses = {
        400: {"model": ErrorBody},
        404: {"model": ErrorBody},
        500: {"model": ErrorBody},
    }
    for router in (videos.router, chat.router, emotes.router, admin.router):
        app.include_router(router, prefix=settings.api_prefix, responses=error_responses)
    app.include_router(
        proxy.router,
        prefix="/" + settings.container_proxy_prefix.strip("/"),
        responses=error_responses,
    )

    return app


configure_logging(get_settings().log_level)
app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
