"""
Request-scoped accessors for the service instances built in the app lifespan.
"""
from __future__ import annotations

from fastapi import Request

from vodarchive.core.config import Settings
from vodarchive.services.chat.chat_assembler import ChatAssembler
from vodarchive.services.emotes.emote_catalog import EmoteCatalog
from vodarchive.services.manifest.manifest_service import ManifestService
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.proxy.container_proxy import ContainerProxy
from vodarchive.services.sync.sync_service import SyncService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> MetadataStore:
    return request.app.state.store


def get_manifests(request: Request) -> ManifestService:
    return request.app.state.manifests


def get_container_proxy(request: Request) -> ContainerProxy:
    return request.app.state.container_proxy


def get_chat(request: Request) -> ChatAssembler:
    return request.app.state.chat


def get_emotes(request: Request) -> EmoteCatalog:
    return request.app.state.emotes


def get_sync(request: Request) -> SyncService:
    return request.app.state.sync
