"""
VOD Archive Core Settings.

Every component reads its constants from here: the fixed upstream origin and
its path layout, manifest rewriting extensions, cache lifetimes, chat fan-out
limits and the metadata reconciliation schedule.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="VODARCHIVE_", case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "VOD Archive"
    app_version: str = "1.2.0"
    log_level: str = "INFO"
    api_prefix: str = "/api"
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]

    # ── Upstream origin ──────────────────────────────────────────────────
    upstream_base_url: str = "https://barbarian.men/macaw45"
    upstream_timeout_seconds: float = 15.0
    upstream_user_agent: str = "vodarchive/1.2"

    # Paths are relative to upstream_base_url
    index_path: str = "videos.json"
    manifest_path_template: str = "videos/v{vod_id}.m3u8"
    media_dir: str = "videos"
    thumbnail_path_template: str = "tn/{size}/{video_id}.webp"
    chat_index_path_template: str = "chat/{video_id}/index.json"
    chat_shard_path_template: str = "chat/{video_id}/{second}.json"
    emote_table_paths: Dict[str, str] = {
        "first-party": "emotes/first-party.json",
        "third-party": "emotes/third-party.json",
        "cheers": "emotes/cheers.json",
    }
    emote_asset_path_template: str = "emotes/{kind}/{asset}"
    emote_asset_kinds: List[str] = [
        "firstParty", "thirdParty", "twitchBadges", "twitchBits",
    ]

    # ── Manifest rewriting ───────────────────────────────────────────────
    segment_extension: str = ".ts"
    container_extension: str = ".mp4"
    container_proxy_prefix: str = "/proxy/container"
    manifest_media_type: str = "application/x-mpegURL"
    container_media_type: str = "video/mp4"

    # ── Cache lifetimes (seconds) ────────────────────────────────────────
    videos_cache_seconds: int = 300
    manifest_cache_seconds: int = 300
    container_cache_seconds: int = 3600
    thumbnail_cache_seconds: int = 86400
    emote_cache_seconds: int = 86400

    # ── Chat replay ──────────────────────────────────────────────────────
    chat_max_concurrency: int = 16
    chat_shard_timeout_seconds: float = 5.0
    chat_order_field: str = "timestamp"

    # ── Metadata sync ────────────────────────────────────────────────────
    sync_interval_seconds: int = 600
    sync_on_startup: bool = True
    sync_max_concurrency: int = 4
    metadata_store_path: str = "data/videos.json"

    @property
    def upstream_root(self) -> str:
        return self.upstream_base_url.rstrip("/") + "/"

    @property
    def segment_base_url(self) -> str:
        """Absolute upstream directory that relative segment lines resolve against."""
        return f"{self.upstream_root}{self.media_dir.strip('/')}"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
