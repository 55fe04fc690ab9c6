"""
VOD Archive Manifest Service — fetch an upstream playlist and route it locally.
"""
from __future__ import annotations

import logging
from typing import Optional

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import UpstreamNotFound, UpstreamTransportError
from vodarchive.services.manifest.duration import compute_duration
from vodarchive.services.manifest.rewriter import ManifestRewriter
from vodarchive.services.upstream.upstream_client import UpstreamClient, quote_segment

logger = logging.getLogger(__name__)


def normalize_video_id(raw: str, container_extension: str = ".mp4") -> str:
    """Accept ``v123``, ``123.mp4`` or ``v123.mp4`` for vod id ``123``."""
    video_id = raw.strip()
    if video_id.startswith("v"):
        video_id = video_id[1:]
    if container_extension and video_id.endswith(container_extension):
        video_id = video_id[: -len(container_extension)]
    return video_id


class ManifestService:
    def __init__(self, upstream: UpstreamClient, settings: Optional[Settings] = None):
        self.upstream = upstream
        self.settings = settings or get_settings()
        self.rewriter = ManifestRewriter(
            segment_extension=self.settings.segment_extension,
            container_extension=self.settings.container_extension,
            container_prefix=self.settings.container_proxy_prefix,
        )

    def manifest_path(self, vod_id: str) -> str:
        return self.settings.manifest_path_template.format(vod_id=quote_segment(vod_id))

    async def fetch_raw(self, vod_id: str) -> str:
        return await self.upstream.fetch_text(self.manifest_path(vod_id), resource="manifest")

    async def get_playlist(self, raw_video_id: str) -> str:
        """Rewritten playlist for a client-supplied video id."""
        vod_id = normalize_video_id(raw_video_id, self.settings.container_extension)
        try:
            text = await self.fetch_raw(vod_id)
        except UpstreamNotFound as e:
            logger.warning(f"Manifest not found for video {vod_id}: HTTP {e.upstream_status}")
            raise UpstreamNotFound("Video not found", url=e.url, upstream_status=e.upstream_status) from e
        except UpstreamTransportError as e:
            logger.error(f"Manifest fetch failed for video {vod_id}: {e.message}")
            raise

        rewritten = self.rewriter.rewrite(text, self.settings.segment_base_url)
        logger.info(f"Served rewritten manifest for video {vod_id}")
        return rewritten

    async def measure_duration(self, vod_id: str) -> Optional[int]:
        """Duration in seconds, or None when the playlist is unreachable or has no durations."""
        try:
            text = await self.fetch_raw(vod_id)
        except (UpstreamNotFound, UpstreamTransportError) as e:
            logger.warning(f"Could not fetch manifest for duration of {vod_id}: {e.message}")
            return None
        return compute_duration(text)
