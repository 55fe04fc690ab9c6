"""
VOD Archive Chat Assembler — replay chat from per-second upstream shards.

The origin stores chat as one JSON shard per video second, plus an index of
the seconds that have any chat at all. A requested window [start, end] is a
fan-out of end - start + 1 shard fetches:

  - fetches run concurrently, capped by a per-request semaphore
  - each fetch has its own timeout; a straggler counts as an empty shard
  - a missing or failing shard is skipped, it never aborts the window
  - results are merged only after every fetch has settled and then sorted by
    (video second, intra-second timestamp), stable on arrival order, so
    completion order never shows up in the output
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import (
    ChatUnavailable,
    InvalidRequest,
    MalformedUpstreamData,
    UpstreamError,
    UpstreamNotFound,
)
from vodarchive.core.metrics import CHAT_SHARDS
from vodarchive.services.upstream.upstream_client import UpstreamClient, quote_segment

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    video_timestamp: int
    intra_second_timestamp: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> Tuple[int, float]:
        return (self.video_timestamp, self.intra_second_timestamp or 0)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.payload)
        data["video_timestamp"] = self.video_timestamp
        return data


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def order_messages(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """Stable sort by (video_timestamp, intra-second timestamp or 0)."""
    return sorted(messages, key=lambda m: m.sort_key)


def parse_shard(document: Any, second: int, order_field: str = "timestamp") -> List[ChatMessage]:
    """Messages of one shard, each stamped with the second it came from."""
    if isinstance(document, dict):
        document = document.get("messages")
    if not isinstance(document, list):
        logger.debug(f"Chat shard for second {second} has an unexpected shape; treating as empty")
        return []

    messages = []
    for item in document:
        if not isinstance(item, dict):
            continue
        messages.append(ChatMessage(
            video_timestamp=second,
            intra_second_timestamp=_numeric(item.get(order_field)),
            payload=item,
        ))
    return messages


def parse_timecodes(document: Any) -> List[int]:
    """Sorted, de-duplicated seconds from a chat index document."""
    if isinstance(document, dict):
        timecodes = document.get("timecodes")
        entries = timecodes if isinstance(timecodes, list) else list(document.keys())
    elif isinstance(document, list):
        entries = document
    else:
        return []

    seconds = set()
    for entry in entries:
        if isinstance(entry, bool):
            continue
        if isinstance(entry, int):
            second = entry
        elif isinstance(entry, float) and entry.is_integer():
            second = int(entry)
        elif isinstance(entry, str) and entry.strip().isdigit():
            second = int(entry.strip())
        else:
            continue
        if second >= 0:
            seconds.add(second)
    return sorted(seconds)


class ChatAssembler:
    def __init__(self, upstream: UpstreamClient, settings: Optional[Settings] = None):
        self.upstream = upstream
        self.settings = settings or get_settings()

    # ── Paths ────────────────────────────────────────────────────────────

    def index_path(self, video_id: str) -> str:
        return self.settings.chat_index_path_template.format(video_id=quote_segment(video_id))

    def shard_path(self, video_id: str, second: int) -> str:
        return self.settings.chat_shard_path_template.format(
            video_id=quote_segment(video_id), second=second,
        )

    # ── Timecodes ────────────────────────────────────────────────────────

    async def list_timecodes(self, video_id: str) -> List[int]:
        """
        Seconds that carry chat for a video.

        Raises ChatUnavailable when the origin has no usable chat index;
        an index that lists nothing yields [] instead.
        """
        try:
            document = await self.upstream.fetch_json(self.index_path(video_id), resource="chat_index")
        except UpstreamNotFound as e:
            logger.info(f"No chat index for video {video_id} (HTTP {e.upstream_status})")
            raise ChatUnavailable("Chat unavailable for this video", url=e.url, upstream_status=e.upstream_status) from e
        except MalformedUpstreamData as e:
            logger.warning(f"Unreadable chat index for video {video_id}: {e.message}")
            raise ChatUnavailable("Chat unavailable for this video", url=e.url) from e

        timecodes = parse_timecodes(document)
        logger.debug(f"Chat index for {video_id}: {len(timecodes)} seconds")
        return timecodes

    # ── Range assembly ───────────────────────────────────────────────────

    def _validate(self, start_second: int, end_second: int) -> None:
        if start_second < 0 or end_second < 0:
            raise InvalidRequest("Chat range bounds must be non-negative")
        if start_second > end_second:
            raise InvalidRequest("Chat range start must not exceed end")

    async def fetch_shard(self, video_id: str, second: int) -> List[ChatMessage]:
        """One second of chat; any failure or timeout is an empty shard."""
        try:
            document = await asyncio.wait_for(
                self.upstream.fetch_json(self.shard_path(video_id, second), resource="chat_shard"),
                timeout=self.settings.chat_shard_timeout_seconds,
            )
        except asyncio.TimeoutError:
            CHAT_SHARDS.labels(outcome="timeout").inc()
            logger.debug(f"Chat shard {video_id}@{second} timed out; dropped")
            return []
        except UpstreamError as e:
            CHAT_SHARDS.labels(outcome="missing").inc()
            logger.debug(f"Chat shard {video_id}@{second} skipped: {e.message}")
            return []

        CHAT_SHARDS.labels(outcome="ok").inc()
        return parse_shard(document, second, self.settings.chat_order_field)

    async def assemble_range(self, video_id: str, start_second: int, end_second: int) -> List[ChatMessage]:
        """Ordered messages for every second in [start_second, end_second]."""
        self._validate(start_second, end_second)
        semaphore = asyncio.Semaphore(max(1, self.settings.chat_max_concurrency))

        async def bounded(second: int) -> List[ChatMessage]:
            async with semaphore:
                return await self.fetch_shard(video_id, second)

        seconds = range(start_second, end_second + 1)
        shards = await asyncio.gather(*(bounded(second) for second in seconds))

        collected = [message for shard in shards for message in shard]
        ordered = order_messages(collected)
        logger.debug(
            f"Assembled {len(ordered)} chat messages for {video_id} [{start_second}, {end_second}]"
        )
        return ordered
