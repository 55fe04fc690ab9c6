"""
VOD Archive Sync Service — reconcile the local metadata store with the origin.

Responsibilities:
  - Fetch the upstream video index (conditional GET, ETag-aware)
  - Discover index keys not yet in the store
  - Measure duration once for each new video (never for known ones)
  - Publish a complete new snapshot and persist it wholesale
  - Refresh the emote lookup tables on the same schedule
  - Run the above periodically in the background; manual triggers share the
    same lock, so there is only ever one writer
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from vodarchive.core.config import Settings, get_settings
from vodarchive.core.errors import UpstreamError, VodArchiveError
from vodarchive.core.metrics import SYNC_DISCOVERED, SYNC_RUNS
from vodarchive.schemas.schemas import SyncSummary, VideoRecord
from vodarchive.services.emotes.emote_catalog import EmoteCatalog
from vodarchive.services.manifest.manifest_service import ManifestService
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.upstream.upstream_client import UpstreamClient

logger = logging.getLogger(__name__)

VOD_ID_FIELDS = ("vodid", "vod_id", "id")


def parse_index(document: Any) -> List[Tuple[str, Dict[str, Any]]]:
    """
    Ordered ``(index_key, entry)`` pairs from the upstream index.

    Accepts an object keyed by index key, or a list of entries carrying
    ``index_key`` (falling back to their vod id). First occurrence wins.
    """
    if isinstance(document, dict):
        pairs = [(str(key), entry) for key, entry in document.items()]
    elif isinstance(document, list):
        pairs = []
        for entry in document:
            if not isinstance(entry, dict):
                continue
            key = entry.get("index_key") or _vod_id(entry)
            if key:
                pairs.append((str(key), entry))
    else:
        logger.warning(f"Upstream index has unexpected type {type(document).__name__}")
        return []

    seen = set()
    ordered = []
    for key, entry in pairs:
        if key in seen or not isinstance(entry, dict):
            continue
        seen.add(key)
        ordered.append((key, entry))
    return ordered


def _vod_id(entry: Dict[str, Any]) -> Optional[str]:
    for name in VOD_ID_FIELDS:
        value = entry.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def build_record(
    index_key: str,
    entry: Dict[str, Any],
    now: datetime,
    duration_seconds: Optional[int] = None,
) -> Optional[VideoRecord]:
    """A new VideoRecord from an index entry, or None when it has no vod id."""
    vod_id = _vod_id(entry)
    if vod_id is None:
        logger.warning(f"Index entry {index_key} has no vod id; skipped")
        return None

    data = {
        "index_key": index_key,
        "vod_id": vod_id,
        "title": str(entry.get("title") or ""),
        "description": str(entry.get("description") or ""),
        "date": entry.get("date"),
        "duration_seconds": duration_seconds,
        "last_updated": now,
    }
    try:
        record = VideoRecord.model_validate(data)
    except ValidationError:
        logger.warning(f"Index entry {index_key} has an unreadable date {entry.get('date')!r}")
        record = VideoRecord.model_validate({**data, "date": None})

    if record.date is not None and record.date.tzinfo is None:
        record = record.model_copy(update={"date": record.date.replace(tzinfo=timezone.utc)})
    return record


class SyncService:
    def __init__(
        self,
        upstream: UpstreamClient,
        store: MetadataStore,
        manifests: ManifestService,
        emotes: Optional[EmoteCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.upstream = upstream
        self.store = store
        self.manifests = manifests
        self.emotes = emotes
        self.settings = settings or get_settings()
        self._lock = asyncio.Lock()
        self._etag: Optional[str] = None
        self.last_sync: Optional[datetime] = None
        self.last_summary: Optional[SyncSummary] = None

    # ── Reconciliation ───────────────────────────────────────────────────

    async def _measure(self, records: List[VideoRecord]) -> List[VideoRecord]:
        semaphore = asyncio.Semaphore(max(1, self.settings.sync_max_concurrency))

        async def measure(record: VideoRecord) -> VideoRecord:
            async with semaphore:
                duration = await self.manifests.measure_duration(record.vod_id)
            if duration is None:
                return record
            return record.model_copy(update={"duration_seconds": duration})

        return list(await asyncio.gather(*(measure(r) for r in records)))

    async def reconcile(self) -> SyncSummary:
        """Run one reconciliation. Raises UpstreamError when the index can't be fetched."""
        async with self._lock:
            started = time.perf_counter()
            try:
                document, etag = await self.upstream.fetch_json_conditional(
                    self.settings.index_path, etag=self._etag, resource="index",
                )
            except UpstreamError as e:
                SYNC_RUNS.labels(outcome="failed").inc()
                logger.error(f"Reconciliation failed fetching index: {e.message}")
                raise

            emote_sizes = (await self.emotes.refresh()).sizes() if self.emotes else {}
            snapshot = self.store.snapshot()
            discovered: List[VideoRecord] = []

            if document is None:
                status = "not_modified"
            else:
                now = datetime.now(timezone.utc)
                fresh = []
                for index_key, entry in parse_index(document):
                    if index_key in snapshot:
                        continue
                    record = build_record(index_key, entry, now)
                    if record is not None:
                        fresh.append(record)
                discovered = await self._measure(fresh)
                status = "updated" if discovered else "unchanged"

            if discovered:
                merged = dict(snapshot.records)
                for record in discovered:
                    merged[record.index_key] = record
                snapshot = await self.store.replace(merged)
                SYNC_DISCOVERED.inc(len(discovered))
            elif self.store.dirty:
                snapshot = await self.store.replace(snapshot.records)

            self._etag = etag
            self.last_sync = datetime.now(timezone.utc)
            SYNC_RUNS.labels(outcome=status).inc()

            summary = SyncSummary(
                status=status,
                discovered=[r.index_key for r in discovered],
                durations_resolved=sum(1 for r in discovered if r.duration_seconds is not None),
                total_records=len(snapshot),
                emote_tables=emote_sizes,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
                finished_at=self.last_sync,
            )
            self.last_summary = summary
            logger.info(
                f"Reconciliation {status}: {len(discovered)} new, {len(snapshot)} total "
                f"({summary.elapsed_ms} ms)"
            )
            return summary

    # ── Background loop ──────────────────────────────────────────────────

    async def run_periodic(self, interval_seconds: float, run_immediately: bool = True) -> None:
        """Reconcile forever; failures are logged and retried on the next cycle."""
        if run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(interval_seconds)
            await self.run_once()

    async def run_once(self) -> None:
        try:
            await self.reconcile()
        except VodArchiveError as e:
            logger.error(f"Scheduled reconciliation failed: {e.message}")
        except Exception:
            logger.exception("Scheduled reconciliation crashed")
