"""
VOD Archive Metadata Store — durable key → VideoRecord table.

Readers never see a half-applied reconciliation: the store holds a single
reference to an immutable snapshot, and the reconciliation task (the only
writer) builds a complete replacement and swaps the reference. The table is
persisted wholesale as one JSON document, written to a temp file and moved
into place.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError

from vodarchive.core.errors import StoreUnavailable
from vodarchive.schemas.schemas import VideoRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataSnapshot:
    records: Mapping[str, VideoRecord] = field(default_factory=lambda: MappingProxyType({}))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, index_key: str) -> bool:
        return index_key in self.records

    def get(self, index_key: str) -> Optional[VideoRecord]:
        return self.records.get(index_key)

    def ordered(self) -> List[VideoRecord]:
        """Newest capture date first; undated records last; discovery order breaks ties."""
        return sorted(
            self.records.values(),
            key=lambda r: r.date.timestamp() if r.date else float("-inf"),
            reverse=True,
        )


def build_snapshot(records: Mapping[str, VideoRecord]) -> MetadataSnapshot:
    return MetadataSnapshot(records=MappingProxyType(dict(records)))


class MetadataStore:
    def __init__(self, path: str):
        self.path = Path(path)
        self._snapshot = MetadataSnapshot()
        self.dirty = False

    # ── Read side ────────────────────────────────────────────────────────

    def snapshot(self) -> MetadataSnapshot:
        return self._snapshot

    def list_videos(self) -> List[VideoRecord]:
        return self._snapshot.ordered()

    def get(self, index_key: str) -> Optional[VideoRecord]:
        return self._snapshot.get(index_key)

    # ── Persistence ──────────────────────────────────────────────────────

    def _read_file(self) -> Dict[str, VideoRecord]:
        if not self.path.exists():
            raise StoreUnavailable(f"Metadata file not found: {self.path}")
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"Metadata file unreadable: {e}") from e
        if not isinstance(raw, dict):
            raise StoreUnavailable("Metadata file is not a JSON object")

        records: Dict[str, VideoRecord] = {}
        for index_key, data in raw.items():
            try:
                records[index_key] = VideoRecord.model_validate({**data, "index_key": index_key})
            except (TypeError, ValidationError) as e:
                logger.warning(f"Dropping unreadable stored record {index_key}: {e}")
        return records

    def load(self) -> MetadataSnapshot:
        """Load the table from disk; a missing or corrupt file yields an empty store."""
        try:
            records = self._read_file()
        except StoreUnavailable as e:
            logger.warning(f"{e.message}; starting with an empty store")
            records = {}
        self._snapshot = build_snapshot(records)
        logger.info(f"Metadata store loaded {len(records)} records from {self.path}")
        return self._snapshot

    def _write_file(self, payload: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".videos-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    async def replace(self, records: Mapping[str, VideoRecord]) -> MetadataSnapshot:
        """Persist a complete new table, then publish it to readers."""
        snapshot = build_snapshot(records)
        payload = {key: record.model_dump(mode="json") for key, record in snapshot.records.items()}
        try:
            await asyncio.to_thread(self._write_file, payload)
            self.dirty = False
        except OSError as e:
            # Readers still get the new snapshot; the next reconciliation retries the write.
            logger.error(f"Failed to persist metadata store to {self.path}: {e}")
            self.dirty = True
        self._snapshot = snapshot
        return snapshot
