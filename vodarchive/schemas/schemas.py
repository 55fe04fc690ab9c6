"""
VOD Archive API Schemas — Pydantic v2 models for persisted records and responses.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════════════
# Videos
# ═══════════════════════════════════════════════════════════════════════

class VideoRecord(BaseModel):
    """One archived stream. Immutable once discovered, except duration."""

    model_config = ConfigDict(frozen=True)

    index_key: str
    vod_id: str
    title: str = ""
    description: str = ""
    date: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(None, ge=0)
    last_updated: datetime


# ═══════════════════════════════════════════════════════════════════════
# Sync
# ═══════════════════════════════════════════════════════════════════════

class SyncSummary(BaseModel):
    status: str  # "updated" | "unchanged" | "not_modified"
    discovered: List[str] = []
    durations_resolved: int = 0
    total_records: int
    emote_tables: Dict[str, int] = {}
    elapsed_ms: float
    finished_at: datetime


# ═══════════════════════════════════════════════════════════════════════
# Misc
# ═══════════════════════════════════════════════════════════════════════

class ErrorBody(BaseModel):
    error: str
    message: str


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    uptime: float
    videos: int
    last_sync: Optional[datetime] = None
    last_summary: Optional[SyncSummary] = None
