import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from vodarchive.core.errors import UpstreamNotFound
from vodarchive.services.emotes.emote_catalog import EmoteCatalog
from vodarchive.services.manifest.manifest_service import ManifestService
from vodarchive.services.metadata.metadata_store import MetadataStore
from vodarchive.services.sync.sync_service import SyncService, build_record, parse_index

PLAYLIST = "#EXTM3U\n#EXTINF:4.0,\na.ts\n#EXTINF:2.5,\nb.ts\n#EXT-X-ENDLIST\n"

INDEX = {
    "k1": {"vodid": "100", "title": "First", "description": "d1", "date": "2024-01-01T10:00:00Z"},
    "k2": {"vodid": "200", "title": "Second", "description": "d2", "date": "2024-02-01T10:00:00"},
}


def _service(origin, make_upstream, settings, with_emotes=False):
    upstream = make_upstream()
    store = MetadataStore(settings.metadata_store_path)
    store.load()
    manifests = ManifestService(upstream, settings)
    emotes = EmoteCatalog(upstream, settings) if with_emotes else None
    return SyncService(upstream, store, manifests, emotes, settings), store


def test_discovers_new_records_and_measures_duration(origin, make_upstream, settings):
    origin.add("videos.json", json=INDEX)
    origin.add("videos/v100.m3u8", text=PLAYLIST)
    sync, store = _service(origin, make_upstream, settings)

    summary = asyncio.run(sync.reconcile())
    assert summary.status == "updated"
    assert summary.discovered == ["k1", "k2"]
    assert summary.durations_resolved == 1
    assert store.get("k1").duration_seconds == 7
    assert store.get("k2").duration_seconds is None
    assert store.get("k2").date.tzinfo is not None
    assert [r.index_key for r in store.list_videos()] == ["k2", "k1"]

    persisted = json.loads(open(settings.metadata_store_path, encoding="utf-8").read())
    assert list(persisted) == ["k1", "k2"]


def test_known_records_are_never_remeasured(origin, make_upstream, settings):
    origin.add("videos.json", json=INDEX)
    origin.add("videos/v100.m3u8", text=PLAYLIST)
    sync, store = _service(origin, make_upstream, settings)
    asyncio.run(sync.reconcile())
    first = store.get("k1")

    origin.requests.clear()
    origin.add("videos.json", json={**INDEX, "k3": {"vodid": "300", "title": "Third"}})
    summary = asyncio.run(sync.reconcile())

    assert summary.discovered == ["k3"]
    assert "videos/v100.m3u8" not in origin.requested()
    assert "videos/v300.m3u8" in origin.requested()
    assert store.get("k1") == first
    assert summary.total_records == 3


def test_unchanged_index_does_not_rewrite_store(origin, make_upstream, settings):
    origin.add("videos.json", json=INDEX)
    sync, store = _service(origin, make_upstream, settings)
    asyncio.run(sync.reconcile())
    snapshot = store.snapshot()

    summary = asyncio.run(sync.reconcile())
    assert summary.status == "unchanged"
    assert store.snapshot() is snapshot


def test_conditional_get_uses_etag(origin, make_upstream, settings):
    def index(request):
        if request.headers.get("if-none-match") == '"v1"':
            return httpx.Response(304)
        return httpx.Response(200, json=INDEX, headers={"etag": '"v1"'})

    origin.add("videos.json", handler=index)
    sync, store = _service(origin, make_upstream, settings)

    assert asyncio.run(sync.reconcile()).status == "updated"
    summary = asyncio.run(sync.reconcile())
    assert summary.status == "not_modified"
    assert summary.total_records == 2


def test_index_failure_raises_and_keeps_store(origin, make_upstream, settings):
    sync, store = _service(origin, make_upstream, settings)

    with pytest.raises(UpstreamNotFound):
        asyncio.run(sync.reconcile())
    assert len(store.snapshot()) == 0
    assert sync.last_sync is None


def test_periodic_loop_survives_failures(origin, make_upstream, settings):
    sync, store = _service(origin, make_upstream, settings)

    async def scenario():
        task = asyncio.create_task(sync.run_periodic(0.01))
        await asyncio.sleep(0.05)
        origin.add("videos.json", json=INDEX)
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(store.snapshot()) == 2


def test_reconcile_refreshes_emotes(origin, make_upstream, settings):
    origin.add("videos.json", json={})
    origin.add("emotes/first-party.json", json={"Kappa": "25"})
    sync, store = _service(origin, make_upstream, settings, with_emotes=True)

    summary = asyncio.run(sync.reconcile())
    assert summary.emote_tables["first-party"] == 1
    assert sync.emotes.snapshot().resolve("Kappa") == ("firstParty", "25")


def test_parse_index_shapes():
    assert [k for k, _ in parse_index(INDEX)] == ["k1", "k2"]
    listed = [{"vodid": "9", "title": "x"}, {"index_key": "custom", "vodid": "10"}, {"vodid": "9"}, "junk"]
    assert [k for k, _ in parse_index(listed)] == ["9", "custom"]
    assert parse_index("junk") == []


def test_build_record_edge_cases():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert build_record("k", {"title": "no id"}, now) is None

    record = build_record("k", {"vodid": 5, "date": "not a date"}, now)
    assert record.vod_id == "5"
    assert record.date is None
    assert record.last_updated == now
