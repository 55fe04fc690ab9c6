import asyncio

import httpx
import pytest

from vodarchive.core.errors import ChatUnavailable, InvalidRequest, UpstreamTransportError
from vodarchive.services.chat.chat_assembler import (
    ChatAssembler,
    ChatMessage,
    order_messages,
    parse_shard,
    parse_timecodes,
)


def _msg(body, ts=None):
    message = {"commenter": {"display_name": "viewer"}, "message": {"body": body}}
    if ts is not None:
        message["timestamp"] = ts
    return message


def test_single_second_fetches_exactly_one_shard(origin, make_upstream, settings):
    origin.add("chat/77/5.json", json=[_msg("hi")])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 5, 5))
    assert origin.requested() == ["chat/77/5.json"]
    assert [m.payload["message"]["body"] for m in messages] == ["hi"]
    assert messages[0].video_timestamp == 5


def test_range_is_inclusive(origin, make_upstream, settings):
    chat = ChatAssembler(make_upstream(), settings)

    assert asyncio.run(chat.assemble_range("77", 5, 7)) == []
    assert sorted(origin.requested()) == ["chat/77/5.json", "chat/77/6.json", "chat/77/7.json"]


def test_failed_shard_is_skipped(origin, make_upstream, settings):
    origin.add("chat/77/41.json", json=[_msg("first")])
    origin.fail("chat/77/42.json")
    origin.add("chat/77/43.json", json=[_msg("third")])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 41, 43))
    assert [m.video_timestamp for m in messages] == [41, 43]
    assert [m.payload["message"]["body"] for m in messages] == ["first", "third"]


def test_ordering_by_second_then_intra_second_timestamp(origin, make_upstream, settings):
    origin.add("chat/77/10.json", json=[_msg("c", 0.9), _msg("a", 0.1), _msg("b", None), _msg("d", 0.9)])
    origin.add("chat/77/11.json", json=[_msg("e", 0.0)])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 10, 11))
    # "b" has no timestamp and sorts as 0; "c" and "d" tie and keep arrival order
    assert [m.payload["message"]["body"] for m in messages] == ["b", "a", "c", "d", "e"]
    assert [m.video_timestamp for m in messages] == [10, 10, 10, 10, 11]


def test_completion_order_does_not_affect_output(origin, make_upstream, settings):
    async def slow(request):
        await asyncio.sleep(0.05)
        return httpx.Response(200, json=[_msg("early")])

    origin.add("chat/77/1.json", handler=slow)
    origin.add("chat/77/2.json", json=[_msg("late")])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 1, 2))
    assert [m.payload["message"]["body"] for m in messages] == ["early", "late"]


def test_straggler_shard_is_dropped(origin, make_upstream, settings):
    async def stalled(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=[_msg("never")])

    origin.add("chat/77/1.json", handler=stalled)
    origin.add("chat/77/2.json", json=[_msg("on time")])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 1, 2))
    assert [m.payload["message"]["body"] for m in messages] == ["on time"]


def test_concurrency_is_bounded(origin, make_upstream, settings):
    in_flight = 0
    peak = 0

    async def tracked(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, json=[])

    for second in range(20):
        origin.add(f"chat/77/{second}.json", handler=tracked)
    chat = ChatAssembler(make_upstream(), settings)

    asyncio.run(chat.assemble_range("77", 0, 19))
    assert len(origin.requests) == 20
    assert 1 <= peak <= settings.chat_max_concurrency


def test_invalid_ranges(origin, make_upstream, settings):
    chat = ChatAssembler(make_upstream(), settings)
    for start, end in ((5, 4), (-1, 3), (3, -1)):
        with pytest.raises(InvalidRequest):
            asyncio.run(chat.assemble_range("77", start, end))
    assert origin.requests == []


def test_long_range_is_fetched_in_full(origin, make_upstream, settings):
    origin.add("chat/77/600.json", json=[_msg("last")])
    chat = ChatAssembler(make_upstream(), settings)

    messages = asyncio.run(chat.assemble_range("77", 0, 600))
    assert len(origin.requests) == 601
    assert [m.video_timestamp for m in messages] == [600]


def test_timecodes_sorted_and_deduplicated(origin, make_upstream, settings):
    origin.add("chat/77/index.json", json=[12, 3, "7", 3, "x", -1, 4.0, True])
    chat = ChatAssembler(make_upstream(), settings)

    assert asyncio.run(chat.list_timecodes("77")) == [3, 4, 7, 12]


def test_timecodes_missing_index_is_unavailable(origin, make_upstream, settings):
    chat = ChatAssembler(make_upstream(), settings)

    with pytest.raises(ChatUnavailable) as exc_info:
        asyncio.run(chat.list_timecodes("77"))
    assert exc_info.value.status_code == 404


def test_timecodes_empty_index_is_available(origin, make_upstream, settings):
    origin.add("chat/77/index.json", json=[])
    chat = ChatAssembler(make_upstream(), settings)

    assert asyncio.run(chat.list_timecodes("77")) == []


def test_timecodes_transport_failure(origin, make_upstream, settings):
    origin.fail("chat/77/index.json")
    chat = ChatAssembler(make_upstream(), settings)

    with pytest.raises(UpstreamTransportError):
        asyncio.run(chat.list_timecodes("77"))


def test_parse_helpers():
    assert parse_timecodes({"timecodes": [2, 1]}) == [1, 2]
    assert parse_timecodes({"5": [], "2": []}) == [2, 5]
    assert parse_timecodes("nonsense") == []

    assert parse_shard({"messages": [_msg("a", 1)]}, 9)[0].intra_second_timestamp == 1
    assert parse_shard({"unexpected": True}, 9) == []
    assert parse_shard([_msg("a", "soon"), "junk"], 9)[0].intra_second_timestamp is None


def test_to_dict_stamps_video_timestamp():
    message = ChatMessage(video_timestamp=3, intra_second_timestamp=0.5, payload={"body": "x"})
    assert message.to_dict() == {"body": "x", "video_timestamp": 3}
    assert order_messages([message]) == [message]
