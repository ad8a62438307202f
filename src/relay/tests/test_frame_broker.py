import asyncio

import pytest

from src.relay.broker.frame_broker import FeedUnavailable, FrameBroker, safe, stream_key


class _Conn:
    def __init__(self, fail=False):
        self.fail = fail
        self.frames = []
        self.texts = []
        self.closed = False

    async def send_bytes(self, data):
        if self.fail:
            raise ConnectionError("gone")
        self.frames.append(data)

    async def send_text(self, data):
        if self.fail:
            raise ConnectionError("gone")
        self.texts.append(data)

    async def close(self):
        self.closed = True


def test_stream_key_normalizes_names():
    assert safe("  North Clinic ") == "North Clinic"
    assert safe("") == "unknown"
    assert safe(None) == "unknown"
    assert stream_key(" A ", "") == "A|unknown"


def test_broadcast_reaches_only_matching_subscribers():
    broker = FrameBroker()
    a1, a2, b = _Conn(), _Conn(), _Conn()

    async def main():
        await broker.subscribe("A|p1", a1)
        await broker.subscribe("A|p1", a2)
        await broker.subscribe("B|p2", b)
        return await broker.broadcast("A|p1", b"frame-1")

    assert asyncio.run(main()) == 2
    assert a1.frames == a2.frames == [b"frame-1"]
    assert b.frames == []


def test_broadcast_without_subscribers_is_dropped():
    assert asyncio.run(FrameBroker().broadcast("nobody|here", b"x")) == 0


def test_failed_subscriber_is_dropped_and_closed():
    broker = FrameBroker()
    good, bad = _Conn(), _Conn(fail=True)

    async def main():
        await broker.subscribe("k", good)
        await broker.subscribe("k", bad)
        await broker.broadcast("k", b"1")
        await broker.broadcast("k", b"2")

    asyncio.run(main())
    assert good.frames == [b"1", b"2"]
    assert bad.closed
    assert broker.subscriber_count("k") == 1


def test_key_removed_when_last_subscriber_leaves():
    broker = FrameBroker()
    conn = _Conn()

    async def main():
        await broker.subscribe("k", conn)
        await broker.unsubscribe("k", conn)

    asyncio.run(main())
    assert broker.stream_counts() == {}


def test_send_control_without_feed():
    with pytest.raises(FeedUnavailable):
        asyncio.run(FrameBroker().send_control("start"))


def test_new_feed_replaces_old_one():
    broker = FrameBroker()
    old, new = _Conn(), _Conn()

    async def main():
        await broker.set_feed(old)
        await broker.set_feed(new)
        await broker.send_control("stop")
        await broker.clear_feed(old)

    asyncio.run(main())
    assert old.closed
    assert new.texts == ["stop"]
    # clearing a stale connection leaves the current feed in place
    assert broker.has_feed


def test_failed_control_send_clears_feed():
    broker = FrameBroker()

    async def main():
        await broker.set_feed(_Conn(fail=True))
        await broker.send_control("start")

    with pytest.raises(FeedUnavailable):
        asyncio.run(main())
    assert not broker.has_feed
