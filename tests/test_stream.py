"""Tests for EventStream — push-based event stream with operator chaining."""

import asyncio
import logging

import pytest

from causeway import EventStream


class TestEmitSubscribe:
    """Core emit/subscribe behavior."""

    def test_subscribe_receives_emitted_values(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.emit(1)
        stream.emit(2)
        assert received == [1, 2]

    def test_multiple_subscribers(self):
        stream = EventStream()
        a, b = [], []
        stream.subscribe(a.append)
        stream.subscribe(b.append)
        stream.emit("x")
        assert a == ["x"]
        assert b == ["x"]

    def test_unsubscribe_idempotent(self):
        stream = EventStream()
        received = []
        unsub = stream.subscribe(received.append)
        stream.emit(1)
        unsub()
        unsub()
        stream.emit(2)
        assert received == [1]

    def test_failing_subscriber_is_isolated(self, caplog):
        stream = EventStream()
        received = []

        def broken(value):
            raise RuntimeError("listener gone")

        stream.subscribe(broken)
        stream.subscribe(received.append)
        with caplog.at_level(logging.ERROR, logger="causeway.stream"):
            stream.emit("page.html")
        assert received == ["page.html"]
        assert "listener gone" in caplog.text


class TestOperators:
    def test_map(self):
        stream = EventStream()
        received = []
        stream.map(lambda v: v + 1).map(lambda v: v * 10).subscribe(received.append)
        stream.emit(2)
        assert received == [30]

    def test_filter_then_map(self):
        stream = EventStream()
        received = []
        stream.filter(lambda v: v > 0).map(lambda v: v * 10).subscribe(received.append)
        stream.emit(-1)
        stream.emit(3)
        assert received == [30]


class TestTimed:
    @pytest.mark.asyncio
    async def test_debounce_emits_last_of_burst(self):
        stream = EventStream()
        received = []
        stream.debounce(0.03).subscribe(received.append)

        stream.emit(1)
        stream.emit(2)
        stream.emit(3)
        await asyncio.sleep(0.1)
        assert received == [3]

    @pytest.mark.asyncio
    async def test_debounce_separate_bursts(self):
        stream = EventStream()
        received = []
        stream.debounce(0.02).subscribe(received.append)

        stream.emit("a")
        await asyncio.sleep(0.06)
        stream.emit("b")
        await asyncio.sleep(0.06)
        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_buffer_collects_burst(self):
        stream = EventStream()
        received = []
        stream.buffer(0.03).subscribe(received.append)

        for path in ("a.md", "b.md", "c.md"):
            stream.emit(path)
        await asyncio.sleep(0.1)
        stream.emit("d.md")
        await asyncio.sleep(0.1)
        assert received == [["a.md", "b.md", "c.md"], ["d.md"]]

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_timer(self):
        stream = EventStream()
        received = []
        debounced = stream.debounce(0.02)
        debounced.subscribe(received.append)
        stream.emit(1)
        stream.dispose()
        await asyncio.sleep(0.05)
        assert received == []


class TestDispose:
    def test_emit_after_dispose_is_noop(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.dispose()
        stream.emit(1)
        assert received == []

    def test_dispose_propagates_to_children(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        grandchild = child.filter(lambda v: True)
        parent.dispose()
        assert child.disposed
        assert grandchild.disposed

    def test_child_dispose_does_not_affect_parent(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        received = []
        parent.subscribe(received.append)
        child.dispose()
        parent.emit(1)
        assert received == [1]
        assert not parent.disposed
        assert child not in parent._children
