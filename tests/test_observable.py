"""Tests for Signal and cross-thread marshaling."""

import threading

from causeway import Signal, effect, marshal, set_scheduler, untracked


class TestSignal:
    def test_get_set(self):
        s = Signal(42)
        assert s.get() == 42
        s.set(100)
        assert s.get() == 100

    def test_dedup(self):
        """Setting an equal value should not trigger observers."""
        s = Signal({"title": "Docs"})
        log = []
        effect(lambda: log.append(s.get()))
        s.set({"title": "Docs"})
        assert log == [{"title": "Docs"}]

    def test_notifies_observers(self):
        s = Signal("hello")
        log = []
        effect(lambda: log.append(s.get()))
        s.set("world")
        assert log == ["hello", "world"]

    def test_peek_does_not_track(self):
        s = Signal(1)
        log = []
        effect(lambda: log.append(s.peek()))
        s.set(2)
        assert log == [1]

    def test_untracked(self):
        a = Signal(1)
        b = Signal(10)
        log = []
        effect(lambda: log.append(a.get() + untracked(b.get)))
        b.set(20)
        assert log == [11]
        a.set(2)
        assert log == [11, 22]

    def test_repr(self):
        assert "Signal(5)" in repr(Signal(5))


class TestScheduler:
    def test_direct_without_scheduler(self):
        log = []
        marshal(lambda: log.append("ran"))
        assert log == ["ran"]

    def test_scheduler_thread_is_synchronous(self):
        queued = []
        set_scheduler(queued.append)
        s = Signal(0)
        s.set(1)
        assert s.peek() == 1
        assert queued == []

    def test_background_thread_is_marshaled(self):
        queued = []
        set_scheduler(queued.append)
        s = Signal(0)

        t = threading.Thread(target=lambda: s.set(7))
        t.start()
        t.join()

        assert s.peek() == 0
        assert len(queued) == 1
        queued[0]()
        assert s.peek() == 7

    def test_reset(self):
        queued = []
        set_scheduler(queued.append)
        set_scheduler(None)
        t = threading.Thread(target=lambda: marshal(lambda: queued.append("direct")))
        t.start()
        t.join()
        assert queued == ["direct"]
