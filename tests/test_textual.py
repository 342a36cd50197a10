"""Tests for causeway.textual — Textual integration layer."""

import logging
import threading

import pytest
from textual.css.query import NoMatches

from causeway import KeyedCollection, Signal, Task, await_quiescence, derive
from causeway import textual as ctx


class _MockApp:
    """Minimal mock matching the Textual App interface the bridge needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class TestEffect:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        s = Signal(1)
        log = []
        ctx.effect(app, lambda: log.append(s.get()))
        assert log == []

    def test_fires_when_safe(self):
        app = _MockApp()
        s = Signal(1)
        log = []
        ctx.effect(app, lambda: log.append(s.get()))
        s.set(2)
        assert log == [1, 2]

    def test_skips_during_pause(self):
        app = _MockApp()
        s = Signal(1)
        log = []
        ctx.effect(app, lambda: log.append(s.get()))
        with ctx.pause(app):
            s.set(2)
        assert log == [1]

    def test_catches_nomatch(self):
        app = _MockApp()
        s = Signal(1)
        calls = [0]

        def fn():
            calls[0] += 1
            s.get()
            if calls[0] > 1:
                raise NoMatches("StatusFooter")

        ctx.effect(app, fn)
        s.set(2)
        assert calls[0] == 2
        s.set(3)
        assert calls[0] == 3  # still tracking after NoMatches

    def test_real_errors_are_logged(self, caplog):
        app = _MockApp()
        s = Signal(1)

        def fn():
            if s.get() == 2:
                raise ValueError("boom")

        ctx.effect(app, fn, name="footer")
        with caplog.at_level(logging.ERROR, logger="causeway.effect"):
            s.set(2)
        assert "boom" in caplog.text

    def test_thread_marshal(self):
        app = _MockApp()
        s = Signal(1)
        log = []
        ctx.effect(app, lambda: log.append(s.get()))

        t = threading.Thread(target=lambda: s.set(2))
        t.start()
        t.join()

        assert log == [1, 2]
        assert len(app._call_from_thread_log) >= 1

    def test_dispose(self):
        app = _MockApp()
        s = Signal(1)
        log = []
        e = ctx.effect(app, lambda: log.append(s.get()))
        e.dispose()
        s.set(2)
        assert log == [1]


class TestBuildStatus:
    @pytest.mark.asyncio
    async def test_renders_counts(self):
        app = _MockApp()
        pages = KeyedCollection([("a", 1), ("b", -1)], key=lambda item: item[0])

        def build(item):
            if item[1] < 0:
                raise ValueError("negative")
            return item[1]

        rendered = []
        ctx.build_status(app, derive(pages, build), rendered.append)
        await await_quiescence()

        last = rendered[-1]
        assert (last.pending, last.ok, last.failed) == (0, 1, 1)
        assert rendered[0].pending == 2

    @pytest.mark.asyncio
    async def test_tracks_while_paused(self):
        app = _MockApp()
        t = Task(lambda token: "done")
        pages = KeyedCollection([("a", 1)], key=lambda item: item[0])
        rendered = []

        with ctx.pause(app):
            ctx.build_status(app, derive(pages, lambda item: t.get()), rendered.append)
            await await_quiescence()
        assert rendered == []

        pages.add(("b", 2))
        await await_quiescence()
        assert rendered[-1].ok == 2

    def test_nomatch_ignored(self):
        app = _MockApp()
        pages = KeyedCollection([], key=lambda item: item[0])

        def render(status):
            raise NoMatches("#status")

        ctx.build_status(app, pages.derive(lambda item: item), render)


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert ctx.is_safe(app)
        with pytest.raises(RuntimeError):
            with ctx.pause(app):
                assert not ctx.is_safe(app)
                raise RuntimeError("oops")
        assert ctx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        app = _MockApp()
        attrs_before = set(vars(app))
        with ctx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        app_a = _MockApp()
        app_b = _MockApp()
        with ctx.pause(app_a):
            assert not ctx.is_safe(app_a)
            assert ctx.is_safe(app_b)
