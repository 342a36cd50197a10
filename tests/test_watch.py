"""Tests for watch() — managed daemon threads."""

import asyncio
import logging
import threading

import pytest

from causeway import Signal, effect, set_scheduler, watch


class TestWatch:
    def test_function_runs(self):
        ran = threading.Event()
        handle = watch(lambda stop: ran.set())
        assert ran.wait(timeout=2)
        handle.dispose()

    def test_dispose_sets_stop_event(self):
        started = threading.Event()
        stopped = threading.Event()

        def loop(stop):
            started.set()
            stop.wait()
            stopped.set()

        handle = watch(loop)
        assert started.wait(timeout=2)
        assert not handle.disposed
        handle.dispose()
        assert handle.disposed
        assert stopped.is_set()  # dispose() joined the thread
        assert not handle.is_running

    def test_crash_is_logged(self, caplog):
        def crash(stop):
            raise RuntimeError("watcher died")

        with caplog.at_level(logging.ERROR, logger="causeway.watch"):
            handle = watch(crash, name="crashy")
            handle.dispose()
        assert "crashy" in caplog.text

    @pytest.mark.asyncio
    async def test_signal_updated_from_thread_lands_on_loop(self):
        loop = asyncio.get_running_loop()
        set_scheduler(loop.call_soon_threadsafe)
        health = Signal(True)
        seen = []
        effect(lambda: seen.append((health.get(), threading.current_thread())))

        handle = watch(lambda stop: health.set(False))
        for _ in range(100):
            if len(seen) == 2:
                break
            await asyncio.sleep(0.01)
        handle.dispose()

        assert seen[-1] == (False, threading.current_thread())
