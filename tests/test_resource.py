"""Tests for LazyResource — acquisition bound to transitive liveness."""

import logging
from operator import itemgetter

import pytest

from causeway import (
    KeyedCollection,
    LazyResource,
    ResourceError,
    Signal,
    await_quiescence,
    derive,
    effect,
)


def tracked_resource(log, name="watcher"):
    def acquire():
        log.append("on")
        return lambda: log.append("off")

    return LazyResource(acquire, name=name)


class TestLifecycle:
    def test_idle_until_read(self):
        log = []
        res = tracked_resource(log)
        files = KeyedCollection([("a", 1)], key=itemgetter(0), resource=res)
        files.keys()  # untracked read outside any effect
        assert log == []
        assert not res.active

    def test_direct_effect(self):
        log = []
        res = tracked_resource(log)
        files = KeyedCollection([("a", 1)], key=itemgetter(0), resource=res)

        e = effect(lambda: len(files))
        assert res.active
        assert log == ["on"]

        e.dispose()
        assert log == ["on", "off"]
        assert res.subscribers == 0

    def test_explicit_release(self):
        log = []
        res = LazyResource(lambda: log.append("on"), lambda: log.append("off"))
        sig = Signal(0)
        sig._owner = res
        e = effect(sig.get)
        e.dispose()
        assert log == ["on", "off"]

    @pytest.mark.asyncio
    async def test_two_stage_chain_activates_once(self):
        log = []
        res = tracked_resource(log)
        files = KeyedCollection([("a", 1), ("b", 2)], key=itemgetter(0), resource=res)
        html = derive(derive(files, itemgetter(1)), lambda v: f"<p>{v}</p>")
        assert not res.active

        e = effect(lambda: [task.state for _, task in html])
        await await_quiescence()
        assert res.active
        assert res.activations == 1

        files.update("a", ("a", 10))
        files.add(("c", 3))
        files.remove("b")
        await await_quiescence()
        assert res.activations == 1
        assert res.deactivations == 0

        e.dispose()
        assert not res.active
        assert res.deactivations == 1
        assert res.subscribers == 0
        assert log == ["on", "off"]

    def test_conditional_read_activates_when_reached(self):
        log = []
        res = tracked_resource(log)
        files = KeyedCollection([("a", 1)], key=itemgetter(0), resource=res)
        show = Signal(False)

        effect(lambda: len(files) if show.get() else None)
        assert log == []

        show.set(True)
        assert log == ["on"]

        show.set(False)
        assert log == ["on", "off"]

    def test_two_readers_share_one_activation(self):
        log = []
        res = tracked_resource(log)
        files = KeyedCollection([("a", 1)], key=itemgetter(0), resource=res)

        first = effect(lambda: files.keys())
        second = effect(lambda: files.get("a"))
        first.dispose()
        assert log == ["on"]
        second.dispose()
        assert log == ["on", "off"]


class TestDegradation:
    def test_failed_activation_is_reported_once(self, caplog):
        reported = []

        def acquire():
            raise FileNotFoundError("content/ does not exist")

        res = LazyResource(acquire, on_error=reported.append, name="watch:content")
        files = KeyedCollection([("a", 1)], key=itemgetter(0), resource=res)

        with caplog.at_level(logging.ERROR, logger="causeway.resource"):
            e = effect(lambda: len(files))
        assert len(reported) == 1
        assert isinstance(res.error, ResourceError)
        assert isinstance(res.error.__cause__, FileNotFoundError)
        assert "watch:content" in caplog.text

        # The graph keeps working without the resource.
        log = []
        e2 = effect(lambda: log.append(len(files)))
        files.add(("b", 2))
        assert log == [1, 2]

        e.dispose()
        e2.dispose()
        effect(lambda: len(files))
        assert len(reported) == 1
        assert res.activations == 0

    def test_release_failure_is_logged(self, caplog):
        def release():
            raise OSError("already closed")

        res = LazyResource(lambda: None, release, name="socket")
        sig = Signal(0)
        sig._owner = res
        e = effect(sig.get)
        with caplog.at_level(logging.ERROR, logger="causeway.resource"):
            e.dispose()
        assert "socket" in caplog.text
        assert not res.active
