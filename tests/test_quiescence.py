"""Tests for await_quiescence()."""

import asyncio

import pytest

from causeway import Ok, Signal, Task, await_quiescence, effect


class TestQuiescence:
    @pytest.mark.asyncio
    async def test_idle_graph_resolves(self):
        await asyncio.wait_for(await_quiescence(), timeout=1)

    @pytest.mark.asyncio
    async def test_waits_for_pending_tasks(self):
        gate = asyncio.Event()

        async def body(token):
            await gate.wait()
            return "done"

        t = Task(body)
        effect(lambda: t.state)
        waiter = asyncio.ensure_future(await_quiescence())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        gate.set()
        await asyncio.wait_for(waiter, timeout=1)
        assert t.state == Ok("done")

    @pytest.mark.asyncio
    async def test_never_resolves_mid_cascade(self):
        """A settlement that starts another task hands the count over first."""
        src = Signal(1)

        async def first(token):
            v = src.get()
            await asyncio.sleep(0.01)
            return v

        a = Task(first, name="a")

        async def second(token):
            v = a.get()
            await asyncio.sleep(0.01)
            return v + 1

        b = Task(second, name="b")

        async def third(token):
            v = b.get()
            await asyncio.sleep(0.01)
            return v * 10

        c = Task(third, name="c")
        effect(lambda: c.state)

        await await_quiescence()
        assert (a.state, b.state, c.state) == (Ok(1), Ok(2), Ok(20))

        src.set(5)
        await await_quiescence()
        assert c.state == Ok(60)

    @pytest.mark.asyncio
    async def test_several_waiters(self):
        t = Task(lambda token: 1)
        effect(lambda: t.state)
        await asyncio.gather(await_quiescence(), await_quiescence())
        assert t.state == Ok(1)
