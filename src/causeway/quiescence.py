"""Quiescence — knowing when a build has fully settled.

The graph counts Tasks that are pending with work in flight. The count is
private to this module; the only public view of it is await_quiescence(),
which resolves once no Task is pending and the count stays at zero through
one more pass of the event loop.
"""

from __future__ import annotations

import asyncio


class _QuiescenceMonitor:
    """Pending-task counter plus the futures waiting for it to reach zero."""

    __slots__ = ("_busy", "_waiters")

    def __init__(self) -> None:
        self._busy = 0
        self._waiters: list[asyncio.Future[None]] = []

    def enter(self) -> None:
        self._busy += 1

    def leave(self) -> None:
        self._busy -= 1
        if self._busy == 0:
            waiters, self._waiters = self._waiters, []
            for waiter in waiters:
                if not waiter.done() and not waiter.get_loop().is_closed():
                    waiter.set_result(None)

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            if self._busy == 0:
                # One more pass lets callbacks queued by the last settlement
                # (marshaled writes, task starts) raise the count again.
                await asyncio.sleep(0)
                if self._busy == 0:
                    return
                continue
            waiter = loop.create_future()
            self._waiters.append(waiter)
            await waiter


_monitor = _QuiescenceMonitor()


async def await_quiescence() -> None:
    """Wait until every Task in the graph has settled to Ok or Err.

    Never resolves mid-cascade: a Task whose settlement starts another
    Task hands the count over before releasing its own.
    """
    await _monitor.wait()
