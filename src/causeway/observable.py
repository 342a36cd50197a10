"""Signals — state that tracks its readers.

When a Signal is read inside a Computed, Task or Effect evaluation, the
dependency is automatically registered. When the Signal changes, all
dependents are dirtied and eager ones are scheduled for re-evaluation.

Thread safety: call set_scheduler() once from the loop thread. After that,
any .set() or marshal() from a background thread is handed to the
scheduler. Loop-thread writes remain synchronous.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

from causeway._tracking import Node, begin_batch, end_batch, track

T = TypeVar("T")

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler: Callable[[Callable[[], None]], object] | None = None
_scheduler_thread: threading.Thread | None = None


def set_scheduler(scheduler: Callable[[Callable[[], None]], object] | None) -> None:
    """Set the global thread scheduler for cross-thread graph mutations.

    Call once from the thread that owns the graph:
        causeway.set_scheduler(asyncio.get_running_loop().call_soon_threadsafe)

    After this, any Signal.set() or marshal() from another thread is
    forwarded to the scheduler. Pass None to go back to direct calls.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def marshal(fn: Callable[[], None]) -> None:
    """Run fn on the scheduler thread; directly if already there or unset."""
    if _scheduler is not None and threading.current_thread() is not _scheduler_thread:
        _scheduler(fn)
    else:
        fn()


class Signal(Node, Generic[T]):
    """A single observable value with automatic dependency tracking."""

    __slots__ = ("_value",)

    def __init__(self, value: T) -> None:
        super().__init__()
        self._value = value

    def get(self) -> T:
        """Read the value. If inside an evaluation, registers the dependency."""
        track(self)
        return self._value

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        marshal(lambda v=value: self._set_direct(v))

    def _set_direct(self, value: T) -> bool:
        """Set value and notify if it structurally changed. Returns whether it did."""
        old = self._value
        if old is value or old == value:
            return False
        self._value = value
        begin_batch()
        try:
            self._notify()
        finally:
            end_batch()
        return True

    def __repr__(self) -> str:
        return f"Signal({self._value!r})"
