"""Push-based event stream with operator chaining.

Used for change notifications leaving the graph (a pipeline's writes and
failures). Emit values, subscribe to them, and compose with
debounce/buffer/map/filter. Each operator returns a new stream; dispose()
tears down the stream and everything chained from it.

Time-based operators run on the asyncio loop that is current when the
first event arrives.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

logger = logging.getLogger("causeway.stream")


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[EventStream] = []
        self._disposed = False
        self._parent_disposer: Disposer | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def emit(self, value: T) -> None:
        """Push a value to all subscribers. A failing subscriber is logged and skipped."""
        if self._disposed:
            return
        for cb in list(self._subscribers):
            try:
                cb(value)
            except Exception:
                logger.exception("Stream subscriber %r failed", cb)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def debounce(self, seconds: float) -> EventStream[T]:
        """Emit only the last event of a burst, after ``seconds`` of quiet."""
        child: EventStream[T] = self._chain()

        def _on_event(value: T) -> None:
            child._restart_timer(seconds, lambda: child.emit(value))

        self.subscribe(_on_event)
        return child

    def buffer(self, seconds: float) -> EventStream[list[T]]:
        """Collect a burst of events and emit them together as one list."""
        child: EventStream[list[T]] = self._chain()
        pending: list[T] = []

        def _flush() -> None:
            batch = pending[:]
            pending.clear()
            child.emit(batch)

        def _on_event(value: T) -> None:
            pending.append(value)
            child._restart_timer(seconds, _flush)

        self.subscribe(_on_event)
        return child

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = self._chain()
        self.subscribe(lambda v: child.emit(fn(v)))
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = self._chain()
        self.subscribe(lambda v: child.emit(v) if fn(v) else None)
        return child

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        self._disposed = True
        self._subscribers.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _restart_timer(self, seconds: float, fire: Callable[[], None]) -> None:
        if self._disposed:
            return
        if self._timer is not None:
            self._timer.cancel()

        def _fire() -> None:
            self._timer = None
            fire()

        self._timer = asyncio.get_running_loop().call_later(seconds, _fire)

    def _chain(self) -> EventStream:
        child: EventStream = EventStream()
        self._children.append(child)

        def _remove() -> None:
            if child in self._children:
                self._children.remove(child)

        child._parent_disposer = _remove
        return child
