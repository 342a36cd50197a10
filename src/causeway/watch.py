"""watch() — run a function in a managed daemon thread.

The function receives a threading.Event that is set when the handle is
disposed; long-running loops (such as watchfiles.watch) take it as their
stop signal. The thread must never touch the graph directly: it hands
writes to the loop thread through Signal.set() or marshal().
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger("causeway.watch")

# How long dispose() waits for the thread to notice its stop event.
_JOIN_TIMEOUT = 5.0


class WatchHandle:
    """Disposable handle for a managed daemon thread."""

    __slots__ = ("stop_event", "_thread")

    def __init__(self) -> None:
        self.stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def disposed(self) -> bool:
        return self.stop_event.is_set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def dispose(self) -> None:
        """Signal the thread to stop and wait briefly for it to exit."""
        self.stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Thread %s did not stop within %.1fs", thread.name, _JOIN_TIMEOUT)


def watch(fn: Callable[[threading.Event], None], *, name: str = "causeway-watch") -> WatchHandle:
    """Run fn(stop_event) in a daemon thread. Returns WatchHandle.

    Usage:
        def poll(stop):
            while not stop.wait(2):
                healthy.set(check())

        handle = watch(poll)
        ...
        handle.dispose()
    """
    handle = WatchHandle()

    def _target() -> None:
        try:
            fn(handle.stop_event)
        except Exception:
            logger.exception("Watched thread %s crashed", name)

    handle._thread = threading.Thread(target=_target, name=name, daemon=True)
    handle._thread.start()
    return handle
