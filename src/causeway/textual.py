"""Textual integration for Causeway. Opt-in, requires textual.

Effects bound to a Textual app: guarded while the app is not running or is
replacing widgets, tolerant of NoMatches from widget queries, and
marshaled to the app thread with call_from_thread.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from textual.css.query import NoMatches

from causeway.collection import KeyedView
from causeway.derive import BuildStatus, collection_status
from causeway.effect import Effect, effect as _effect

# Keyed by id(app) so several apps can coexist in tests.
# An id is present exactly while that app is inside pause().
_paused_apps: set[int] = set()


@contextmanager
def pause(app: Any) -> Iterator[None]:
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app: Any) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def effect(app: Any, fn: Callable[[], Any], *, name: str | None = None) -> Effect:
    """effect() that safely bridges to Textual widgets.

    fn is skipped while the app is unsafe, and a run that was skipped tracks
    nothing. NoMatches from widget queries is ignored.
    """
    main = threading.get_ident()

    def _guarded() -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe() -> None:
        try:
            fn()
        except NoMatches:
            pass

    return _effect(_guarded, name=name or getattr(fn, "__name__", "textual-effect"))


def build_status(
    app: Any, collection: KeyedView, render: Callable[[BuildStatus], Any]
) -> Effect:
    """Re-render a status widget whenever any Task in collection changes state.

    Usage:
        build_status(app, pipeline.frontier,
                     lambda s: app.query_one("#status").update(f"{s.ok} ok, {s.pending} pending"))
    """
    main = threading.get_ident()

    def _track() -> None:
        status = collection_status(collection)
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, status)
        else:
            _safe(status)

    def _safe(status: BuildStatus) -> None:
        try:
            render(status)
        except NoMatches:
            pass

    return _effect(_track, name="build-status")
