"""Computed values — synchronous derived state with automatic dependency tracking.

A Computed wraps a function. When evaluated, it tracks which nodes the
function reads and caches the result. When any dependency changes, the
cached value is invalidated. On next read, it re-evaluates.

Computed values are lazy — they only recompute when read.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from causeway._errors import CycleError
from causeway._tracking import (
    Derivation,
    Evaluation,
    current_evaluation,
    finish_evaluation,
    track,
)

T = TypeVar("T")

_UNSET = object()


class Computed(Derivation, Generic[T]):
    """A derived value that auto-tracks dependencies and caches the result."""

    __slots__ = ("_fn", "_value", "_dirty", "_evaluating")

    def __init__(self, fn: Callable[[], T]) -> None:
        super().__init__()
        self._fn = fn
        self._value: object = _UNSET
        self._dirty = True
        self._evaluating = False

    def get(self) -> T:
        """Read the computed value. Recomputes if dirty."""
        track(self)
        if self._dirty:
            self._recompute()
        return self._value  # type: ignore[return-value]

    def _recompute(self) -> None:
        """Re-evaluate the function, tracking dependencies."""
        if self._evaluating:
            raise CycleError(f"{self!r} depends on itself")
        evaluation = Evaluation(self)
        token = current_evaluation.set(evaluation)
        self._evaluating = True
        try:
            self._value = self._fn()
        finally:
            self._evaluating = False
            current_evaluation.reset(token)
        finish_evaluation(evaluation)
        self._dirty = False

    def _invalidate(self) -> None:
        """A dependency changed: mark dirty and propagate to our own observers.

        We don't recompute eagerly — that happens on next .get().
        """
        if not self._dirty:
            self._dirty = True
            self._notify()

    def _run(self) -> None:
        pass

    def dispose(self) -> None:
        """Disconnect from all dependencies. The computed becomes inert until read."""
        self._detach()
        self._dirty = True
        self._value = _UNSET

    def __repr__(self) -> str:
        state = "dirty" if self._dirty else f"cached={self._value!r}"
        return f"Computed({getattr(self._fn, '__name__', 'fn')}, {state})"


def computed(fn: Callable[[], T]) -> Computed[T]:
    """Decorator/factory to create a Computed from a function.

    Usage:
        base_url = Signal("/")

        @computed
        def index_href():
            return base_url.get() + "index.html"

        index_href.get()  # "/index.html"
        base_url.set("/docs/")
        index_href.get()  # "/docs/index.html"
    """
    return Computed(fn)
