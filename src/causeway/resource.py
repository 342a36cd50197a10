"""LazyResource — acquire an external resource only while the graph needs it.

A resource is attached to one or more nodes (a Signal, or every node of a
KeyedCollection). The graph calls retain()/release() as those nodes gain
and lose live observers; because liveness is a transitive reference count,
a collection read only through a chain of derivations still counts as live
while a terminal effect is reading the end of the chain.

activate() runs exactly once on each 0→1 transition and deactivate()
exactly once on each 1→0 transition. A failed activation is logged once,
kept on the resource as ``error`` and reported to ``on_error``; the resource
is degraded from then on and never activates again.
"""

from __future__ import annotations

import logging
from typing import Callable

from causeway._errors import ResourceError

logger = logging.getLogger("causeway.resource")

Release = Callable[[], None]


class LazyResource:
    """An acquisition/release pair bound to transitive graph liveness.

    Args:
        acquire: Called on activation. If it returns a callable and no
            ``release`` was given, that callable releases the resource.
        release: Called on deactivation.
        on_error: Receives the ResourceError if activation fails.
        name: Used in logs.
    """

    __slots__ = (
        "_acquire", "_release", "_on_error", "_subscribers", "_disposer",
        "name", "active", "error", "activations", "deactivations",
    )

    def __init__(
        self,
        acquire: Callable[[], Release | None],
        release: Release | None = None,
        *,
        on_error: Callable[[ResourceError], None] | None = None,
        name: str = "resource",
    ) -> None:
        self._acquire = acquire
        self._release = release
        self._on_error = on_error
        self._subscribers = 0
        self._disposer: Release | None = None
        self.name = name
        self.active = False
        self.error: ResourceError | None = None
        self.activations = 0
        self.deactivations = 0

    @property
    def subscribers(self) -> int:
        """Number of live nodes this resource is attached to."""
        return self._subscribers

    def retain(self) -> None:
        self._subscribers += 1
        if self._subscribers == 1:
            self.activate()

    def release(self) -> None:
        self._subscribers -= 1
        if self._subscribers == 0:
            self.deactivate()

    def activate(self) -> None:
        if self.active or self.error is not None:
            return
        try:
            result = self._acquire()
        except Exception as exc:
            self.error = ResourceError(f"{self.name} failed to activate: {exc}")
            self.error.__cause__ = exc
            logger.exception("Resource %s failed to activate; updates disabled", self.name)
            if self._on_error is not None:
                self._on_error(self.error)
            return
        if self._release is None and callable(result):
            self._disposer = result
        self.active = True
        self.activations += 1
        logger.debug("Resource %s activated", self.name)

    def deactivate(self) -> None:
        if not self.active:
            return
        self.active = False
        self.deactivations += 1
        release = self._release or self._disposer
        self._disposer = None
        if release is None:
            return
        try:
            release()
        except Exception:
            logger.exception("Resource %s failed to release", self.name)
        logger.debug("Resource %s deactivated", self.name)

    def __repr__(self) -> str:
        if self.error is not None:
            state = "failed"
        else:
            state = "active" if self.active else "idle"
        return f"LazyResource({self.name}, {state}, subscribers={self._subscribers})"
