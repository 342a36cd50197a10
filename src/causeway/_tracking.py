"""Dependency tracking engine — the heart of Causeway.

Uses contextvars to track which nodes are read during a computed, task or
effect evaluation, building the dependency graph automatically. Each run
records its reads in a fresh Evaluation; when the run finishes, edges that
were not read again are dropped, so dependency sets are rebuilt on every
run rather than accumulated.

Batching: every write opens a batch. Dirtying propagates synchronously
through the graph while the batch is open; derivations that must run
eagerly (effects, live tasks) are queued and flushed once when the
outermost batch exits, ensuring glitch-free updates.

Liveness: every edge from a live observer holds a reference on its
dependency. A derivation that becomes live retains its own dependencies
in turn, so liveness is a transitive reference count maintained on every
edge creation and removal.
"""

from __future__ import annotations

import contextvars
import logging
from typing import TYPE_CHECKING, Callable, TypeVar

from causeway._errors import CycleError

if TYPE_CHECKING:
    from causeway.resource import LazyResource

T = TypeVar("T")

logger = logging.getLogger("causeway.tracking")

# A flush that is still producing work after this many rounds is a cycle.
_MAX_FLUSH_ROUNDS = 100


class Node:
    """Anything that can be read inside an evaluation.

    Holds the observer half of every edge and the live count: the number
    of live observers currently reading this node.
    """

    __slots__ = ("_observers", "_live_count", "_owner")

    def __init__(self) -> None:
        self._observers: set[Derivation] = set()
        self._live_count = 0
        # Liveness sink for resource-bearing nodes (retain/release).
        self._owner: LazyResource | None = None

    def _is_live(self) -> bool:
        return self._live_count > 0

    def _add_observer(self, derivation: Derivation) -> None:
        if derivation in self._observers:
            return
        self._observers.add(derivation)
        if derivation._is_live():
            self._retain()

    def _remove_observer(self, derivation: Derivation) -> None:
        if derivation not in self._observers:
            return
        self._observers.discard(derivation)
        if derivation._is_live():
            self._release()

    def _retain(self) -> None:
        self._live_count += 1
        if self._live_count == 1:
            self._on_live()

    def _release(self) -> None:
        self._live_count -= 1
        if self._live_count == 0:
            self._on_idle()

    def _on_live(self) -> None:
        if self._owner is not None:
            self._owner.retain()

    def _on_idle(self) -> None:
        if self._owner is not None:
            self._owner.release()

    def _notify(self) -> None:
        """Dirty all observers. Must be called inside a batch."""
        for observer in list(self._observers):
            observer._invalidate()


class Derivation(Node):
    """A node computed from other nodes: Computed, Task or Effect."""

    __slots__ = ("_dependencies",)

    def __init__(self) -> None:
        super().__init__()
        # Insertion-ordered set of nodes this derivation currently observes.
        self._dependencies: dict[Node, None] = {}

    def _accepts(self, evaluation: Evaluation) -> bool:
        """Whether reads made by this evaluation still count."""
        return True

    def _invalidate(self) -> None:
        """An upstream node changed."""
        raise NotImplementedError

    def _run(self) -> None:
        """Called by the flush for derivations queued with schedule()."""
        raise NotImplementedError

    def _on_live(self) -> None:
        for dep in list(self._dependencies):
            dep._retain()
        super()._on_live()

    def _on_idle(self) -> None:
        for dep in list(self._dependencies):
            dep._release()
        super()._on_idle()

    def _detach(self) -> None:
        """Drop every dependency edge."""
        for dep in list(self._dependencies):
            dep._remove_observer(self)
        self._dependencies.clear()


class Evaluation:
    """One tracked run of a derivation and the nodes it read."""

    __slots__ = ("derivation", "generation", "reads")

    def __init__(self, derivation: Derivation, generation: int = 0) -> None:
        self.derivation = derivation
        self.generation = generation
        self.reads: dict[Node, None] = {}


# The evaluation currently running. When set, any tracked read registers
# the node as a dependency of the evaluating derivation.
current_evaluation: contextvars.ContextVar[Evaluation | None] = contextvars.ContextVar(
    "current_evaluation", default=None
)

# Batch depth counter. When > 0, scheduled derivations are deferred.
_batch_depth: int = 0

# Derivations queued during a batch, awaiting flush, in scheduling order.
_pending: dict[Derivation, None] = {}


def track(node: Node) -> None:
    """Register a read of node by the current evaluation, if any."""
    evaluation = current_evaluation.get()
    if evaluation is None:
        return
    derivation = evaluation.derivation
    if derivation is node:
        raise CycleError(f"{node!r} read itself")
    if node in evaluation.reads or not derivation._accepts(evaluation):
        return
    evaluation.reads[node] = None
    if node not in derivation._dependencies:
        derivation._dependencies[node] = None
        node._add_observer(derivation)


def finish_evaluation(evaluation: Evaluation) -> None:
    """Replace the derivation's dependency set with what this run read."""
    derivation = evaluation.derivation
    for dep in [d for d in derivation._dependencies if d not in evaluation.reads]:
        del derivation._dependencies[dep]
        dep._remove_observer(derivation)


def untracked(fn: Callable[[], T]) -> T:
    """Call fn without registering any of its reads."""
    token = current_evaluation.set(None)
    try:
        return fn()
    finally:
        current_evaluation.reset(token)


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending derivations."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


def schedule(derivation: Derivation) -> None:
    """Queue a derivation to run when the outermost batch exits."""
    _pending[derivation] = None
    if _batch_depth == 0:
        _flush_pending()


def _flush_pending() -> None:
    """Run all pending derivations. Handles derivations scheduled during flush."""
    global _batch_depth
    # Writes made by effects while flushing queue more work for this loop
    # instead of starting a nested flush.
    _batch_depth += 1
    try:
        rounds = 0
        while _pending:
            rounds += 1
            if rounds > _MAX_FLUSH_ROUNDS:
                logger.error(
                    "Propagation did not settle after %d rounds; dropping %d derivations",
                    _MAX_FLUSH_ROUNDS, len(_pending),
                )
                _pending.clear()
                break
            # Snapshot and clear — derivations may schedule new ones during run.
            batch = list(_pending)
            _pending.clear()
            for derivation in batch:
                derivation._run()
    finally:
        _batch_depth -= 1
