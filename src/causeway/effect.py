"""Effects — side effects triggered by graph changes.

Unlike Computed (which is lazy and only evaluates on read), an Effect
eagerly re-runs whenever a node it read on its last run changes. Effects
are the terminal nodes of the graph and the roots of liveness: while an
Effect is alive, everything it reads (directly or through any chain of
derivations) counts as live.

An exception escaping an Effect is logged and that run is skipped; the
effect keeps its dependencies and runs again on the next change. A
TaskPending from reading an unsettled Task is not logged as a failure.

match() dispatches on the state of one or more Tasks.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

from causeway._errors import TaskPending
from causeway._tracking import (
    Derivation,
    Evaluation,
    begin_batch,
    current_evaluation,
    end_batch,
    finish_evaluation,
    schedule,
)
from causeway.task import Err, Ok, Task

R = TypeVar("R")

logger = logging.getLogger("causeway.effect")

Cleanup = Callable[[], None]


class Effect(Derivation):
    """A reactive side effect that re-runs when its dependencies change.

    ``fn`` may return a cleanup callable; it runs before the next run and
    on dispose().
    """

    __slots__ = ("_fn", "_cleanup", "_disposed", "name", "runs")

    def __init__(self, fn: Callable[[], Cleanup | None], *, name: str | None = None) -> None:
        super().__init__()
        self._fn = fn
        self._cleanup: Cleanup | None = None
        self._disposed = False
        self.name = name or getattr(fn, "__name__", "effect")
        self.runs = 0

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _is_live(self) -> bool:
        return not self._disposed

    def _accepts(self, evaluation: Evaluation) -> bool:
        return not self._disposed

    def _invalidate(self) -> None:
        if not self._disposed:
            schedule(self)

    def _run(self) -> None:
        """Re-run the effect function, re-tracking dependencies."""
        if self._disposed:
            return
        self._run_cleanup()

        evaluation = Evaluation(self)
        token = current_evaluation.set(evaluation)
        try:
            result = self._fn()
        except TaskPending as exc:
            # Not a failure: the effect re-runs once that Task settles.
            finish_evaluation(evaluation)
            logger.debug("Effect %s waiting on %r", self.name, exc.task)
            return
        except Exception:
            logger.exception("Effect %s failed; skipping this run", self.name)
            return
        finally:
            current_evaluation.reset(token)

        finish_evaluation(evaluation)
        self.runs += 1
        if callable(result):
            self._cleanup = result

    def _run_cleanup(self) -> None:
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is None:
            return
        try:
            cleanup()
        except Exception:
            logger.exception("Cleanup for effect %s failed", self.name)

    def dispose(self) -> None:
        """Stop this effect. Disconnects from all dependencies and runs cleanup."""
        if self._disposed:
            return
        # Edges are dropped while still live so upstream liveness is released.
        self._detach()
        self._disposed = True
        self._run_cleanup()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Effect({self.name}, {state})"


def effect(fn: Callable[[], Cleanup | None], *, name: str | None = None) -> Effect:
    """Run fn immediately, then re-run whenever any node it reads changes.

    Returns the Effect (call .dispose() to stop).

    Usage:
        base_url = Signal("/")
        log = []

        e = effect(lambda: log.append(base_url.get()))
        # log == ["/"] — ran immediately

        base_url.set("/docs/")
        # log == ["/", "/docs/"] — re-ran because base_url changed

        e.dispose()
        base_url.set("/v2/")
        # log == ["/", "/docs/"] — stopped
    """
    e = Effect(fn, name=name)
    begin_batch()
    try:
        e._run()  # Initial run to establish dependencies
    finally:
        end_batch()
    return e


def match(
    tasks: Task | Sequence[Task],
    *,
    ok: Callable[..., R],
    nil: Callable[[], R] | None = None,
    err: Callable[[list[BaseException]], R] | None = None,
) -> R | None:
    """Dispatch on the combined state of one or more Tasks.

    Calls ``ok(*values)`` when every task is Ok, ``err(errors)`` when any is
    Err, and ``nil()`` otherwise. Every task's state is read, and tracked,
    before a branch is chosen, so the caller re-runs when any of them
    changes no matter which branch was taken.

    Usage:
        effect(lambda: match(
            [layout, page],
            ok=lambda html, data: write(render(html, data)),
            nil=lambda: None,
            err=lambda errors: log.error("build failed: %s", errors[0]),
        ))
    """
    if isinstance(tasks, Task):
        tasks = (tasks,)
    states = [task.state for task in tasks]

    errors = [s.error for s in states if isinstance(s, Err)]
    if errors:
        return err(errors) if err is not None else None
    if not all(isinstance(s, Ok) for s in states):
        return nil() if nil is not None else None
    return ok(*(s.value for s in states))
