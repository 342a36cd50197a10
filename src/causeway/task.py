"""Tasks — async derived nodes with a tri-state result.

A Task wraps a function ``fn(token)`` that may return a value or an
awaitable. Its state is Pending, Ok(value) or Err(error); there is no
stale-value-while-revalidating mode, so a consumer sees either a fresh
result or Pending.

Every run gets a new generation and a CancelToken. When a dependency
changes, the Task drops back to Pending, cancels the in-flight run and
starts a new generation. Only the latest generation may settle: a
superseded run's result is discarded whether or not its body noticed the
cancellation.

Reads inside the body are tracked across awaits (the evaluation lives in
the asyncio task's context). Reading a Pending Task raises TaskPending,
which parks this Task at Pending until the upstream settles; reading an
Err Task raises its error, which becomes this Task's Err. Before invoking
the body again, the Task checks the Tasks it read last time and skips the
body entirely while any of them is Pending.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from causeway._errors import TaskPending
from causeway._tracking import (
    Derivation,
    Evaluation,
    begin_batch,
    current_evaluation,
    end_batch,
    finish_evaluation,
    schedule,
    track,
)
from causeway.quiescence import _monitor

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Pending:
    """No result yet, or just invalidated."""

    def __repr__(self) -> str:
        return "Pending"


PENDING = Pending()


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Err:
    error: BaseException


TaskState = Union[Pending, Ok, Err]


class CancelToken:
    """Handed to each task run. Cancelled once the run is superseded."""

    __slots__ = ("generation", "_cancelled", "_event")

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until this run is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancelToken(generation={self.generation}, cancelled={self._cancelled})"


TaskFn = Callable[[CancelToken], Union[T, Awaitable[T]]]


class Task(Derivation, Generic[T]):
    """An async derived value with generations and cancellation."""

    __slots__ = (
        "_fn", "_state", "_generation", "_stale", "_busy", "_run_task",
        "_token", "_disposed", "name", "invocations",
    )

    def __init__(self, fn: TaskFn[T], *, name: str | None = None) -> None:
        super().__init__()
        self._fn = fn
        self._state: TaskState = PENDING
        self._generation = 0
        self._stale = True
        self._busy = False
        self._run_task: asyncio.Task | None = None
        self._token: CancelToken | None = None
        self._disposed = False
        self.name = name or getattr(fn, "__name__", "task")
        # Number of times the body was actually called.
        self.invocations = 0

    @property
    def state(self) -> TaskState:
        """Current state. Tracked; starts a run if the task is stale."""
        track(self)
        return self._peek()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get(self) -> T:
        """Unwrap the result: the Ok value, the Err error raised, or TaskPending."""
        state = self.state
        if isinstance(state, Ok):
            return state.value
        if isinstance(state, Err):
            raise state.error
        raise TaskPending(self)

    def dispose(self) -> None:
        """Abort any in-flight run and drop all dependency edges."""
        if self._disposed:
            return
        self._abort()
        self._leave_busy()
        self._detach()
        self._disposed = True
        self._stale = False

    # --- Graph hooks ---

    def _peek(self) -> TaskState:
        if self._stale and not self._disposed:
            self._start()
        return self._state

    def _accepts(self, evaluation: Evaluation) -> bool:
        return self._token is not None and self._token.generation == evaluation.generation

    def _invalidate(self) -> None:
        if self._disposed:
            return
        self._abort()
        self._stale = True
        settled = self._state is not PENDING
        self._state = PENDING
        if self._is_live():
            self._enter_busy()
            schedule(self)
        else:
            # Nobody is watching: restart lazily on the next read.
            self._leave_busy()
        if settled:
            self._notify()

    def _run(self) -> None:
        if self._stale and not self._disposed:
            self._start()

    def _on_live(self) -> None:
        super()._on_live()
        if self._stale and not self._disposed:
            self._start()

    # --- Runs ---

    def _start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise RuntimeError(f"{self!r} needs a running event loop to start") from None
        self._stale = False
        self._generation += 1
        token = self._token = CancelToken(self._generation)
        self._enter_busy()

        waiting = self._waiting_on_upstream()
        if token is not self._token:
            return  # invalidated while checking upstream
        if waiting:
            return  # parked until the pending upstream settles

        self._run_task = loop.create_task(self._execute(token), name=f"causeway:{self.name}")

    def _waiting_on_upstream(self) -> bool:
        """Whether a Task read on the previous run is still Pending.

        Err upstreams do not block: the body runs, and only re-raises the
        error if it still reads that Task.
        """
        waiting = False
        for dep in list(self._dependencies):
            if isinstance(dep, Task) and dep._peek() is PENDING:
                waiting = True
        return waiting

    async def _execute(self, token: CancelToken) -> None:
        evaluation = Evaluation(self, token.generation)
        ctx = current_evaluation.set(evaluation)
        outcome: TaskState
        try:
            self.invocations += 1
            result = self._fn(token)
            if inspect.isawaitable(result):
                result = await result
            outcome = Ok(result)
        except TaskPending:
            outcome = PENDING
        except asyncio.CancelledError:
            if token.cancelled:
                return
            # Cancelled from outside (loop shutdown): forget the run.
            if token is self._token:
                self._token = None
                self._run_task = None
                self._stale = True
                self._leave_busy()
            raise
        except Exception as exc:
            outcome = Err(exc)
        finally:
            current_evaluation.reset(ctx)
        self._settle(token, outcome, evaluation)

    def _settle(self, token: CancelToken, outcome: TaskState, evaluation: Evaluation | None) -> None:
        if token is not self._token:
            return  # superseded generation: suppressed, never reported
        self._run_task = None
        if evaluation is not None:
            finish_evaluation(evaluation)
        if outcome is PENDING:
            return
        begin_batch()
        try:
            self._state = outcome
            self._notify()
        finally:
            end_batch()
        # Downstream runs were started by the flush above, so the pending
        # count never touches zero mid-cascade.
        if token is self._token and not self._stale:
            self._leave_busy()

    def _abort(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._run_task is not None:
            self._run_task.cancel()
            self._run_task = None

    def _enter_busy(self) -> None:
        if not self._busy:
            self._busy = True
            _monitor.enter()

    def _leave_busy(self) -> None:
        if self._busy:
            self._busy = False
            _monitor.leave()

    def __repr__(self) -> str:
        return f"Task({self.name}, gen={self._generation}, {self._state!r})"


def debounce(seconds: float) -> Callable[[TaskFn[T]], Callable[[CancelToken], Awaitable[T]]]:
    """Coalesce bursts of invalidations into one execution of a task body.

    The wrapped body waits ``seconds`` before doing any work. A new
    generation cancels the previous run during that wait, so N rapid
    invalidations inside the window execute the body once.

    Usage:
        @debounce(0.05)
        async def bundle(token):
            return await build_bundle(entry.get())

        assets = Task(bundle)
    """

    def decorate(fn: TaskFn[T]) -> Callable[[CancelToken], Awaitable[T]]:
        @functools.wraps(fn)
        async def body(token: CancelToken) -> Any:
            await asyncio.sleep(seconds)
            result = fn(token)
            if inspect.isawaitable(result):
                result = await result
            return result

        return body

    return decorate
