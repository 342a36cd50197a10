"""Collection derivation — one Task per key, recomputing only changed keys.

derive(collection, fn) mirrors an upstream collection as a read-only
collection of Tasks. Each Task's body reads its own upstream item and
applies fn, so:

- an upstream update invalidates exactly that key's Task;
- an upstream add creates a Task for the new key;
- an upstream remove disposes (and cancels) that key's Task.

The Task set is reconciled lazily by a Computed over the upstream keys,
so reconciliation happens in the same pass as the effect that reads the
derived collection. Derived collections can be derived again; Task
results are unwrapped on the way in, so a Pending or Err upstream item
short-circuits the downstream Task for the same key.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from causeway._errors import DuplicateKeyError, TaskPending, TransformError
from causeway._tracking import untracked
from causeway.collection import KeyedView
from causeway.computed import Computed
from causeway.task import PENDING, CancelToken, Err, Task


class DerivedCollection(KeyedView[Hashable, Task]):
    """Read-only keyed collection of Tasks mirroring an upstream collection."""

    def __init__(
        self,
        source: KeyedView,
        fn: Callable[[Any], Any],
        *,
        rekey: Callable[[Hashable], Hashable] | None = None,
        name: str | None = None,
    ) -> None:
        self._source = source
        self._fn = fn
        self._rekey = rekey
        self.name = name or f"{source.name}>{getattr(fn, '__name__', 'derived')}"
        self._tasks: dict[Hashable, Task] = {}
        self._structure: Computed[tuple[Hashable, ...]] = Computed(self._reconcile)

    @property
    def source(self) -> KeyedView:
        return self._source

    def keys(self) -> tuple[Hashable, ...]:
        return self._structure.get()

    def _lookup(self, key: Hashable) -> Task | None:
        untracked(self._structure.get)
        return self._tasks.get(key)

    def _value(self, node: Task) -> Task:
        return node

    def _reconcile(self) -> tuple[Hashable, ...]:
        wanted: dict[Hashable, Hashable] = {}
        for source_key in self._source.keys():
            key = self._rekey(source_key) if self._rekey is not None else source_key
            if key in wanted:
                raise DuplicateKeyError(
                    f"{self.name}: {source_key!r} and {wanted[key]!r} both map to {key!r}"
                )
            wanted[key] = source_key

        for key in [k for k in self._tasks if k not in wanted]:
            self._tasks.pop(key).dispose()
        for key, source_key in wanted.items():
            if key not in self._tasks:
                self._tasks[key] = Task(self._body(key, source_key), name=f"{self.name}[{key!r}]")
        return tuple(wanted)

    def _body(self, key: Hashable, source_key: Hashable) -> Callable[[CancelToken], Any]:
        source = self._source
        fn = self._fn

        async def run(token: CancelToken) -> Any:
            value = source._read(source_key)
            try:
                result = fn(value)
                if inspect.isawaitable(result):
                    result = await result
            except (TaskPending, TransformError):
                raise
            except Exception as exc:
                raise TransformError(key, exc) from exc
            return result

        return run

    def dispose(self) -> None:
        """Dispose every Task and stop following the upstream collection."""
        for task in self._tasks.values():
            task.dispose()
        self._tasks.clear()
        self._structure.dispose()

    def __repr__(self) -> str:
        return f"DerivedCollection({self.name}, {len(self._tasks)} tasks)"


def derive(
    collection: KeyedView,
    fn: Callable[[Any], Any],
    *,
    rekey: Callable[[Hashable], Hashable] | None = None,
    name: str | None = None,
) -> DerivedCollection:
    """Map a keyed collection into a parallel collection of Tasks.

    ``fn`` receives the upstream value (Task results unwrapped) and may be
    sync or async. Keys pass through unchanged unless ``rekey`` maps them.

    Usage:
        pages = derive(files.records, parse_page)
        html = derive(pages, render_page)

        effect(lambda: [
            match(task, ok=lambda out: write(key, out))
            for key, task in html
        ])
    """
    return DerivedCollection(collection, fn, rekey=rekey, name=name)


@dataclass(frozen=True, slots=True)
class BuildStatus:
    """Counts of Task states across a derived collection."""

    pending: int
    ok: int
    failed: int

    @property
    def settled(self) -> bool:
        return self.pending == 0


def collection_status(collection: KeyedView) -> BuildStatus:
    """Tracked summary of a collection of Tasks."""
    pending = ok = failed = 0
    for _, task in collection:
        state = task.state
        if state is PENDING:
            pending += 1
        elif isinstance(state, Err):
            failed += 1
        else:
            ok += 1
    return BuildStatus(pending=pending, ok=ok, failed=failed)
