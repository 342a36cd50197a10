"""Actions and transactions — batched graph mutations.

Wrapping mutations in an @action or `with transaction()` defers effect
runs and task starts until the outermost scope exits, so one external
event (a burst of file changes, a whole-record replace) propagates as a
single pass and no effect sees a half-applied update.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from causeway._tracking import begin_batch, end_batch

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all graph mutations inside fn.

    Effects only fire after fn returns, not during.

    Usage:
        title = Signal("Docs")
        base_url = Signal("/")

        @action
        def rebase(new_title, new_base):
            title.set(new_title)
            base_url.set(new_base)
            # effects see both changes at once, not one at a time
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            end_batch()

    return wrapper


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager for batching mutations.

    Usage:
        with transaction():
            files.add(record)
            files.remove(old_path)
            # effects fire here, after both are applied
    """
    begin_batch()
    try:
        yield
    finally:
        end_batch()
