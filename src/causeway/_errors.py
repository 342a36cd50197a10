"""Causeway error hierarchy.

All causeway-specific errors inherit from CausewayError for easy catching.
"""

from __future__ import annotations


class CausewayError(Exception):
    """Base error for all causeway operations."""


class TransformError(CausewayError):
    """A per-item transform failed. Isolated to one key; the graph continues."""

    def __init__(self, key: object, cause: BaseException) -> None:
        super().__init__(f"transform failed for {key!r}: {cause}")
        self.key = key
        self.cause = cause


class ResourceError(CausewayError):
    """A LazyResource failed to activate. Its source is no longer incremental."""


class DuplicateKeyError(CausewayError, KeyError):
    """A key is already present in a KeyedCollection."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class CycleError(CausewayError):
    """A derivation read itself while computing."""


class TaskPending(CausewayError):
    """Raised by Task.get() while the task has no result.

    Inside a Task body this short-circuits the run to Pending; the task
    re-runs when the pending upstream settles.
    """

    def __init__(self, task: object) -> None:
        super().__init__(f"{task!r} is pending")
        self.task = task
