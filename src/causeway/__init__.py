"""Causeway: incremental build orchestration on a reactive dependency graph."""

from importlib.metadata import version as _version

__version__ = _version("causeway")

from causeway._errors import (
    CausewayError,
    CycleError,
    DuplicateKeyError,
    ResourceError,
    TaskPending,
    TransformError,
)
from causeway._tracking import untracked
from causeway.observable import Signal, marshal, set_scheduler
from causeway.computed import Computed, computed
from causeway.action import action, transaction
from causeway.store import PropertyStore
from causeway.collection import KeyedCollection
from causeway.task import PENDING, CancelToken, Err, Ok, Pending, Task, debounce
from causeway.effect import Effect, effect, match
from causeway.derive import BuildStatus, DerivedCollection, collection_status, derive
from causeway.resource import LazyResource
from causeway.quiescence import await_quiescence
from causeway.stream import EventStream
from causeway.watch import WatchHandle, watch
from causeway.files import FileRecord, FileSource
from causeway.config import PipelineConfig
from causeway.pipeline import BuildReport, ChangeNotification, Pipeline
# textual bridge NOT auto-imported — opt-in only

__all__ = [
    "CausewayError",
    "CycleError",
    "DuplicateKeyError",
    "ResourceError",
    "TaskPending",
    "TransformError",
    "untracked",
    "Signal",
    "marshal",
    "set_scheduler",
    "Computed",
    "computed",
    "action",
    "transaction",
    "PropertyStore",
    "KeyedCollection",
    "PENDING",
    "CancelToken",
    "Err",
    "Ok",
    "Pending",
    "Task",
    "debounce",
    "Effect",
    "effect",
    "match",
    "BuildStatus",
    "DerivedCollection",
    "collection_status",
    "derive",
    "LazyResource",
    "await_quiescence",
    "EventStream",
    "WatchHandle",
    "watch",
    "FileRecord",
    "FileSource",
    "PipelineConfig",
    "BuildReport",
    "ChangeNotification",
    "Pipeline",
]
