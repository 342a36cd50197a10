"""Shared fixtures: every test starts from a clean graph."""

import pytest

from causeway import _tracking, observable
from causeway.quiescence import _monitor


def _reset() -> None:
    _tracking._pending.clear()
    _tracking._batch_depth = 0
    observable.set_scheduler(None)
    _monitor._busy = 0
    _monitor._waiters.clear()


@pytest.fixture(autouse=True)
def clean_graph():
    _reset()
    yield
    _reset()
