"""Tests for the causeway error hierarchy."""

import pytest

from causeway import (
    CausewayError,
    CycleError,
    DuplicateKeyError,
    ResourceError,
    TaskPending,
    TransformError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls", [CycleError, DuplicateKeyError, ResourceError, TaskPending, TransformError]
    )
    def test_all_are_causeway_errors(self, cls):
        assert issubclass(cls, CausewayError)

    def test_transform_error(self):
        cause = ValueError("unclosed tag")
        err = TransformError("guide/intro.md", cause)
        assert err.key == "guide/intro.md"
        assert err.cause is cause
        assert "guide/intro.md" in str(err)
        assert "unclosed tag" in str(err)

    def test_duplicate_key_is_key_error(self):
        err = DuplicateKeyError("duplicate key 'a'")
        assert isinstance(err, KeyError)
        assert str(err) == "duplicate key 'a'"

    def test_task_pending_carries_task(self):
        marker = object()
        assert TaskPending(marker).task is marker
