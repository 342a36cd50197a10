"""PropertyStore — a record whose fields are individually observable.

A PropertyStore owns one Signal per field. Reading a field registers a
dependency on that field only, so an effect that reads ``base_url`` never
re-runs when ``title`` changes. Writes compute a shallow per-field diff
and touch only the Signals whose value actually changed.
"""

from __future__ import annotations

from typing import Any, Mapping

from causeway.action import action
from causeway.observable import Signal


class PropertyStore:
    """Key-based Signal container with per-field tracking."""

    def __init__(self, record: Mapping[str, Any], initial: Mapping[str, Any] | None = None) -> None:
        self._signals: dict[str, Signal] = {}
        for key, default in record.items():
            value = initial.get(key, default) if initial else default
            self._signals[key] = Signal(value)
        # Which keys exist. Read by lookups of absent keys and by snapshot().
        self._fields: Signal[tuple[str, ...]] = Signal(tuple(self._signals))

    def get(self, key: str) -> Any:
        sig = self._signals.get(key)
        if sig is None:
            self._fields.get()
            return None
        return sig.get()

    def set(self, key: str, value: Any) -> None:
        sig = self._signals.get(key)
        if sig is not None:
            sig.set(value)

    @action
    def update(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.set(key, value)

    @action
    def replace(self, record: Mapping[str, Any]) -> None:
        """Whole-record replacement.

        New keys are added; keys missing from ``record`` read as None
        afterwards. Only fields whose value structurally changed notify.
        """
        for key, sig in self._signals.items():
            if key not in record:
                sig.set(None)
        for key, value in record.items():
            sig = self._signals.get(key)
            if sig is None:
                self._signals[key] = Signal(value)
            else:
                sig.set(value)
        self._fields.set(tuple(self._signals))

    def snapshot(self) -> dict[str, Any]:
        """Plain dict of every field. Tracks all of them, and the key set."""
        self._fields.get()
        return {key: sig.get() for key, sig in self._signals.items()}

    def __contains__(self, key: str) -> bool:
        return key in self._signals

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={s.peek()!r}" for k, s in self._signals.items())
        return f"PropertyStore({fields})"
