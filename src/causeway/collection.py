"""KeyedCollection — an ordered, keyed set of observable items.

Each item has a caller-derived key (unique, stable across updates) and a
Signal holding its current value. Structure (which keys exist, in which
order) is tracked separately from item content, so:

- iterating or calling keys()/len() depends on structure and on every
  item read while iterating;
- get(key) depends on that one item only;
- update(key, value) with structurally equal content notifies nobody.

Mutations apply and propagate as one batch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, Hashable, Iterable, Iterator, TypeVar

from causeway._errors import DuplicateKeyError
from causeway._tracking import Node
from causeway.action import transaction
from causeway.observable import Signal

if TYPE_CHECKING:
    from causeway.derive import DerivedCollection
    from causeway.resource import LazyResource

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedView(Generic[K, V]):
    """Read API shared by source and derived collections."""

    name: str

    def keys(self) -> tuple[K, ...]:
        """Keys in iteration order. Tracks structure."""
        raise NotImplementedError

    def _lookup(self, key: K) -> Node | None:
        """Untracked node lookup."""
        raise NotImplementedError

    def _value(self, node: Any) -> V:
        raise NotImplementedError

    def __iter__(self) -> Iterator[tuple[K, V]]:
        for key in self.keys():
            node = self._lookup(key)
            if node is not None:
                yield key, self._value(node)

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: object) -> bool:
        self.keys()
        return self._lookup(key) is not None  # type: ignore[arg-type]

    def __bool__(self) -> bool:
        return bool(self.keys())

    def get(self, key: K, default: V | None = None) -> V | None:
        """Value for key. Tracks that item, or structure if the key is absent."""
        node = self._lookup(key)
        if node is None:
            self.keys()
            return default
        return self._value(node)

    def item(self, key: K) -> Any:
        """The node behind key, without tracking. Raises KeyError."""
        node = self._lookup(key)
        if node is None:
            raise KeyError(key)
        return node

    def _read(self, key: K) -> Any:
        """Tracked, unwrapped value of one item (Task results are unwrapped)."""
        return self.item(key).get()

    def derive(
        self,
        fn: Callable[[Any], Any],
        *,
        rekey: Callable[[K], Hashable] | None = None,
        name: str | None = None,
    ) -> DerivedCollection:
        """Mirror this collection as a collection of Tasks, one per key."""
        from causeway.derive import derive

        return derive(self, fn, rekey=rekey, name=name)


class KeyedCollection(KeyedView[K, V]):
    """Ordered keyed set of Signals.

    Args:
        items: Initial items, in order.
        key: Derives each item's key.
        sort_key: Optional ordering; insertion order when omitted.
        resource: LazyResource bound to the liveness of this collection.
        name: Used in task names and logs.
    """

    def __init__(
        self,
        items: Iterable[V] = (),
        *,
        key: Callable[[V], K],
        sort_key: Callable[[V], Any] | None = None,
        resource: LazyResource | None = None,
        name: str = "collection",
    ) -> None:
        self._key_fn = key
        self._sort_key = sort_key
        self._resource = resource
        self.name = name
        self._items: dict[K, Signal[V]] = {}
        self._order: list[K] = []
        for item in items:
            self._insert(item)
        self._structure: Signal[tuple[K, ...]] = Signal(tuple(self._order))
        self._structure._owner = resource

    @property
    def resource(self) -> LazyResource | None:
        return self._resource

    def keys(self) -> tuple[K, ...]:
        return self._structure.get()

    def _lookup(self, key: K) -> Signal[V] | None:
        return self._items.get(key)

    def _value(self, node: Signal[V]) -> V:
        return node.get()

    def peek(self, key: K, default: V | None = None) -> V | None:
        """Value for key without registering a dependency."""
        sig = self._items.get(key)
        return default if sig is None else sig.peek()

    # --- Mutations ---

    def add(self, item: V) -> K:
        """Add an item under a fresh key. Returns the key."""
        with transaction():
            key = self._insert(item)
            self._publish()
        return key

    def remove(self, key: K) -> V:
        """Remove an item.

        Readers of the item re-run and see it gone; derived Tasks for this
        key are disposed when their derivation reconciles.
        """
        sig = self._items.pop(key)
        self._order.remove(key)
        with transaction():
            # Structure first, so derivations reconcile before item readers run.
            self._publish()
            sig._notify()
        return sig.peek()

    def update(self, key: K, value: V) -> bool:
        """Replace an item's value. Returns False when the content is identical."""
        sig = self._items[key]
        if self._key_fn(value) != key:
            raise ValueError(f"{value!r} does not belong under key {key!r}")
        with transaction():
            changed = sig._set_direct(value)
            if changed and self._sort_key is not None:
                self._resort()
                self._publish()
        return changed

    def _insert(self, item: V) -> K:
        key = self._key_fn(item)
        if key in self._items:
            raise DuplicateKeyError(f"duplicate key {key!r} in {self.name}")
        sig = Signal(item)
        sig._owner = self._resource
        self._items[key] = sig
        self._order.append(key)
        if self._sort_key is not None:
            self._resort()
        return key

    def _resort(self) -> None:
        sort_key = self._sort_key
        self._order.sort(key=lambda k: sort_key(self._items[k].peek()))  # type: ignore[misc]

    def _publish(self) -> None:
        self._structure._set_direct(tuple(self._order))

    def __repr__(self) -> str:
        return f"KeyedCollection({self.name}, {len(self._order)} items)"
