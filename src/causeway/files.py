"""File source — a directory mirrored as a KeyedCollection of FileRecords.

The directory is scanned once on construction. With ``watch=True`` the
collection carries a LazyResource: while anything live reads the
collection (directly or through derivations), a daemon thread runs
watchfiles over the directory and hands each batch of changes to the loop
thread, where it is applied in one transaction. Writes that leave a file's
content hash unchanged are dropped before they reach the graph.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import threading
from dataclasses import dataclass
from fnmatch import fnmatch
from operator import attrgetter
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Sequence

import watchfiles
from watchfiles import Change

from causeway._errors import ResourceError
from causeway._tracking import untracked
from causeway.action import transaction
from causeway.collection import KeyedCollection
from causeway.observable import marshal
from causeway.resource import LazyResource
from causeway.watch import watch

logger = logging.getLogger("causeway.files")


def content_hash(data: bytes | str) -> str:
    """First 16 hex characters of the SHA-256 of data."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class FileRecord:
    """One source file as seen by the graph.

    Attributes:
        path: POSIX path relative to the source directory; the record's key.
        content: Decoded text (undecodable bytes replaced).
        hash: content_hash() of the raw bytes.
        mtime: Modification time in seconds.
        size: Size in bytes.

    """

    path: str
    content: str
    hash: str
    mtime: float
    size: int

    @property
    def filename(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.path).suffix


def read_record(root: Path, path: Path) -> FileRecord:
    """Read path into a FileRecord keyed relative to root."""
    data = path.read_bytes()
    stat = path.stat()
    return FileRecord(
        path=path.relative_to(root).as_posix(),
        content=data.decode("utf-8", errors="replace"),
        hash=content_hash(data),
        mtime=stat.st_mtime,
        size=stat.st_size,
    )


def _matches(rel: str, patterns: Sequence[str]) -> bool:
    for pattern in patterns:
        if fnmatch(rel, pattern):
            return True
        # "**/x" also matches x at the top level
        if pattern.startswith("**/") and fnmatch(rel, pattern[3:]):
            return True
    return False


class FileSource:
    """A directory scanned into ``records`` and optionally kept in sync.

    Args:
        directory: Directory to mirror.
        include: Glob pattern(s) a relative path must match.
        exclude: Glob pattern(s) that drop a path.
        watch: Attach a watchfiles-backed LazyResource to the collection.
        debounce_ms: Quiet period watchfiles waits for before yielding.
        on_error: Receives a ResourceError if watching cannot start.
    """

    def __init__(
        self,
        directory: Path | str,
        include: str | Sequence[str] = "**/*",
        exclude: str | Sequence[str] | None = None,
        *,
        watch: bool = False,
        debounce_ms: int = 50,
        on_error: Callable[[ResourceError], None] | None = None,
    ) -> None:
        self.directory = Path(directory).resolve()
        self.include = (include,) if isinstance(include, str) else tuple(include)
        if exclude is None:
            self.exclude: tuple[str, ...] = ()
        else:
            self.exclude = (exclude,) if isinstance(exclude, str) else tuple(exclude)
        self.debounce_ms = debounce_ms
        self.resource: LazyResource | None = None
        if watch:
            self.resource = LazyResource(
                self._start_watching, on_error=on_error, name=f"watch:{self.directory.name}"
            )
        self.records: KeyedCollection[str, FileRecord] = KeyedCollection(
            self.scan(),
            key=attrgetter("path"),
            sort_key=attrgetter("path"),
            resource=self.resource,
            name=f"files:{self.directory.name}",
        )

    def wants(self, rel: str) -> bool:
        """Whether a relative POSIX path passes include/exclude."""
        return _matches(rel, self.include) and not _matches(rel, self.exclude)

    def scan(self) -> list[FileRecord]:
        """Read every wanted file under the directory, sorted by path."""
        if not self.directory.is_dir():
            logger.warning("Source directory %s does not exist; scanning as empty", self.directory)
            return []
        records = []
        for path in sorted(self.directory.rglob("*")):
            if not path.is_file():
                continue
            if not self.wants(path.relative_to(self.directory).as_posix()):
                continue
            try:
                records.append(read_record(self.directory, path))
            except OSError:
                logger.exception("Could not read %s", path)
        logger.debug("Scanned %d files from %s", len(records), self.directory)
        return records

    def apply(self, upserts: Iterable[FileRecord] = (), removals: Iterable[str] = ()) -> int:
        """Apply a batch of changes in one transaction. Returns how many took effect.

        Must run on the loop thread; the watcher thread reaches it through
        marshal().
        """
        changed = 0
        with transaction():
            for rel in removals:
                if self.records.peek(rel) is not None:
                    self.records.remove(rel)
                    changed += 1
            for record in upserts:
                existing = self.records.peek(record.path)
                if existing is None:
                    self.records.add(record)
                    changed += 1
                elif existing.hash != record.hash:
                    self.records.update(record.path, record)
                    changed += 1
        if changed:
            logger.debug("Applied %d file changes in %s", changed, self.directory)
        return changed

    def refresh(self) -> int:
        """Rescan the directory and apply the difference."""
        records = self.scan()
        seen = {record.path for record in records}
        stale = [rel for rel in untracked(self.records.keys) if rel not in seen]
        return self.apply(records, stale)

    # --- Watching ---

    def _start_watching(self) -> Callable[[], None]:
        if not self.directory.is_dir():
            raise FileNotFoundError(f"{self.directory} is not a directory")
        handle = watch(self._watch_loop, name=f"causeway-watch:{self.directory.name}")
        logger.info("Watching %s", self.directory)
        return handle.dispose

    def _watch_loop(self, stop_event: threading.Event) -> None:
        for raw_changes in watchfiles.watch(
            self.directory,
            stop_event=stop_event,
            debounce=self.debounce_ms,
            step=50,
            raise_interrupt=False,
        ):
            upserts, removals = self._collect(raw_changes)
            if upserts or removals:
                marshal(functools.partial(self.apply, upserts, removals))

    def _collect(self, raw_changes: set[tuple[Change, str]]) -> tuple[list[FileRecord], list[str]]:
        """Turn watchfiles changes into records to upsert and keys to remove."""
        upserts: dict[str, FileRecord] = {}
        removals: set[str] = set()
        for change, path_str in raw_changes:
            path = Path(path_str)
            try:
                rel = path.relative_to(self.directory).as_posix()
            except ValueError:
                continue
            if not self.wants(rel):
                continue
            if change == Change.deleted or not path.is_file():
                removals.add(rel)
                upserts.pop(rel, None)
                continue
            try:
                upserts[rel] = read_record(self.directory, path)
            except OSError:
                # Vanished between the event and the read.
                removals.add(rel)
                continue
            removals.discard(rel)
        return list(upserts.values()), sorted(removals)

    def __repr__(self) -> str:
        return f"FileSource({self.directory})"
