"""Pipeline — files in, artifacts out, rebuilding only what changed.

A Pipeline wires a FileSource through a chain of derive() stages into one
terminal writer Effect. The writer iterates the last stage, dispatches
each Task (together with any shared Tasks, such as a site layout) with
match() and writes Ok results under the output directory at a
deterministic path. One key's failure is recorded for that key only, and
its previous artifact is removed; every other key is still written.

The assets directory, when present, is mirrored byte for byte into the
output directory by a second writer.

Two modes:

- build(): one-shot. Run once, await quiescence, report and dispose.
- start(): continuous. Await the initial build, then stay alive; with
  ``config.watch`` the source directory is watched for as long as the
  writer is alive, and every later write or failure is published on
  ``changes``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Hashable, Literal, Sequence

from causeway._errors import ResourceError
from causeway.config import PipelineConfig
from causeway.derive import DerivedCollection, derive
from causeway.effect import Effect, effect, match
from causeway.files import FileSource, content_hash
from causeway.observable import set_scheduler
from causeway.quiescence import await_quiescence
from causeway.stream import EventStream
from causeway.task import Task

logger = logging.getLogger("causeway.pipeline")

Stage = Callable[[Any], Any]


def default_output_path(key: Hashable) -> str:
    """Map a source key to a pretty-URL output path.

    ``index.md`` -> ``index.html``, ``guide/intro.md`` -> ``guide/intro/index.html``,
    ``guide/index.md`` -> ``guide/index.html``.
    """
    stem = PurePosixPath(str(key)).with_suffix("")
    if stem.name == "index":
        stem = stem.parent
    return (stem / "index.html").as_posix()


def _encode(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


@dataclass(frozen=True, slots=True)
class ChangeNotification:
    """One artifact change after the initial build."""

    key: Hashable
    path: Path | None
    kind: Literal["written", "failed", "removed"]
    error: BaseException | None = None


@dataclass(slots=True)
class BuildReport:
    """Outcome of a build.

    Attributes:
        written: Output paths currently produced, sorted.
        errors: Per-key failures, keyed like the source. Asset copy failures
            are keyed ``assets:<path>``.
        resource_errors: Lazy resources (file watching) that failed to start.
        assets: Asset files currently copied, sorted.

    """

    written: list[Path] = field(default_factory=list)
    errors: dict[Hashable, BaseException] = field(default_factory=dict)
    resource_errors: list[ResourceError] = field(default_factory=list)
    assets: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.resource_errors


class Pipeline:
    """Incremental file-to-artifact build.

    Args:
        config: Where to read from and write to.
        stages: Per-item transforms, applied in order. Each receives the
            previous stage's value (the first receives a FileRecord).
        path_for: Maps a key to an output path relative to the output
            directory. Defaults to default_output_path().
        render: Turns the last stage's value into str or bytes. Called as
            ``render(value, *shared_values)``. Reads made here are tracked,
            so changing an observable it reads rewrites every artifact.
        shared: Tasks every artifact depends on. A page is written only
            once all of them are Ok; an Err in any fails every page.
    """

    def __init__(
        self,
        config: PipelineConfig,
        stages: Sequence[Stage],
        *,
        path_for: Callable[[Hashable], str] | None = None,
        render: Callable[..., str | bytes] | None = None,
        shared: Sequence[Task] = (),
    ) -> None:
        if not stages:
            raise ValueError("a pipeline needs at least one stage")
        self.config = config
        self._stages = list(stages)
        self._path_for = path_for or default_output_path
        self._render = render or (lambda value, *shared_values: value)
        self._shared = list(shared)
        self.changes: EventStream[ChangeNotification] = EventStream()
        self.source: FileSource | None = None
        self.assets: FileSource | None = None
        self._derived: list[DerivedCollection] = []
        self._writer: Effect | None = None
        self._copier: Effect | None = None
        self._outputs: dict[Hashable, tuple[Path, str]] = {}
        self._copied: dict[str, tuple[Path, str]] = {}
        self._asset_errors: dict[str, BaseException] = {}
        self._errors: dict[Hashable, BaseException] = {}
        self._resource_errors: list[ResourceError] = []
        self._owns_scheduler = False
        self._initial_done = False
        self._started = False
        self._disposed = False

    @property
    def frontier(self) -> DerivedCollection | None:
        """The last stage, read by the writer."""
        return self._derived[-1] if self._derived else None

    async def build(self) -> BuildReport:
        """One-shot build: run once, wait for quiescence, report and dispose."""
        self._begin()
        try:
            self._assemble(watch=False)
            await await_quiescence()
            report = self.report()
            logger.info(
                "Build complete: %d written, %d failed", len(report.written), len(report.errors)
            )
            return report
        finally:
            self.dispose()

    async def start(self) -> BuildReport:
        """Continuous mode: return after the initial build and stay alive until dispose()."""
        self._begin()
        set_scheduler(asyncio.get_running_loop().call_soon_threadsafe)
        self._owns_scheduler = True
        self._assemble(watch=self.config.watch)
        await await_quiescence()
        self._initial_done = True
        report = self.report()
        logger.info(
            "Initial build complete: %d written, %d failed; %s",
            len(report.written),
            len(report.errors),
            "watching" if self.config.watch else "not watching",
        )
        return report

    def report(self) -> BuildReport:
        return BuildReport(
            written=sorted(path for path, _ in self._outputs.values()),
            errors={
                **self._errors,
                **{f"assets:{rel}": exc for rel, exc in self._asset_errors.items()},
            },
            resource_errors=list(self._resource_errors),
            assets=sorted(path for path, _ in self._copied.values()),
        )

    def dispose(self) -> None:
        """Stop the writers (releasing the file watchers) and tear the graph down."""
        if self._disposed:
            return
        self._disposed = True
        if self._writer is not None:
            self._writer.dispose()
        if self._copier is not None:
            self._copier.dispose()
        for stage in reversed(self._derived):
            stage.dispose()
        self.changes.dispose()
        if self._owns_scheduler:
            set_scheduler(None)
            self._owns_scheduler = False
        logger.debug("Pipeline disposed")

    # --- Graph ---

    def _begin(self) -> None:
        if self._started:
            raise RuntimeError("a Pipeline can only be run once")
        self._started = True

    def _assemble(self, *, watch: bool) -> None:
        config = self.config
        exclude = config.exclude
        assets_path = config.assets_path
        if assets_path is not None and assets_path.is_relative_to(config.source_path):
            # Assets are copied, never built as pages.
            rel = assets_path.relative_to(config.source_path).as_posix()
            exclude = (*exclude, f"{rel}/**")
        self.source = FileSource(
            config.source_path,
            config.include,
            exclude,
            watch=watch,
            debounce_ms=config.debounce_ms,
            on_error=self._resource_errors.append,
        )
        collection: Any = self.source.records
        for index, stage in enumerate(self._stages):
            collection = derive(
                collection, stage, name=f"{index}:{getattr(stage, '__name__', 'stage')}"
            )
            self._derived.append(collection)
        self._writer = effect(self._write_all, name="pipeline-writer")

        if assets_path is not None and assets_path.is_dir():
            self.assets = FileSource(
                assets_path,
                watch=watch,
                debounce_ms=config.debounce_ms,
                on_error=self._resource_errors.append,
            )
            self._copier = effect(self._copy_all, name="asset-copier")

    def _write_all(self) -> None:
        seen = set()
        for key, task in self.frontier:
            seen.add(key)
            match(
                [task, *self._shared],
                ok=functools.partial(self._write, key),
                err=functools.partial(self._fail, key),
            )
        for key in [k for k in self._outputs if k not in seen]:
            self._remove(key)
        for key in [k for k in self._errors if k not in seen]:
            del self._errors[key]

    def _write(self, key: Hashable, value: Any, *shared_values: Any) -> None:
        data = _encode(self._render(value, *shared_values))
        out = self.config.output_path / self._path_for(key)
        digest = content_hash(data)
        self._errors.pop(key, None)
        if self._outputs.get(key) == (out, digest):
            return
        try:
            if not (out.is_file() and content_hash(out.read_bytes()) == digest):
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_bytes(data)
                logger.info("  %s -> %s", key, out)
        except OSError as exc:
            self._fail(key, [exc])
            return
        previous = self._outputs.get(key)
        self._outputs[key] = (out, digest)
        if previous is not None and previous[0] != out:
            previous[0].unlink(missing_ok=True)
        self._publish(ChangeNotification(key, out, "written"))

    def _fail(self, key: Hashable, errors: list[BaseException]) -> None:
        error = errors[0]
        if self._errors.get(key) is error:
            return
        self._errors[key] = error
        logger.error("Build failed for %s: %s", key, error)
        # A failing key has no artifact; the last good one would be stale.
        stale = self._outputs.pop(key, None)
        if stale is not None:
            self._unlink(stale[0])
        self._publish(ChangeNotification(key, None, "failed", error))

    def _remove(self, key: Hashable) -> None:
        out, _ = self._outputs.pop(key)
        self._unlink(out)
        logger.info("  %s removed (%s)", key, out)
        self._publish(ChangeNotification(key, out, "removed"))

    # --- Assets ---

    def _copy_all(self) -> None:
        seen = set()
        for rel, record in self.assets.records:
            seen.add(rel)
            self._copy(rel, record.hash)
        for rel in [r for r in self._copied if r not in seen]:
            out, _ = self._copied.pop(rel)
            self._unlink(out)
            logger.info("  asset %s removed", rel)
            self._publish(ChangeNotification(f"assets:{rel}", out, "removed"))
        for rel in [r for r in self._asset_errors if r not in seen]:
            del self._asset_errors[rel]

    def _copy(self, rel: str, digest: str) -> None:
        out = self.config.assets_output_path / rel
        if self._copied.get(rel) == (out, digest):
            return
        try:
            if not (out.is_file() and content_hash(out.read_bytes()) == digest):
                out.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(self.assets.directory / rel, out)
                logger.info("  asset %s -> %s", rel, out)
        except OSError as exc:
            logger.error("Could not copy asset %s: %s", rel, exc)
            self._asset_errors[rel] = exc
            self._publish(ChangeNotification(f"assets:{rel}", None, "failed", exc))
            return
        self._asset_errors.pop(rel, None)
        self._copied[rel] = (out, digest)
        self._publish(ChangeNotification(f"assets:{rel}", out, "written"))

    def _unlink(self, out: Path) -> None:
        try:
            out.unlink(missing_ok=True)
        except OSError:
            logger.exception("Could not remove %s", out)

    def _publish(self, notification: ChangeNotification) -> None:
        if self._initial_done:
            self.changes.emit(notification)

    def __repr__(self) -> str:
        return f"Pipeline({self.config.source_path} -> {self.config.output_path}, {len(self._stages)} stages)"
