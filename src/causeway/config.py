"""Pipeline configuration.

PipelineConfig is the central configuration object, frozen after creation.
Loading it from a file is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Configuration for a build pipeline.

    Attributes:
        root: Project root. Always resolved to an absolute path on construction.
        src_dir: Source directory, relative to root unless absolute.
        out_dir: Output directory, relative to root unless absolute.
        include: Glob patterns (relative to src_dir) of files to build.
        exclude: Glob patterns of files to skip.
        assets_dir: Directory copied verbatim to out_dir, relative to src_dir
            unless absolute. None disables the copy.
        watch: Keep watching src_dir for changes while the pipeline is live.
        debounce_ms: Quiet period the file watcher waits for before reporting.

    """

    root: Path = field(default_factory=Path.cwd)
    src_dir: Path = field(default_factory=lambda: Path("src"))
    out_dir: Path = field(default_factory=lambda: Path("dist"))
    include: tuple[str, ...] = ("**/*",)
    exclude: tuple[str, ...] = ()
    assets_dir: Path | None = field(default_factory=lambda: Path("assets"))
    watch: bool = False
    debounce_ms: int = 50

    def __post_init__(self) -> None:
        # watchfiles reports absolute paths; keep everything comparable.
        root = Path(self.root)
        if not root.is_absolute():
            root = root.resolve()
        object.__setattr__(self, "root", root)
        object.__setattr__(self, "src_dir", Path(self.src_dir))
        object.__setattr__(self, "out_dir", Path(self.out_dir))
        if self.assets_dir is not None:
            object.__setattr__(self, "assets_dir", Path(self.assets_dir))
        if isinstance(self.include, str):
            object.__setattr__(self, "include", (self.include,))
        if isinstance(self.exclude, str):
            object.__setattr__(self, "exclude", (self.exclude,))
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}")

    @property
    def source_path(self) -> Path:
        """Absolute path to the source directory."""
        if self.src_dir.is_absolute():
            return self.src_dir
        return self.root / self.src_dir

    @property
    def output_path(self) -> Path:
        """Absolute path to the output directory."""
        if self.out_dir.is_absolute():
            return self.out_dir
        return self.root / self.out_dir

    @property
    def assets_path(self) -> Path | None:
        """Absolute path to the assets directory, or None when disabled."""
        if self.assets_dir is None:
            return None
        if self.assets_dir.is_absolute():
            return self.assets_dir
        return self.source_path / self.assets_dir

    @property
    def assets_output_path(self) -> Path | None:
        """Where assets are copied: the same relative location under out_dir."""
        if self.assets_dir is None:
            return None
        if self.assets_dir.is_absolute():
            return self.output_path / self.assets_dir.name
        return self.output_path / self.assets_dir
