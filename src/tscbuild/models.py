"""Core typed dataclasses for target configuration and compile results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

ECMA_TARGETS: tuple[str, ...] = ("es3", "es5", "es6")
MODULE_KINDS: tuple[str, ...] = ("amd", "commonjs")

SKIPPED_OUTPUT = "No files compiled as no change detected"


@dataclass(frozen=True, slots=True)
class CompilerOptions:
    """Flags forwarded to the external compiler."""

    source_map: bool = False
    declaration: bool = False
    remove_comments: bool = False
    no_implicit_any: bool = False
    no_resolve: bool = False
    target: str = "es5"
    module: str = "amd"
    source_root: str | None = None
    map_root: str | None = None


@dataclass(frozen=True, slots=True)
class TargetConfig:
    """Immutable description of one build target.

    ``out`` and ``out_dir`` are mutually exclusive in intent; setting both is
    allowed and reported as a configuration conflict. When ``reference`` and
    ``out`` are both set the reference manifest replaces ``files``.
    """

    files: tuple[str, ...] = ()
    out: str | None = None
    out_dir: str | None = None
    base_dir: str | None = None
    reference: str | None = None
    options: CompilerOptions = field(default_factory=CompilerOptions)
    fast: bool = False
    verbose: bool = False


@dataclass(frozen=True, slots=True)
class FileFingerprint:
    mtime_ns: int
    size: int
    sha256: str


@dataclass(frozen=True, slots=True)
class Compiler:
    """Command prefix used to launch the external compiler."""

    argv: tuple[str, ...]
    version: str | None = None


@dataclass(frozen=True, slots=True)
class Invocation:
    """Argument list ready for the argument file, plus the files it names."""

    args: tuple[str, ...]
    files: tuple[Path, ...]
    placeholder: Path | None = None

    @property
    def file_count(self) -> int:
        return len(self.files)


@dataclass(slots=True)
class CompileResult:
    code: int
    output: str
    file_count: int = 0

    @property
    def ok(self) -> bool:
        return self.code == 0


class OrchestratorState(StrEnum):
    IDLE = "idle"
    RESOLVING_FILES = "resolving_files"
    SKIPPED = "skipped"
    BUILDING_INVOCATION = "building_invocation"
    RUNNING = "running"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {OrchestratorState.SKIPPED, OrchestratorState.DONE, OrchestratorState.FAILED},
)
