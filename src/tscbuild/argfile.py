"""Temporary argument files passed to the compiler as ``@path``."""

from __future__ import annotations

import secrets
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from tscbuild.errors import ResourceExhaustedError
from tscbuild.invocation import render_command_line

DEFAULT_PREFIX = "tscommand"
DEFAULT_EXTENSION = ".tmp.txt"
MAX_ATTEMPTS = 100


def temp_path(
    prefix: str = DEFAULT_PREFIX,
    directory: str | Path | None = None,
    extension: str = DEFAULT_EXTENSION,
    attempts: int = MAX_ATTEMPTS,
) -> Path:
    """Return an unused path ``<prefix>-<8 hex><extension>`` in *directory*."""
    root = _root(directory)
    for _ in range(attempts):
        candidate = _candidate(root, prefix, extension)
        if not candidate.exists():
            return candidate
    raise _exhausted("temp_path", root, attempts)


@contextmanager
def argument_file(
    args: Sequence[str],
    *,
    directory: str | Path | None = None,
    attempts: int = MAX_ATTEMPTS,
) -> Iterator[Path]:
    """Write *args* to a fresh temp file and delete it when the block exits."""
    path = _create_exclusive(render_command_line(args), directory=directory, attempts=attempts)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def _create_exclusive(content: str, *, directory: str | Path | None, attempts: int) -> Path:
    # One name per attempt; open("x") is the existence check.
    root = _root(directory)
    for _ in range(attempts):
        path = _candidate(root, DEFAULT_PREFIX, DEFAULT_EXTENSION)
        try:
            with path.open("x", encoding="utf-8") as handle:
                handle.write(content)
        except FileExistsError:
            continue
        return path
    raise _exhausted("argument_file", root, attempts)


def _root(directory: str | Path | None) -> Path:
    return Path(directory) if directory is not None else Path(tempfile.gettempdir())


def _candidate(root: Path, prefix: str, extension: str) -> Path:
    stem = f"{prefix}-" if prefix else ""
    return root / f"{stem}{secrets.token_hex(4)}{extension}"


def _exhausted(operation: str, root: Path, attempts: int) -> ResourceExhaustedError:
    return ResourceExhaustedError(
        "Cannot create temp file.",
        hint="Remove stale argument files or choose another temp directory.",
        context={"operation": operation, "directory": str(root), "attempts": str(attempts)},
    )
