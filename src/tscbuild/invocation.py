"""Assemble the external compiler's argument list for one target.

Rules are applied in a fixed order so that the same configuration and file
set always yield the same argument tuple:

1. ``out_dir`` + ``base_dir`` with a non-empty file set appends a placeholder
   source located at ``base_dir`` (created once, reused afterwards). Without
   it the compiler collapses the directory structure under ``out_dir`` when
   every compiled file lives below ``base_dir``.
2. ``reference`` + ``out`` replaces the file set with the reference manifest,
   which already encodes the combined-output ordering.
3. Files are made absolute and double-quoted. A path that itself contains a
   double quote is rejected with :class:`~tscbuild.errors.ValidationError`.
4. Boolean options are emitted only when true.
5. ``--target`` is upper-cased and ``--module`` lower-cased.
6. ``--out`` and ``--outDir`` are both emitted when both are set, with a
   :class:`~tscbuild.errors.ConfigConflictWarning`.
"""

from __future__ import annotations

import os
import warnings
from collections.abc import Sequence
from pathlib import Path

from tscbuild.errors import ConfigConflictWarning, ValidationError
from tscbuild.models import CompilerOptions, Invocation, TargetConfig
from tscbuild.observability import StructuredLogger

PLACEHOLDER_NAME = "ignoreBaseDirFile.ts"
PLACEHOLDER_CONTENT = "// Ignore this file. It keeps --outDir relative to baseDir.\n"

_BOOLEAN_FLAGS: tuple[tuple[str, str], ...] = (
    ("source_map", "--sourcemap"),
    ("declaration", "--declaration"),
    ("remove_comments", "--removeComments"),
    ("no_implicit_any", "--noImplicitAny"),
    ("no_resolve", "--noResolve"),
)


def build_invocation(
    config: TargetConfig,
    files: Sequence[str],
    *,
    cwd: str | Path | None = None,
    target_name: str | None = None,
    logger: StructuredLogger | None = None,
) -> Invocation:
    root = Path(cwd) if cwd is not None else Path.cwd()
    resolved = [_absolute(file, root) for file in files]

    placeholder: Path | None = None
    if config.out_dir and config.base_dir and resolved:
        placeholder = ensure_placeholder(_absolute(config.base_dir, root))
        resolved.append(placeholder)

    if config.reference and config.out:
        resolved = [_absolute(config.reference, root)]

    args: list[str] = [_quoted(path, target_name) for path in resolved]
    args.extend(_option_args(config.options))

    if config.out:
        args.extend(["--out", config.out])
    if config.out_dir:
        if config.out:
            _warn_out_conflict(config, target_name=target_name, logger=logger)
        args.extend(["--outDir", config.out_dir])
    if config.options.source_root:
        args.extend(["--sourceRoot", config.options.source_root])
    if config.options.map_root:
        args.extend(["--mapRoot", config.options.map_root])

    return Invocation(args=tuple(args), files=tuple(resolved), placeholder=placeholder)


def render_command_line(args: Sequence[str]) -> str:
    """Return the argument-file content for *args*."""
    return " ".join(args)


def ensure_placeholder(base_dir: Path) -> Path:
    placeholder = base_dir / PLACEHOLDER_NAME
    base_dir.mkdir(parents=True, exist_ok=True)
    try:
        with placeholder.open("x", encoding="utf-8") as handle:
            handle.write(PLACEHOLDER_CONTENT)
    except FileExistsError:
        pass
    return placeholder


def _option_args(options: CompilerOptions) -> list[str]:
    args = [flag for attr, flag in _BOOLEAN_FLAGS if getattr(options, attr)]
    args.extend(["--target", options.target.upper()])
    args.extend(["--module", options.module.lower()])
    return args


def _warn_out_conflict(
    config: TargetConfig,
    *,
    target_name: str | None,
    logger: StructuredLogger | None,
) -> None:
    message = 'Option "out" and "outDir" should not be used together.'
    warnings.warn(message, ConfigConflictWarning, stacklevel=3)
    if logger is not None:
        logger.log(
            operation="config_conflict",
            target=target_name,
            phase="build_invocation",
            message=message,
            level="warning",
            extra={"out": config.out, "out_dir": config.out_dir},
        )


def _absolute(path: str | Path, root: Path) -> Path:
    return Path(os.path.abspath(root / path))


def _quoted(path: Path, target_name: str | None) -> str:
    # The argument file has no escape syntax for a quote inside a quoted path.
    if '"' in str(path):
        raise ValidationError(
            f"Source path contains a double quote: {path}",
            hint="Rename the file; the compiler's argument file cannot carry quotes in paths.",
            context={
                "operation": "build_invocation",
                "target": target_name or "",
                "path": str(path),
            },
        )
    return f'"{path}"'
