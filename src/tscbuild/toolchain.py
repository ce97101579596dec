"""Locate the TypeScript compiler installation used for builds."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from tscbuild.errors import CompilerNotFoundError
from tscbuild.models import Compiler
from tscbuild.observability import StructuredLogger

BIN_SUBPATH = Path("node_modules") / "typescript" / "bin"


def find_project_root(local_root: Path) -> Path | None:
    """Return the closest ancestor of *local_root* holding a compiler install."""
    for parent in local_root.resolve().parents:
        if (parent / BIN_SUBPATH).is_dir():
            return parent
    return None


def resolve_bin_path(local_root: str | Path, project_root: str | Path | None = None) -> Path:
    """Pick the compiler ``bin`` directory, preferring the project-root install."""
    local = Path(local_root)
    project = Path(project_root) if project_root is not None else find_project_root(local)
    if project is not None and (project / BIN_SUBPATH).is_dir():
        return project / BIN_SUBPATH
    return local / BIN_SUBPATH


def read_compiler_version(bin_path: Path) -> str | None:
    manifest = bin_path.parent / "package.json"
    try:
        payload = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    version = payload.get("version") if isinstance(payload, dict) else None
    return version if isinstance(version, str) else None


def locate_compiler(
    local_root: str | Path | None = None,
    project_root: str | Path | None = None,
    *,
    logger: StructuredLogger | None = None,
) -> Compiler:
    bin_path = resolve_bin_path(local_root if local_root is not None else Path.cwd(), project_root)
    tsc = bin_path / "tsc"
    if not tsc.is_file():
        raise CompilerNotFoundError(
            "TypeScript compiler installation not found.",
            hint="Run `npm install typescript` in the project root.",
            context={"operation": "locate_compiler", "path": str(tsc)},
        )
    version = read_compiler_version(bin_path)
    if logger is not None:
        logger.log(
            operation="compiler_version",
            target=None,
            phase="setup",
            message=f"Using tsc v{version or 'unknown'}",
            extra={"path": str(tsc)},
        )
    node = shutil.which("node") or "node"
    return Compiler(argv=(node, str(tsc)), version=version)
