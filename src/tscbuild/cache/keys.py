"""Cache key derivation and file fingerprinting."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from tscbuild.models import FileFingerprint

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_CHUNK_SIZE = 1 << 16


def target_key(target_name: str) -> str:
    """Return a filesystem-safe directory name unique to *target_name*."""
    digest = hashlib.sha256(target_name.encode("utf-8")).hexdigest()[:12]
    readable = _UNSAFE_CHARS.sub("_", target_name).strip("._") or "target"
    return f"{readable}-{digest}"


def file_key(path: str | Path) -> str:
    return str(Path(path).resolve())


def content_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def fingerprint_file(path: str | Path) -> FileFingerprint:
    file_path = Path(path)
    stat = file_path.stat()
    return FileFingerprint(
        mtime_ns=stat.st_mtime_ns,
        size=stat.st_size,
        sha256=content_digest(file_path),
    )


def is_unchanged(path: str | Path, recorded: FileFingerprint) -> bool:
    """Compare *path* against *recorded*, hashing only when the mtime moved."""
    file_path = Path(path)
    try:
        stat = file_path.stat()
    except FileNotFoundError:
        return False
    if stat.st_size != recorded.size:
        return False
    if stat.st_mtime_ns == recorded.mtime_ns:
        return True
    return content_digest(file_path) == recorded.sha256
