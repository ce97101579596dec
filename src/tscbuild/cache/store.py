"""Per-target change cache persisted as canonical CBOR manifests."""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import cbor2

from tscbuild.cache.keys import file_key, fingerprint_file, is_unchanged, target_key
from tscbuild.errors import CacheError
from tscbuild.models import FileFingerprint

MANIFEST_NAME = "manifest.cbor"
MANIFEST_VERSION = 1
DEFAULT_CACHE_DIR = ".tscache"


class ChangeCache:
    """Records the fingerprint of every file at its last successful compile.

    Records are partitioned by target name: the same file can be up to date
    for one target and changed for another.
    """

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def lookup_changed(self, target_name: str, candidate_files: Sequence[str]) -> list[str]:
        """Return the subsequence of *candidate_files* changed since the last commit."""
        records = self._load(target_name)
        changed: list[str] = []
        for file in candidate_files:
            recorded = records.get(file_key(file))
            if recorded is None or not is_unchanged(file, recorded):
                changed.append(file)
        return changed

    def snapshot(self, files: Iterable[str]) -> dict[str, FileFingerprint]:
        """Fingerprint *files* as they are now; missing files are left out."""
        snapshots: dict[str, FileFingerprint] = {}
        for file in files:
            try:
                snapshots[file] = fingerprint_file(file)
            except FileNotFoundError:
                continue
        return snapshots

    def commit(
        self,
        target_name: str,
        files: Sequence[str],
        snapshots: Mapping[str, FileFingerprint] | None = None,
    ) -> None:
        """Mark *files* as up to date for *target_name*.

        With *snapshots* (see :meth:`snapshot`) each file is recorded with the
        fingerprint taken before the compile, so an edit made while the
        compiler ran still reads as changed. Without them the files are
        fingerprinted now. A file with no fingerprint loses its record.
        """
        if snapshots is None:
            snapshots = self.snapshot(files)
        records = self._load(target_name)
        for file in files:
            taken = snapshots.get(file)
            if taken is None:
                records.pop(file_key(file), None)
            else:
                records[file_key(file)] = taken
        self._store(target_name, records)

    def fingerprint(self, target_name: str, file: str) -> FileFingerprint | None:
        return self._load(target_name).get(file_key(file))

    def clear(self, target_name: str) -> None:
        shutil.rmtree(self._entry(target_name), ignore_errors=True)

    def _entry(self, target_name: str) -> Path:
        return self.root / target_key(target_name)

    def _load(self, target_name: str) -> dict[str, FileFingerprint]:
        manifest_path = self._entry(target_name) / MANIFEST_NAME
        if not manifest_path.exists():
            return {}
        try:
            parsed = cbor2.loads(manifest_path.read_bytes())
        except cbor2.CBORDecodeError as exc:
            raise CacheError(
                "Change cache manifest is not valid CBOR.",
                hint="Clear the target cache to force a full rebuild.",
                context={
                    "operation": "cache_load",
                    "target": target_name,
                    "path": str(manifest_path),
                },
            ) from exc
        return _parse_manifest(parsed, target_name=target_name, path=manifest_path)

    def _store(self, target_name: str, records: dict[str, FileFingerprint]) -> None:
        entry = self._entry(target_name)
        entry.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": MANIFEST_VERSION,
            "target": target_name,
            "files": {
                key: {"mtime_ns": fp.mtime_ns, "size": fp.size, "sha256": fp.sha256}
                for key, fp in sorted(records.items())
            },
        }
        encoded = cbor2.dumps(payload, canonical=True)
        with tempfile.NamedTemporaryFile(dir=entry, prefix=".manifest-", delete=False) as handle:
            handle.write(encoded)
            temp_name = handle.name
        try:
            os.replace(temp_name, entry / MANIFEST_NAME)
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)


def _parse_manifest(parsed: Any, *, target_name: str, path: Path) -> dict[str, FileFingerprint]:
    context = {"operation": "cache_load", "target": target_name, "path": str(path)}
    if not isinstance(parsed, dict) or parsed.get("version") != MANIFEST_VERSION:
        raise CacheError(
            "Change cache manifest has invalid structure.",
            hint="Clear the target cache to force a full rebuild.",
            context=context,
        )
    if parsed.get("target") != target_name:
        raise CacheError(
            "Change cache manifest belongs to a different target.",
            hint="Clear the target cache to force a full rebuild.",
            context=context,
        )
    files = parsed.get("files")
    if not isinstance(files, dict):
        raise CacheError("Change cache manifest `files` is invalid.", context=context)
    records: dict[str, FileFingerprint] = {}
    for key, entry in files.items():
        try:
            records[key] = FileFingerprint(
                mtime_ns=int(entry["mtime_ns"]),
                size=int(entry["size"]),
                sha256=str(entry["sha256"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheError(
                "Change cache manifest entry is invalid.",
                hint="Clear the target cache to force a full rebuild.",
                context={**context, "file": str(key)},
            ) from exc
    return records
