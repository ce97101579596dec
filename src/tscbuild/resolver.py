"""Decide which of a target's files must be handed to the compiler."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from tscbuild.cache import ChangeCache
from tscbuild.models import FileFingerprint, TargetConfig
from tscbuild.observability import StructuredLogger


@dataclass(frozen=True, slots=True)
class FileSet:
    """Files to compile, with their fingerprints when the run is incremental.

    ``snapshots`` holds the state of each changed file at resolution time;
    that state, not the one found after the compile, is what gets committed.
    """

    files: tuple[str, ...]
    incremental: bool
    snapshots: Mapping[str, FileFingerprint] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        """True when incremental mode found nothing to recompile."""
        return self.incremental and not self.files


def resolve_file_set(
    target_name: str,
    config: TargetConfig,
    cache: ChangeCache,
    *,
    files: Sequence[str] | None = None,
    logger: StructuredLogger | None = None,
) -> FileSet:
    declared = tuple(config.files if files is None else files)
    if not config.fast:
        return FileSet(files=declared, incremental=False)

    if config.out:
        # A combined output needs every source to keep its ordering.
        if logger is not None:
            logger.log(
                operation="resolve_files",
                target=target_name,
                phase="resolve",
                message=(
                    "Fast compile will not work when --out is specified. "
                    "Ignoring fast compilation."
                ),
            )
        return FileSet(files=declared, incremental=False)

    changed = tuple(cache.lookup_changed(target_name, declared))
    if logger is not None:
        for file in changed:
            logger.log(
                operation="fast_compile_file",
                target=target_name,
                phase="resolve",
                message=f"Fast compile >> {file}",
            )
    return FileSet(files=changed, incremental=True, snapshots=cache.snapshot(changed))
