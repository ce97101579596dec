"""Build configuration parser."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from tscbuild.cache import DEFAULT_CACHE_DIR
from tscbuild.errors import ValidationError
from tscbuild.models import ECMA_TARGETS, MODULE_KINDS, CompilerOptions, TargetConfig

CONFIG_VERSION = 1
DEFAULT_CONFIG_NAME = "tscbuild.json"

_TOP_LEVEL_KEYS = frozenset({"version", "cache_dir", "options", "targets"})
_TARGET_KEYS = frozenset(
    {"files", "out", "out_dir", "base_dir", "reference", "options", "fast", "verbose"},
)
_OPTION_KEYS = frozenset(item.name for item in fields(CompilerOptions))
_GLOB_CHARS = frozenset("*?[")


@dataclass(frozen=True, slots=True)
class BuildConfig:
    root: Path
    cache_dir: Path
    targets: dict[str, TargetConfig]


def read_build_config(path: str | Path) -> BuildConfig:
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValidationError(
            "Build configuration does not exist.",
            hint=f"Create {DEFAULT_CONFIG_NAME} or pass --config.",
            context={"path": str(config_path)},
        ) from exc
    return parse_build_config(raw, base_dir=config_path.resolve().parent)


def parse_build_config(raw: str, *, base_dir: str | Path) -> BuildConfig:
    root = Path(base_dir)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid build configuration JSON.", hint=str(exc)) from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid build configuration payload type.")
    _reject_unknown(payload, _TOP_LEVEL_KEYS, where="configuration")

    version = payload.get("version", CONFIG_VERSION)
    if version != CONFIG_VERSION:
        raise ValidationError(
            f"Unsupported build configuration version: {version}",
            context={"expected": str(CONFIG_VERSION)},
        )

    cache_dir = _optional_str(payload, "cache_dir") or DEFAULT_CACHE_DIR
    defaults = _parse_options(_optional_dict(payload, "options"), CompilerOptions())
    targets_raw = _required_dict(payload, "targets")
    targets: dict[str, TargetConfig] = {}
    for name, target_raw in targets_raw.items():
        if not isinstance(target_raw, dict):
            raise ValidationError(f"Invalid target `{name}` definition.")
        targets[name] = _parse_target(name, target_raw, defaults=defaults, root=root)
    return BuildConfig(root=root, cache_dir=root / cache_dir, targets=targets)


def expand_files(patterns: list[str], root: Path) -> tuple[str, ...]:
    """Expand glob *patterns* relative to *root*, keeping pattern order.

    Literal paths are kept even when missing so the compiler reports them.
    """
    expanded: list[str] = []
    seen: set[str] = set()
    for pattern in patterns:
        if _GLOB_CHARS.isdisjoint(pattern):
            matches = [pattern]
        else:
            matches = [
                path.relative_to(root).as_posix()
                for path in sorted(root.glob(pattern))
                if path.is_file()
            ]
        for match in matches:
            if match not in seen:
                seen.add(match)
                expanded.append(match)
    return tuple(expanded)


def _parse_target(
    name: str,
    payload: dict[str, Any],
    *,
    defaults: CompilerOptions,
    root: Path,
) -> TargetConfig:
    _reject_unknown(payload, _TARGET_KEYS, where=f"target `{name}`")
    patterns = payload.get("files")
    if not isinstance(patterns, list) or not all(isinstance(item, str) for item in patterns):
        raise ValidationError(
            f"Invalid `files` value for target `{name}`.",
            hint="Provide a list of paths or glob patterns.",
        )
    return TargetConfig(
        files=expand_files(patterns, root),
        out=_optional_str(payload, "out"),
        out_dir=_optional_str(payload, "out_dir"),
        base_dir=_optional_str(payload, "base_dir"),
        reference=_optional_str(payload, "reference"),
        options=_parse_options(_optional_dict(payload, "options"), defaults),
        fast=_optional_bool(payload, "fast", default=False),
        verbose=_optional_bool(payload, "verbose", default=False),
    )


def _parse_options(payload: dict[str, Any], base: CompilerOptions) -> CompilerOptions:
    _reject_unknown(payload, _OPTION_KEYS, where="options")
    values: dict[str, Any] = {item.name: getattr(base, item.name) for item in fields(base)}
    for key in ("source_map", "declaration", "remove_comments", "no_implicit_any", "no_resolve"):
        if key in payload:
            values[key] = _optional_bool(payload, key, default=False)
    for key in ("source_root", "map_root"):
        if key in payload:
            values[key] = _optional_str(payload, key)
    if "target" in payload:
        values["target"] = _choice(payload, "target", ECMA_TARGETS)
    if "module" in payload:
        values["module"] = _choice(payload, "module", MODULE_KINDS)
    return CompilerOptions(**values)


def _choice(payload: dict[str, Any], key: str, allowed: tuple[str, ...]) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or value.lower() not in allowed:
        raise ValidationError(
            f"Invalid `{key}` option: {value!r}",
            hint=f"Use one of: {', '.join(allowed)}.",
        )
    return value.lower()


def _reject_unknown(payload: dict[str, Any], allowed: frozenset[str], *, where: str) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown keys in {where}: {', '.join(unknown)}",
            hint=f"Allowed keys: {', '.join(sorted(allowed))}.",
        )


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid build configuration `{key}` value.")
    return value


def _optional_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid build configuration `{key}` value.")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid build configuration `{key}` value.")
    return value


def _optional_bool(payload: dict[str, Any], key: str, *, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"Invalid build configuration `{key}` value.")
    return value
