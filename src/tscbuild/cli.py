"""Command line host for running configured build targets.

Usage:
    tscbuild --config tscbuild.json
    tscbuild --target dev --target release --no-fast
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
import warnings
from collections.abc import Mapping, Sequence

from tscbuild.cache import ChangeCache
from tscbuild.config import DEFAULT_CONFIG_NAME, BuildConfig, read_build_config
from tscbuild.errors import ConfigConflictWarning, TscBuildError, ValidationError
from tscbuild.models import CompileResult, TargetConfig
from tscbuild.observability import StructuredLogger
from tscbuild.orchestrator import Orchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tscbuild", description="Incremental TypeScript builds")
    parser.add_argument("--config", default=DEFAULT_CONFIG_NAME, help="Build configuration file")
    parser.add_argument(
        "--target",
        action="append",
        dest="targets",
        metavar="NAME",
        help="Target to build (repeatable, default: all)",
    )
    parser.add_argument(
        "--fast",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Override incremental mode for every selected target",
    )
    parser.add_argument("--clean-cache", action="store_true", help="Forget recorded fingerprints")
    parser.add_argument("--log-json", metavar="PATH", help="Write structured logs as JSON lines")
    parser.add_argument("--verbose", action="store_true", help="Echo compiler command lines")
    return parser


def select_targets(
    config: BuildConfig,
    names: Sequence[str] | None,
    *,
    fast: bool | None,
    verbose: bool,
) -> dict[str, TargetConfig]:
    selected = list(names) if names else list(config.targets)
    missing = [name for name in selected if name not in config.targets]
    if missing:
        raise ValidationError(
            f"Unknown target(s): {', '.join(missing)}",
            hint=f"Configured targets: {', '.join(sorted(config.targets)) or '(none)'}.",
        )
    targets: dict[str, TargetConfig] = {}
    for name in selected:
        target = config.targets[name]
        if fast is not None:
            target = dataclasses.replace(target, fast=fast)
        if verbose:
            target = dataclasses.replace(target, verbose=True)
        targets[name] = target
    return targets


def verbose_lines(logger: StructuredLogger, targets: Mapping[str, TargetConfig]) -> list[str]:
    """Compiler version and command lines to echo for verbose targets."""
    verbose = {name for name, target in targets.items() if target.verbose}
    if not verbose:
        return []
    lines: list[str] = []
    for record in logger.records:
        if record["operation"] == "compiler_version":
            lines.append(record["message"])
        elif record["operation"] == "build_invocation" and record["target"] in verbose:
            lines.append(f"{record['target']}: tsc {record['message']}")
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = StructuredLogger()
    try:
        config = read_build_config(args.config)
        targets = select_targets(config, args.targets, fast=args.fast, verbose=args.verbose)
        cache = ChangeCache(config.cache_dir)
        if args.clean_cache:
            for name in targets:
                cache.clear(name)
        orchestrator = Orchestrator(cache, logger=logger, cwd=config.root)
        with warnings.catch_warnings():
            # Reported from the structured log below.
            warnings.simplefilter("ignore", ConfigConflictWarning)
            outcomes = asyncio.run(orchestrator.compile_targets(targets))
    except TscBuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log_json:
            logger.to_json_lines(args.log_json)

    for line in verbose_lines(logger, targets):
        print(line)
    failed = False
    for name, outcome in outcomes.items():
        if isinstance(outcome, CompileResult):
            if outcome.output:
                print(outcome.output.rstrip())
            status = "ok" if outcome.ok else f"failed (code {outcome.code})"
            print(f"{name}: {status}, {outcome.file_count} file(s)")
            failed = failed or not outcome.ok
        else:
            print(f"{name}: error: {outcome}", file=sys.stderr)
            failed = True
    for record in logger.warnings():
        print(f"warning: {record['message']}", file=sys.stderr)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
