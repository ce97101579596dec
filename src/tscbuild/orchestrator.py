"""Incremental compile orchestration for named build targets."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from tscbuild.argfile import argument_file
from tscbuild.cache import ChangeCache
from tscbuild.errors import TscBuildError
from tscbuild.invocation import build_invocation, render_command_line
from tscbuild.models import (
    SKIPPED_OUTPUT,
    CompileResult,
    Compiler,
    OrchestratorState,
    TargetConfig,
)
from tscbuild.observability import StructuredLogger
from tscbuild.resolver import resolve_file_set
from tscbuild.runner import run_compiler
from tscbuild.toolchain import locate_compiler


class Orchestrator:
    """Resolve, build, run and commit one target at a time.

    The change cache is only written after the compiler exits with code 0.
    Callers must not run two compilations of the same target name
    concurrently; distinct targets are independent.
    """

    def __init__(
        self,
        cache: ChangeCache,
        compiler: Compiler | None = None,
        *,
        logger: StructuredLogger | None = None,
        temp_dir: str | Path | None = None,
        cwd: str | Path | None = None,
        project_root: str | Path | None = None,
    ) -> None:
        self.cache = cache
        self.logger = logger if logger is not None else StructuredLogger()
        self.temp_dir = Path(temp_dir) if temp_dir is not None else None
        if self.temp_dir is not None:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.project_root = project_root
        self.history: dict[str, list[OrchestratorState]] = {}
        self._compiler = compiler

    def state_of(self, target_name: str) -> OrchestratorState:
        states = self.history.get(target_name)
        return states[-1] if states else OrchestratorState.IDLE

    @property
    def compiler(self) -> Compiler:
        if self._compiler is None:
            self._compiler = locate_compiler(self.cwd, self.project_root, logger=self.logger)
        return self._compiler

    async def compile_target(
        self,
        target_name: str,
        config: TargetConfig,
        files: Sequence[str] | None = None,
    ) -> CompileResult:
        self.history[target_name] = [OrchestratorState.IDLE]
        declared = [self._absolute(file) for file in (config.files if files is None else files)]

        self._enter(target_name, OrchestratorState.RESOLVING_FILES)
        file_set = resolve_file_set(
            target_name,
            config,
            self.cache,
            files=declared,
            logger=self.logger,
        )
        if file_set.skipped:
            self.logger.log(
                operation="skip_compile",
                target=target_name,
                phase="resolve",
                message="No file changes were detected. Skipping compile.",
            )
            self._enter(target_name, OrchestratorState.SKIPPED)
            return CompileResult(code=0, output=SKIPPED_OUTPUT, file_count=0)

        self._enter(target_name, OrchestratorState.BUILDING_INVOCATION)
        try:
            invocation = build_invocation(
                config,
                file_set.files,
                cwd=self.cwd,
                target_name=target_name,
                logger=self.logger,
            )
        except TscBuildError as exc:
            self._fail(target_name, f"Invocation could not be built: {exc}")
            raise
        try:
            compiler = self.compiler
        except TscBuildError as exc:
            self._fail(target_name, f"Compiler could not be located: {exc}")
            raise
        self.logger.log(
            operation="build_invocation",
            target=target_name,
            phase="build_invocation",
            message=render_command_line(invocation.args),
            level="info" if config.verbose else "debug",
            extra={"file_count": invocation.file_count},
        )

        with argument_file(invocation.args, directory=self.temp_dir) as argfile:
            self._enter(target_name, OrchestratorState.RUNNING)
            try:
                result = await run_compiler(compiler, argfile, cwd=self.cwd)
            except TscBuildError as exc:
                self._fail(target_name, f"Compiler could not be started: {exc}")
                raise

        result.file_count = invocation.file_count
        self.logger.log(
            operation="compiler_output",
            target=target_name,
            phase="run",
            message=result.output,
            extra={"code": result.code, "file_count": result.file_count},
        )
        if not result.ok:
            # Leave the cache alone so these files are retried next time.
            self._fail(target_name, f"Compiler exited with code {result.code}.")
            return result

        if file_set.incremental:
            self._enter(target_name, OrchestratorState.COMMITTING)
            self.cache.commit(target_name, file_set.files, file_set.snapshots)
            self.logger.log(
                operation="commit_cache",
                target=target_name,
                phase="commit",
                message="Marked compiled files as up to date.",
                extra={"files": list(file_set.files)},
            )
        self._enter(target_name, OrchestratorState.DONE)
        return result

    async def compile_targets(
        self,
        targets: Mapping[str, TargetConfig],
    ) -> dict[str, CompileResult | TscBuildError]:
        """Compile distinct targets concurrently; errors are returned per target."""
        names = list(targets)
        outcomes = await asyncio.gather(
            *(self.compile_target(name, targets[name]) for name in names),
            return_exceptions=True,
        )
        results: dict[str, CompileResult | TscBuildError] = {}
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException) and not isinstance(outcome, TscBuildError):
                raise outcome
            results[name] = outcome
        return results

    def _absolute(self, file: str) -> str:
        # Cache records are keyed by path, so relative names follow self.cwd.
        return os.path.abspath(self.cwd / file)

    def _enter(self, target_name: str, state: OrchestratorState) -> None:
        self.history.setdefault(target_name, []).append(state)

    def _fail(self, target_name: str, message: str) -> None:
        self._enter(target_name, OrchestratorState.FAILED)
        self.logger.log(
            operation="compile_failed",
            target=target_name,
            phase="run",
            message=message,
            level="error",
        )
