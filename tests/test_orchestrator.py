import inspect
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import FakeCompiler
from tscbuild.cache import ChangeCache
from tscbuild.errors import CompilerNotFoundError, CompilerSpawnError, ValidationError
from tscbuild.invocation import PLACEHOLDER_NAME
from tscbuild.models import Compiler, OrchestratorState, TargetConfig
from tscbuild.orchestrator import Orchestrator


def _orchestrator(
    cache: ChangeCache,
    compiler: Compiler,
    project: Path,
    argdir: Path,
) -> Orchestrator:
    return Orchestrator(cache, compiler, temp_dir=argdir, cwd=project)


@pytest.mark.asyncio
async def test_second_incremental_run_is_skipped(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler(stdout="ok")
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts", "src/b.ts"), fast=True)

    first = await orchestrator.compile_target("dev", config)
    second = await orchestrator.compile_target("dev", config)

    assert first.code == 0
    assert first.file_count == 2
    assert second.code == 0
    assert second.file_count == 0
    assert len(fake.calls()) == 1
    assert orchestrator.state_of("dev") is OrchestratorState.SKIPPED


@pytest.mark.asyncio
async def test_only_changed_files_are_compiled_and_committed(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts", "src/b.ts"), fast=True)
    await orchestrator.compile_target("T", config)
    a_before = cache.fingerprint("T", str(project / "src" / "a.ts"))

    b = project / "src" / "b.ts"
    b.write_text("export const b = 'edited';\n", encoding="utf-8")
    result = await orchestrator.compile_target("T", config)

    assert result.file_count == 1
    assert fake.calls()[-1]["content"].startswith(f'"{b}"')
    assert cache.lookup_changed("T", [str(project / "src" / "a.ts"), str(b)]) == []
    assert cache.fingerprint("T", str(project / "src" / "a.ts")) == a_before


@pytest.mark.asyncio
async def test_failed_compile_leaves_cache_untouched(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    a = str(project / "src" / "a.ts")
    b = str(project / "src" / "b.ts")
    cache.commit("dev", [a])
    before = (cache.fingerprint("dev", a), cache.fingerprint("dev", b))
    fake = fake_compiler(code=1, stdout="error TS1005: ';' expected.")
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)

    result = await orchestrator.compile_target("dev", TargetConfig(files=(a, b), fast=True))

    assert result.code == 1
    assert "TS1005" in result.output
    assert (cache.fingerprint("dev", a), cache.fingerprint("dev", b)) == before
    assert cache.lookup_changed("dev", [a, b]) == [b]
    assert orchestrator.state_of("dev") is OrchestratorState.FAILED
    assert list(argdir.iterdir()) == []


@pytest.mark.asyncio
async def test_skipped_run_spawns_nothing_and_writes_no_temp_file(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
) -> None:
    files = (str(project / "src" / "a.ts"),)
    cache.commit("dev", files)
    # A compiler that cannot be spawned proves the process is never started.
    orchestrator = _orchestrator(cache, Compiler(argv=("/nonexistent/node",)), project, argdir)

    result = await orchestrator.compile_target("dev", TargetConfig(files=files, fast=True))

    assert result.code == 0
    assert result.file_count == 0
    assert list(argdir.iterdir()) == []
    assert orchestrator.history["dev"] == [
        OrchestratorState.IDLE,
        OrchestratorState.RESOLVING_FILES,
        OrchestratorState.SKIPPED,
    ]


@pytest.mark.asyncio
async def test_spawn_error_cleans_up_and_propagates(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
) -> None:
    orchestrator = _orchestrator(cache, Compiler(argv=("/nonexistent/node",)), project, argdir)
    config = TargetConfig(files=("src/a.ts",), fast=True)

    with pytest.raises(CompilerSpawnError):
        await orchestrator.compile_target("dev", config)

    assert list(argdir.iterdir()) == []
    assert cache.lookup_changed("dev", [str(project / "src" / "a.ts")]) == [
        str(project / "src" / "a.ts"),
    ]
    assert orchestrator.state_of("dev") is OrchestratorState.FAILED


@pytest.mark.asyncio
async def test_non_incremental_success_does_not_touch_cache(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    a = str(project / "src" / "a.ts")

    await orchestrator.compile_target("dev", TargetConfig(files=(a,)))

    assert cache.fingerprint("dev", a) is None
    assert OrchestratorState.COMMITTING not in orchestrator.history["dev"]
    assert orchestrator.history["dev"][-1] is OrchestratorState.DONE


@pytest.mark.asyncio
async def test_combined_output_compiles_everything_in_fast_mode(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts", "src/b.ts"), out="bundle.js", fast=True)

    await orchestrator.compile_target("dev", config)
    second = await orchestrator.compile_target("dev", config)

    assert second.file_count == 2
    assert len(fake.calls()) == 2
    assert "--out bundle.js" in fake.calls()[-1]["content"]


@pytest.mark.asyncio
async def test_placeholder_counts_but_is_not_committed(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts",), out_dir="build", base_dir="src", fast=True)

    result = await orchestrator.compile_target("dev", config)

    placeholder = project / "src" / PLACEHOLDER_NAME
    assert result.file_count == 2
    assert f'"{placeholder}"' in fake.calls()[0]["content"]
    assert cache.fingerprint("dev", str(placeholder)) is None
    assert cache.fingerprint("dev", str(project / "src" / "a.ts")) is not None


@pytest.mark.asyncio
async def test_verbose_target_logs_command_line_at_info(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)

    await orchestrator.compile_target("dev", TargetConfig(files=("src/a.ts",), verbose=True))
    await orchestrator.compile_target("quiet", TargetConfig(files=("src/a.ts",)))

    levels = {
        record["target"]: record["level"]
        for record in orchestrator.logger.records
        if record["operation"] == "build_invocation"
    }
    assert levels == {"dev": "info", "quiet": "debug"}


@pytest.mark.asyncio
async def test_edit_during_compile_is_picked_up_next_run(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    b = project / "src" / "b.ts"
    fake = fake_compiler(
        script=f"Path({str(b)!r}).write_text(\"export const b = 'saved mid-build';\\n\")",
    )
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts", "src/b.ts"), fast=True)

    first = await orchestrator.compile_target("dev", config)
    second = await orchestrator.compile_target("dev", config)

    assert first.file_count == 2
    assert second.file_count == 1
    assert fake.calls()[-1]["content"].startswith(f'"{b}"')


@pytest.mark.asyncio
async def test_source_deleted_during_compile_still_finishes(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    a = project / "src" / "a.ts"
    fake = fake_compiler(script=f"Path({str(a)!r}).unlink()")
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    config = TargetConfig(files=("src/a.ts", "src/b.ts"), fast=True)

    result = await orchestrator.compile_target("dev", config)

    assert result.code == 0
    assert orchestrator.state_of("dev") is OrchestratorState.DONE
    assert cache.lookup_changed("dev", [str(a), str(project / "src" / "b.ts")]) == [str(a)]


@pytest.mark.asyncio
async def test_quoted_source_path_fails_the_target(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)

    with pytest.raises(ValidationError):
        await orchestrator.compile_target("dev", TargetConfig(files=('src/say "hi".ts',)))

    assert orchestrator.state_of("dev") is OrchestratorState.FAILED
    assert fake.calls() == []
    assert list(argdir.iterdir()) == []


@pytest.mark.asyncio
async def test_distinct_targets_run_concurrently(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
    fake_compiler: Callable[..., FakeCompiler],
) -> None:
    fake = fake_compiler()
    orchestrator = _orchestrator(cache, fake.compiler, project, argdir)
    targets = {
        "dev": TargetConfig(files=("src/a.ts",), fast=True),
        "release": TargetConfig(files=("src/a.ts", "src/b.ts"), fast=True),
    }

    outcomes = await orchestrator.compile_targets(targets)

    assert {name: outcome.file_count for name, outcome in outcomes.items()} == {
        "dev": 1,
        "release": 2,
    }
    assert len(fake.calls()) == 2
    assert len({call["argfile"] for call in fake.calls()}) == 2
    assert list(argdir.iterdir()) == []


@pytest.mark.asyncio
async def test_compile_targets_reports_errors_per_target(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
) -> None:
    orchestrator = _orchestrator(cache, Compiler(argv=("/nonexistent/node",)), project, argdir)
    a = str(project / "src" / "a.ts")
    cache.commit("cached", [a])

    outcomes = await orchestrator.compile_targets(
        {
            "cached": TargetConfig(files=(a,), fast=True),
            "broken": TargetConfig(files=(a,)),
        },
    )

    assert outcomes["cached"].file_count == 0  # type: ignore[union-attr]
    assert isinstance(outcomes["broken"], CompilerSpawnError)


@pytest.mark.asyncio
async def test_missing_compiler_installation_fails_before_temp_file(
    cache: ChangeCache,
    project: Path,
    argdir: Path,
) -> None:
    orchestrator = Orchestrator(cache, temp_dir=argdir, cwd=project, project_root=project)

    with pytest.raises(CompilerNotFoundError):
        await orchestrator.compile_target("dev", TargetConfig(files=("src/a.ts",)))

    assert list(argdir.iterdir()) == []
    assert orchestrator.state_of("dev") is OrchestratorState.FAILED


def test_unknown_target_is_idle(cache: ChangeCache, project: Path) -> None:
    orchestrator = Orchestrator(cache, Compiler(argv=("node",)), cwd=project)

    assert orchestrator.state_of("never-built") is OrchestratorState.IDLE


def test_compile_target_is_a_coroutine(cache: ChangeCache, project: Path) -> None:
    orchestrator = Orchestrator(cache, Compiler(argv=("node",)), cwd=project)

    assert inspect.iscoroutinefunction(orchestrator.compile_target)
