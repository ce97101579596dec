"""Shared test fixtures."""

from __future__ import annotations

import json
import sys
import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from tscbuild.cache import ChangeCache
from tscbuild.models import Compiler

FAKE_TSC = textwrap.dedent(
    """\
    import json
    import sys
    from pathlib import Path

    argfile = sys.argv[-1]
    content = Path(argfile[1:]).read_text(encoding="utf-8")
    with open({record!r}, "a", encoding="utf-8") as handle:
        handle.write(json.dumps({{"argfile": argfile, "content": content}}) + "\\n")
    sys.stdout.write({stdout!r})
    sys.stderr.write({stderr!r})
    {script}
    sys.exit({code})
    """
)


@dataclass(slots=True)
class FakeCompiler:
    compiler: Compiler
    record: Path

    def calls(self) -> list[dict[str, Any]]:
        if not self.record.exists():
            return []
        lines = self.record.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line]


def write_fake_tsc(
    path: Path,
    *,
    record: Path,
    code: int = 0,
    stdout: str = "",
    stderr: str = "",
    script: str = "",
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        FAKE_TSC.format(
            record=str(record),
            code=code,
            stdout=stdout,
            stderr=stderr,
            script=script,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_compiler(tmp_path: Path) -> Callable[..., FakeCompiler]:
    """Build a compiler stand-in that records every argument file it receives."""
    counter = 0

    def factory(
        code: int = 0,
        stdout: str = "",
        stderr: str = "",
        script: str = "",
    ) -> FakeCompiler:
        nonlocal counter
        counter += 1
        record = tmp_path / f"tsc-calls-{counter}.jsonl"
        script_path = write_fake_tsc(
            tmp_path / "bin" / f"fake_tsc_{counter}.py",
            record=record,
            code=code,
            stdout=stdout,
            stderr=stderr,
            script=script,
        )
        return FakeCompiler(
            compiler=Compiler(argv=(sys.executable, str(script_path)), version="1.0.3"),
            record=record,
        )

    return factory


@pytest.fixture
def cache(tmp_path: Path) -> ChangeCache:
    return ChangeCache(tmp_path / ".tscache")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")
    (root / "src" / "b.ts").write_text("export const b = 2;\n", encoding="utf-8")
    return root


@pytest.fixture
def argdir(tmp_path: Path) -> Path:
    directory = tmp_path / "argfiles"
    directory.mkdir()
    return directory
