"""Run the external compiler against an argument file."""

from __future__ import annotations

import asyncio
from pathlib import Path

from tscbuild.errors import CompilerSpawnError
from tscbuild.models import CompileResult, Compiler


async def run_compiler(
    compiler: Compiler,
    argfile: Path,
    *,
    cwd: str | Path | None = None,
) -> CompileResult:
    """Spawn ``<compiler> @<argfile>`` and capture its exit code and merged output.

    A non-zero exit is returned as a result; only failures to start the
    process raise :class:`CompilerSpawnError`.
    """
    command = [*compiler.argv, f"@{argfile}"]
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        raise CompilerSpawnError(
            "Failed to start the compiler process.",
            hint="Check that node and the TypeScript compiler are installed and executable.",
            context={
                "operation": "run_compiler",
                "command": " ".join(command),
                "error": f"{type(exc).__name__}: {exc}",
            },
        ) from exc

    stdout, _ = await proc.communicate()
    output = stdout.decode("utf-8", errors="replace") if stdout else ""
    code = proc.returncode if proc.returncode is not None else -1
    return CompileResult(code=code, output=output)
