"""Public package entrypoint for incremental TypeScript builds."""

from .argfile import argument_file, temp_path
from .cache import ChangeCache
from .config import BuildConfig, parse_build_config, read_build_config
from .errors import (
    CacheError,
    CompilerNotFoundError,
    CompilerSpawnError,
    ConfigConflictWarning,
    ResourceExhaustedError,
    TscBuildError,
    ValidationError,
)
from .invocation import build_invocation
from .models import (
    CompileResult,
    Compiler,
    CompilerOptions,
    FileFingerprint,
    Invocation,
    OrchestratorState,
    TargetConfig,
)
from .orchestrator import Orchestrator
from .resolver import FileSet, resolve_file_set
from .runner import run_compiler
from .toolchain import locate_compiler

__all__ = [
    "BuildConfig",
    "CacheError",
    "ChangeCache",
    "CompileResult",
    "Compiler",
    "CompilerNotFoundError",
    "CompilerOptions",
    "CompilerSpawnError",
    "ConfigConflictWarning",
    "FileFingerprint",
    "FileSet",
    "Invocation",
    "Orchestrator",
    "OrchestratorState",
    "ResourceExhaustedError",
    "TargetConfig",
    "TscBuildError",
    "ValidationError",
    "argument_file",
    "build_invocation",
    "locate_compiler",
    "parse_build_config",
    "read_build_config",
    "resolve_file_set",
    "run_compiler",
    "temp_path",
]
