"""Compiler toolchain invocation and per-mode task construction.

Key classes:
    CompilerInvoker - Spawns the Go toolchain and reports a CompileResult
    CompileTask     - Arguments, environment and output of one toolchain run
    BuildTarget     - (output path, architecture) of one production binary
    BuildMode       - development / production / production-cross
"""

from .invoker import CompileError, CompileResult, CompilerInvoker
from .tasks import (
    BuildMode,
    BuildTarget,
    CompileTask,
    development_task,
    production_targets,
    production_task,
)

__all__ = [
    # Invocation
    "CompilerInvoker",
    "CompileResult",
    "CompileError",
    # Tasks
    "BuildMode",
    "BuildTarget",
    "CompileTask",
    "development_task",
    "production_task",
    "production_targets",
]
