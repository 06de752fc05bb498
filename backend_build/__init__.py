"""Backend build orchestrator.

Stages a Go backend source tree, links the shared vendor directory into it,
and compiles development or production binaries, including concurrent
cross-compilation for every target architecture.
"""

from backend_build.compiler import BuildMode, CompileError, CompilerInvoker
from backend_build.config import Config
from backend_build.orchestrator import AggregateCompileError, BuildOrchestrator, BuildReport, Stage
from backend_build.packager import StagingError

__version__ = "0.1.0"

__all__ = [
    "AggregateCompileError",
    "BuildMode",
    "BuildOrchestrator",
    "BuildReport",
    "CompileError",
    "CompilerInvoker",
    "Config",
    "Stage",
    "StagingError",
]
