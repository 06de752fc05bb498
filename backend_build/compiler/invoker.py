"""Compiler toolchain process management.

Spawns the Go toolchain as a subprocess with a given argument list and
environment overrides, waits for it to exit, and reports a structured result.
A failed compile is reported immediately and never retried.
"""

import asyncio
import os
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from backend_build.utils import console, truncate

from .tasks import CompileTask


@dataclass
class CompileResult:
    """Structured result from one toolchain invocation."""

    success: bool
    output_path: Path
    architecture: str | None = None
    command: list[str] | None = None
    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def diagnostics(self) -> str:
        """The toolchain's diagnostic output (stderr, falling back to stdout)."""
        return self.stderr.strip() or self.stdout.strip()

    def summary(self) -> str:
        """Return a human-readable summary of the result."""
        status = "[green]SUCCESS[/green]" if self.success else "[red]FAILED[/red]"
        lines = [
            f"Status: {status}",
            f"Output: {self.output_path}",
            f"Duration: {self.duration_seconds:.1f}s",
        ]
        if self.architecture:
            lines.insert(1, f"Architecture: {self.architecture}")
        if not self.success:
            lines.append(f"Exit code: {self.exit_code}")
            if self.diagnostics:
                lines.append(f"  {truncate(self.diagnostics, 200)}")
        return "\n".join(lines)


class CompileError(Exception):
    """Raised when the toolchain cannot be spawned or exits non-zero."""

    def __init__(self, message: str, result: CompileResult | None = None):
        self.result = result
        super().__init__(message)

    @property
    def architecture(self) -> str | None:
        return self.result.architecture if self.result else None


class CompilerInvoker:
    """Runs the external compiler toolchain.

    The child environment is the current process environment overlaid with
    the per-call overrides. The child runs with ``work_dir`` (normally the
    staging directory) as its working directory.
    """

    def __init__(self, work_dir: str | Path, toolchain: str = "go"):
        self.work_dir = Path(work_dir)
        self.toolchain = toolchain

    async def invoke(
        self,
        arguments: Sequence[str],
        env: Mapping[str, str],
        output_path: str | Path,
        architecture: str | None = None,
    ) -> CompileResult:
        """Run ``<toolchain> *arguments`` and wait for it to exit.

        Args:
            arguments: Ordered toolchain arguments (``build``, flags, package).
            env: Environment variables overriding the inherited environment.
            output_path: Binary the invocation is expected to produce; its
                parent directory is created up front (failure to create it
                is a CompileError).
            architecture: Target architecture, recorded on the result.

        Returns:
            CompileResult for a zero exit status.

        Raises:
            CompileError: On spawn failure or non-zero exit. The error carries
                the CompileResult with the toolchain's diagnostic output.
        """
        output = Path(output_path)
        cmd = [self.toolchain, *arguments]
        merged_env = {**os.environ, **env}
        label = architecture or "native"

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            result = CompileResult(
                success=False,
                output_path=output,
                architecture=architecture,
                command=cmd,
                stderr=str(exc),
            )
            raise CompileError(
                f"Cannot create output directory {output.parent} ({label}): {exc}",
                result=result,
            ) from exc

        console.print(
            f"[cyan]Compiling[/cyan] [bold]{output}[/bold] ([magenta]{label}[/magenta])"
        )

        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.work_dir),
                env=merged_env,
            )
        except FileNotFoundError as exc:
            result = CompileResult(
                success=False,
                output_path=output,
                architecture=architecture,
                command=cmd,
                stderr=str(exc),
            )
            raise CompileError(
                f"Toolchain binary not found: '{self.toolchain}'. "
                "Ensure it is installed and in PATH.",
                result=result,
            ) from exc
        except OSError as exc:
            result = CompileResult(
                success=False,
                output_path=output,
                architecture=architecture,
                command=cmd,
                stderr=str(exc),
            )
            raise CompileError(
                f"Failed to start toolchain '{self.toolchain}': {exc}",
                result=result,
            ) from exc

        stdout_bytes, stderr_bytes = await process.communicate()
        elapsed = time.monotonic() - start_time
        exit_code = process.returncode if process.returncode is not None else -1

        result = CompileResult(
            success=exit_code == 0,
            output_path=output,
            architecture=architecture,
            command=cmd,
            exit_code=exit_code,
            stdout=(stdout_bytes or b"").decode("utf-8", errors="replace"),
            stderr=(stderr_bytes or b"").decode("utf-8", errors="replace"),
            duration_seconds=elapsed,
        )

        if not result.success:
            console.print(
                f"[red]Compile failed[/red] for [bold]{output}[/bold] "
                f"([magenta]{label}[/magenta]), exit {exit_code}"
            )
            raise CompileError(
                f"Compilation of {output} ({label}) failed with exit code {exit_code}:\n"
                f"{result.diagnostics}",
                result=result,
            )

        console.print(
            f"[green]Compiled[/green] [bold]{output}[/bold] "
            f"([magenta]{label}[/magenta]) in {elapsed:.1f}s"
        )
        return result

    async def run_task(self, task: CompileTask) -> CompileResult:
        """Invoke the toolchain for a prepared CompileTask."""
        return await self.invoke(
            task.arguments,
            task.env,
            task.output_path,
            architecture=task.architecture,
        )

    async def check_available(self) -> bool:
        """Check if the toolchain is available in PATH.

        Returns:
            True if ``<toolchain> version`` runs and exits successfully.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.toolchain, "version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, _ = await asyncio.wait_for(
                process.communicate(), timeout=10.0
            )
        except (OSError, asyncio.TimeoutError):
            console.print(
                f"[red]Toolchain not available:[/red] '{self.toolchain}' "
                "not found in PATH."
            )
            return False

        if process.returncode != 0:
            console.print(
                f"[red]Toolchain '{self.toolchain}' exited with {process.returncode}.[/red]"
            )
            return False

        version = stdout_bytes.decode("utf-8", errors="replace").strip()
        console.print(f"[green]Toolchain available:[/green] {version}")
        return True
