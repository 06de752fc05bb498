"""Backend Build Orchestrator.

Drives the backend build as an explicit stage sequence:

Stage 1: CLEAN   -- Remove any existing staging tree.
Stage 2: STAGE   -- Copy the backend source into the staging tree.
Stage 3: LINK    -- Symlink the shared vendor directory into staging.
Stage 4: COMPILE -- One toolchain run per requested binary.

Each of the first three stages completes before the next starts. Compiles only
read the staging tree, so production cross builds run every architecture
concurrently and report all failures together once every compile has finished.

Usage::

    python -m backend_build.orchestrator dev
    python -m backend_build.orchestrator prod --version v1.2.0
    python -m backend_build.orchestrator cross --arch amd64,arm64
"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from backend_build.compiler import (
    BuildMode,
    BuildTarget,
    CompileError,
    CompileResult,
    CompilerInvoker,
    CompileTask,
    development_task,
    production_targets,
    production_task,
)
from backend_build.config import (
    ArchConfig,
    BackendConfig,
    Config,
    PathConfig,
    VersionConfig,
    parse_arch_list,
)
from backend_build.packager import SourceStager, StagingError, VendorLinker
from backend_build.utils import (
    console,
    format_duration,
    print_error,
    print_stage_header,
    print_success,
    print_summary_table,
    print_warning,
    truncate,
)

# ---------------------------------------------------------------------------
# Stages and errors
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    """Named nodes of the build graph, in execution order."""

    CLEAN = "clean"
    STAGE = "stage"
    LINK = "link"
    COMPILE = "compile"


PACKAGE_STAGES: tuple[Stage, ...] = (Stage.CLEAN, Stage.STAGE, Stage.LINK)


class AggregateCompileError(Exception):
    """Raised by cross builds when one or more architectures failed to compile.

    Attributes:
        errors: One CompileError per failed target.
        results: CompileResults of the targets that succeeded.
    """

    def __init__(
        self,
        errors: list[CompileError],
        results: list[CompileResult] | None = None,
    ) -> None:
        self.errors = list(errors)
        self.results = list(results or [])
        failed = ", ".join(arch or "native" for arch in self.architectures)
        super().__init__(
            f"{len(self.errors)} of {len(self.errors) + len(self.results)} "
            f"compile task(s) failed: {failed}"
        )

    @property
    def architectures(self) -> list[str | None]:
        """Architectures whose compile failed, in request order."""
        return [err.architecture for err in self.errors]


@dataclass
class BuildReport:
    """Outcome of one orchestrator build invocation."""

    mode: BuildMode
    stages_completed: list[Stage] = field(default_factory=list)
    results: list[CompileResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def output_paths(self) -> list[Path]:
        return [r.output_path for r in self.results]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BuildOrchestrator:
    """Composes staging, vendor linking and compilation into the build graph.

    Attributes:
        config: Immutable build configuration (paths, architectures, version).
        stager: Resets and repopulates the staging tree.
        linker: Links the vendor directory into staging.
        invoker: Runs the compiler toolchain.
        stages_completed: Stages finished by the current/most recent build.
    """

    _STAGE_METHODS: dict[Stage, str] = {
        Stage.CLEAN: "_run_clean",
        Stage.STAGE: "_run_stage",
        Stage.LINK: "_run_link",
    }

    def __init__(
        self,
        config: Config,
        invoker: CompilerInvoker | None = None,
        stager: SourceStager | None = None,
        linker: VendorLinker | None = None,
    ) -> None:
        self.config = config
        paths = config.paths
        self.stager = stager or SourceStager(paths.source_path, paths.staging_path)
        self.linker = linker or VendorLinker(paths.vendor_path, paths.staging_vendor_path)
        self.invoker = invoker or CompilerInvoker(
            paths.staging_path, toolchain=config.backend.toolchain
        )
        self.stages_completed: list[Stage] = []

    # ------------------------------------------------------------------
    # Stage scheduler
    # ------------------------------------------------------------------

    async def _run_clean(self) -> None:
        await self.stager.clean()

    async def _run_stage(self) -> None:
        await self.stager.populate()

    async def _run_link(self) -> None:
        await self.linker.link()

    async def package(self) -> list[Stage]:
        """Run CLEAN -> STAGE -> LINK, strictly one after another.

        Returns:
            The stages completed so far in this build.

        Raises:
            StagingError: From the first stage that fails; later stages are
                never started.
        """
        self.stages_completed = []
        for index, stage in enumerate(PACKAGE_STAGES, start=1):
            print_stage_header(index, stage.value)
            method = getattr(self, self._STAGE_METHODS[stage])
            try:
                await method()
            except StagingError as exc:
                print_error(f"Stage {stage.value} failed: {exc}")
                raise
            self.stages_completed.append(stage)
        return list(self.stages_completed)

    # ------------------------------------------------------------------
    # Build modes
    # ------------------------------------------------------------------

    async def build(
        self,
        mode: BuildMode,
        architectures: Iterable[str] | None = None,
    ) -> BuildReport:
        """Dispatch to the build method for *mode*."""
        if mode is BuildMode.DEVELOPMENT:
            return await self.build_development()
        if mode is BuildMode.PRODUCTION:
            return await self.build_production()
        return await self.build_production_cross(architectures)

    async def build_development(self) -> BuildReport:
        """Package the source and compile the development binary.

        Raises:
            StagingError: If packaging fails (nothing is compiled).
            CompileError: If the compile fails.
        """
        start = time.monotonic()
        task = development_task(self.config)
        await self.package()
        result = await self._compile_single(task)
        return self._finish(BuildMode.DEVELOPMENT, [result], start)

    async def build_production(self) -> BuildReport:
        """Package the source and compile a production binary for the default architecture.

        Raises:
            StagingError: If packaging fails (nothing is compiled).
            CompileError: If the compile fails.
        """
        start = time.monotonic()
        target = BuildTarget(
            output_path=self.config.production_binary_path,
            architecture=self.config.arch.default,
        )
        task = production_task(self.config, target)
        await self.package()
        result = await self._compile_single(task)
        return self._finish(BuildMode.PRODUCTION, [result], start)

    async def build_production_cross(
        self,
        architectures: Iterable[str] | None = None,
    ) -> BuildReport:
        """Package the source and compile one production binary per architecture.

        All compiles run concurrently and every one of them runs to completion,
        even after a sibling has failed.

        Args:
            architectures: Architectures to build. Defaults to the configured
                list. An empty list packages the source and compiles nothing.

        Raises:
            ValueError: If an architecture is requested twice.
            StagingError: If packaging fails (nothing is compiled).
            AggregateCompileError: If any architecture failed to compile.
        """
        start = time.monotonic()
        archs = list(self.config.arch.architectures if architectures is None else architectures)
        targets = production_targets(self.config, archs)
        tasks = [production_task(self.config, target) for target in targets]

        await self.package()
        if not tasks:
            print_warning("No architectures requested -- nothing to compile.")
            return self._finish(BuildMode.PRODUCTION_CROSS, [], start)

        results = await self._compile_all(tasks)
        return self._finish(BuildMode.PRODUCTION_CROSS, results, start)

    # ------------------------------------------------------------------
    # Compile stage
    # ------------------------------------------------------------------

    async def _compile_single(self, task: CompileTask) -> CompileResult:
        print_stage_header(len(PACKAGE_STAGES) + 1, Stage.COMPILE.value)
        try:
            result = await self.invoker.run_task(task)
        except CompileError as exc:
            print_error(f"Compile failed: {truncate(str(exc))}")
            raise
        self.stages_completed.append(Stage.COMPILE)
        return result

    async def _compile_all(self, tasks: list[CompileTask]) -> list[CompileResult]:
        """Run every task concurrently and classify the outcomes.

        Raises:
            AggregateCompileError: If any task raised CompileError.
            Exception: The first non-compile exception, re-raised only after
                every task has finished.
        """
        print_stage_header(len(PACKAGE_STAGES) + 1, Stage.COMPILE.value)
        console.print(
            Panel(
                f"[bold cyan]Cross compile[/bold cyan]\n"
                f"  Targets: {', '.join(t.architecture or 'native' for t in tasks)}\n"
                f"  Max parallel: {self.config.backend.max_parallel or len(tasks)}",
                title="Parallel Compiles",
                border_style="cyan",
            )
        )

        semaphore = asyncio.Semaphore(self.config.backend.max_parallel or len(tasks))

        async def _compile_with_semaphore(task: CompileTask) -> CompileResult:
            async with semaphore:
                return await self.invoker.run_task(task)

        outcomes = await asyncio.gather(
            *(_compile_with_semaphore(task) for task in tasks),
            return_exceptions=True,
        )

        results: list[CompileResult] = []
        errors: list[CompileError] = []
        unexpected: list[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, CompileError):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                unexpected.append(outcome)
            else:
                results.append(outcome)

        self._display_cross_summary(tasks, outcomes)

        if unexpected:
            raise unexpected[0]
        if errors:
            raise AggregateCompileError(errors, results)

        self.stages_completed.append(Stage.COMPILE)
        return results

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _finish(
        self,
        mode: BuildMode,
        results: list[CompileResult],
        start: float,
    ) -> BuildReport:
        report = BuildReport(
            mode=mode,
            stages_completed=list(self.stages_completed),
            results=results,
            duration_seconds=time.monotonic() - start,
        )
        summary = {
            "Mode": mode.value,
            "Stages": " -> ".join(s.value for s in report.stages_completed),
            "Binaries": str(len(results)),
            "Duration": format_duration(report.duration_seconds),
        }
        for result in results:
            summary[result.architecture or "native"] = str(result.output_path)
        print_summary_table(summary, title="Build Results")
        return report

    def _display_cross_summary(
        self,
        tasks: list[CompileTask],
        outcomes: list[CompileResult | BaseException],
    ) -> None:
        table = Table(title="Cross Compile Summary")
        table.add_column("Architecture", style="bold")
        table.add_column("Status")
        table.add_column("Output")
        table.add_column("Detail")

        succeeded = 0
        for task, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BaseException):
                status = "[red]FAIL[/red]"
                detail = truncate(str(outcome), 80)
            else:
                succeeded += 1
                status = "[green]PASS[/green]"
                detail = f"{outcome.duration_seconds:.1f}s"
            table.add_row(task.architecture or "native", status, str(task.output_path), detail)

        console.print(table)
        console.print(
            f"\n[bold]Total:[/bold] {succeeded} succeeded, "
            f"{len(tasks) - succeeded} failed"
        )


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

_CLI_MODES: dict[str, BuildMode | None] = {
    "package": None,
    "dev": BuildMode.DEVELOPMENT,
    "prod": BuildMode.PRODUCTION,
    "cross": BuildMode.PRODUCTION_CROSS,
}


def _build_config(args) -> Config:
    """Layer configuration: JSON file, then environment, then CLI flags."""
    base = Config.load(Path(args.config)) if args.config else Config()
    config = Config.from_env(base)

    paths_kwargs: dict[str, Any] = {}
    if args.base_dir:
        paths_kwargs["base_dir"] = Path(args.base_dir)

    arch_kwargs: dict[str, Any] = {}
    if args.arch and args.mode == "prod":
        arch_kwargs["default"] = parse_arch_list(args.arch)[0]

    backend_kwargs: dict[str, Any] = {}
    if args.max_parallel is not None:
        backend_kwargs["max_parallel"] = args.max_parallel

    version_kwargs: dict[str, Any] = {}
    if args.version:
        version_kwargs["version"] = args.version
    if args.commit:
        version_kwargs["commit"] = args.commit

    return Config(
        paths=PathConfig(**{**config.paths.model_dump(), **paths_kwargs}),
        arch=ArchConfig(**{**config.arch.model_dump(), **arch_kwargs}),
        backend=BackendConfig(**{**config.backend.model_dump(), **backend_kwargs}),
        version=VersionConfig(**{**config.version.model_dump(), **version_kwargs}),
    )


def _print_compile_failure(err: CompileError) -> None:
    if err.result is None:
        console.print(f"  [red]{truncate(str(err))}[/red]")
        return
    console.print(Panel(err.result.summary(), title=err.architecture or "native", border_style="red"))


async def _main(args, config: Config) -> bool:
    orchestrator = BuildOrchestrator(config)
    mode = _CLI_MODES[args.mode]

    console.print(
        Panel(
            f"[bold bright_cyan]Backend Build[/bold bright_cyan]\n"
            f"Mode    : {args.mode}\n"
            f"Source  : {config.paths.source_path}\n"
            f"Staging : {config.paths.staging_path}\n"
            f"Version : {config.version.version}",
            title="[bold]Build Start[/bold]",
            border_style="bright_cyan",
        )
    )

    if mode is not None and not args.skip_toolchain_check:
        if not await orchestrator.invoker.check_available():
            return False

    try:
        if mode is None:
            await orchestrator.package()
        else:
            architectures = parse_arch_list(args.arch) if args.arch and args.mode == "cross" else None
            await orchestrator.build(mode, architectures)
    except AggregateCompileError as exc:
        print_error(str(exc))
        for err in exc.errors:
            _print_compile_failure(err)
        return False
    except CompileError as exc:
        print_error("Compile failed")
        _print_compile_failure(exc)
        return False
    except (StagingError, ValueError) as exc:
        print_error(str(exc))
        return False

    return True


def main() -> None:
    """CLI entry point for ``python -m backend_build.orchestrator``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Backend Build -- stage, link and compile the Go backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m backend_build.orchestrator dev\n"
            "  python -m backend_build.orchestrator prod --version v1.2.0\n"
            "  python -m backend_build.orchestrator cross --arch amd64,arm64\n"
        ),
    )

    parser.add_argument(
        "mode",
        choices=sorted(_CLI_MODES),
        help="package (stage + link only), dev, prod or cross",
    )
    parser.add_argument(
        "--base-dir", "-C",
        default=None,
        help="Project root that relative paths are resolved against",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration file (see Config.save)",
    )
    parser.add_argument(
        "--arch",
        default=None,
        help="Comma-separated architectures (cross) or the target architecture (prod)",
    )
    parser.add_argument("--version", default=None, help="Version stamped into the binary")
    parser.add_argument("--commit", default=None, help="Commit stamped into the binary")
    parser.add_argument(
        "--max-parallel",
        type=int,
        default=None,
        help="Maximum concurrent compiles for cross builds",
    )
    parser.add_argument(
        "--skip-toolchain-check",
        action="store_true",
        help="Do not verify the toolchain is installed before building",
    )

    args = parser.parse_args()

    if args.arch is not None and not parse_arch_list(args.arch) and args.mode == "prod":
        console.print("[bold red]Error:[/bold red] --arch must name an architecture")
        sys.exit(1)

    try:
        config = _build_config(args)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red]\n{exc}")
        sys.exit(1)
    except (ValueError, OSError) as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        sys.exit(1)

    start = time.monotonic()
    ok = asyncio.run(_main(args, config))
    elapsed = format_duration(time.monotonic() - start)

    if ok:
        print_success(f"Build completed in {elapsed}")
    else:
        print_error(f"Build failed after {elapsed}")
        sys.exit(1)


if __name__ == "__main__":
    main()
