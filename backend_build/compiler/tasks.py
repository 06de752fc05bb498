"""Compile task construction for each build mode.

Development and production builds differ only in the toolchain arguments and
environment they pass:

* development: debug-friendly (no optimisation or inlining), dynamically
  linked against system libraries, dependency artifacts installed to speed up
  subsequent builds.
* production: full rebuild of every package with cgo disabled, so the binary
  runs on a scratch image, targeted at linux/<arch>.

Both stamp the version-info linker expression into the binary.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from backend_build.config import Config

DEBUG_FLAGS: tuple[str, ...] = ("-gcflags=all=-N -l",)
INSTALL_FLAG = "-i"
REBUILD_ALL_FLAGS: tuple[str, ...] = ("-a", "-installsuffix", "cgo")

TARGET_OS = "linux"


class BuildMode(str, Enum):
    """Which kind of binary a build produces."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    PRODUCTION_CROSS = "production-cross"


@dataclass(frozen=True)
class BuildTarget:
    """One requested production binary."""

    output_path: Path
    architecture: str


@dataclass(frozen=True)
class CompileTask:
    """Arguments, environment overrides and output for one toolchain run."""

    arguments: tuple[str, ...]
    output_path: Path
    env: Mapping[str, str] = field(default_factory=dict)
    architecture: str | None = None


def development_task(config: Config) -> CompileTask:
    """Build the compile task for the development binary."""
    output_path = config.development_binary_path
    arguments: list[str] = ["build"]
    if config.backend.install_dependencies:
        arguments.append(INSTALL_FLAG)
    arguments.extend(["-ldflags", config.version.record_version_expression])
    arguments.extend(DEBUG_FLAGS)
    arguments.extend(["-o", str(output_path), config.backend.main_package])
    return CompileTask(arguments=tuple(arguments), output_path=output_path)


def production_task(config: Config, target: BuildTarget) -> CompileTask:
    """Build the compile task for one production target."""
    arguments = (
        "build",
        *REBUILD_ALL_FLAGS,
        "-ldflags",
        config.version.record_version_expression,
        "-o",
        str(target.output_path),
        config.backend.main_package,
    )
    env = {
        # Disable cgo. Required to run on a scratch image.
        "CGO_ENABLED": "0",
        "GOARCH": target.architecture,
        "GOOS": TARGET_OS,
    }
    return CompileTask(
        arguments=arguments,
        output_path=target.output_path,
        env=env,
        architecture=target.architecture,
    )


def production_targets(config: Config, architectures: Iterable[str]) -> list[BuildTarget]:
    """Pair each architecture with its per-architecture output path.

    Raises:
        ValueError: If an architecture is requested twice, since both builds
            would write the same output path.
    """
    targets: list[BuildTarget] = []
    seen: set[str] = set()
    for arch in architectures:
        if not arch:
            raise ValueError("Empty architecture name")
        if arch in seen:
            raise ValueError(f"Architecture requested more than once: {arch}")
        seen.add(arch)
        targets.append(BuildTarget(output_path=config.cross_binary_path(arch), architecture=arch))
    return targets
