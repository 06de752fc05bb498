"""Backend build configuration.

Centralised, typed configuration for the build orchestrator. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.

The configuration is passed explicitly into ``BuildOrchestrator``; nothing in
the package reads paths or architectures from global state.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_ARCHITECTURES: list[str] = ["amd64", "arm", "arm64", "ppc64le", "s390x"]


class PathConfig(BaseModel):
    """Filesystem layout used by the build.

    Relative directories are resolved against ``base_dir``.
    """

    base_dir: Path = Field(default=Path("."))
    source_dir: Path = Field(default=Path("src/app/backend"))
    tmp_dir: Path = Field(default=Path(".tmp"))
    vendor_dir: Path = Field(default=Path("vendor"))
    serve_dir: Path = Field(default=Path(".tmp/serve"))
    dist_dir: Path = Field(default=Path("dist"))

    def _resolve(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self.base_dir / path).resolve()

    @property
    def source_path(self) -> Path:
        """The true backend source tree."""
        return self._resolve(self.source_dir)

    @property
    def staging_path(self) -> Path:
        """Ephemeral copy of the source tree that the compiler runs in."""
        return self._resolve(self.tmp_dir) / "backend"

    @property
    def staging_vendor_path(self) -> Path:
        """Location of the vendor symlink inside the staging tree."""
        return self.staging_path / "vendor"

    @property
    def vendor_path(self) -> Path:
        """Shared vendor directory (linked, never copied)."""
        return self._resolve(self.vendor_dir)

    @property
    def serve_path(self) -> Path:
        """Output directory for development binaries."""
        return self._resolve(self.serve_dir)

    @property
    def dist_path(self) -> Path:
        """Root output directory for production binaries."""
        return self._resolve(self.dist_dir)

    def dist_arch_path(self, architecture: str) -> Path:
        """Per-architecture production output directory."""
        return self.dist_path / architecture


class ArchConfig(BaseModel):
    """Target architectures for production builds."""

    default: str = Field(default="amd64")
    architectures: list[str] = Field(default_factory=lambda: list(DEFAULT_ARCHITECTURES))

    @field_validator("architectures")
    @classmethod
    def _no_duplicates(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("architecture list contains duplicates")
        return value


class BackendConfig(BaseModel):
    """How the backend binary is compiled."""

    binary_name: str = Field(default="dashboard", min_length=1)
    main_package: str = Field(default=".", description="Package path passed to `go build`")
    toolchain: str = Field(default="go", description="Compiler binary name or path")
    install_dependencies: bool = Field(
        default=True, description="Pass -i to development builds to cache dependency artifacts"
    )
    max_parallel: int | None = Field(
        default=None, ge=1, description="Upper bound on concurrent compiles (None = unbounded)"
    )


class VersionConfig(BaseModel):
    """Build metadata stamped into binaries at link time."""

    version: str = Field(default="dev", min_length=1)
    commit: str = Field(default="")
    package: str = Field(
        default="github.com/kubernetes/dashboard/src/app/backend/client",
        description="Go package holding the Version/GitCommit variables",
    )

    @property
    def record_version_expression(self) -> str:
        """Linker flags string that records version info into the binary."""
        parts = [f"-X {self.package}.Version={self.version}"]
        if self.commit:
            parts.append(f"-X {self.package}.GitCommit={self.commit}")
        return " ".join(parts)


class Config(BaseModel):
    """Global build configuration.

    Instances are typically created once by the CLI entry point and then
    passed to ``BuildOrchestrator``.
    """

    paths: PathConfig = Field(default_factory=PathConfig)
    arch: ArchConfig = Field(default_factory=ArchConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    version: VersionConfig = Field(default_factory=VersionConfig)

    # ------------------------------------------------------------------
    # Derived outputs
    # ------------------------------------------------------------------

    @property
    def development_binary_path(self) -> Path:
        """Where the development binary is written."""
        return self.paths.serve_path / self.backend.binary_name

    @property
    def production_binary_path(self) -> Path:
        """Where the single-architecture production binary is written."""
        return self.paths.dist_path / self.backend.binary_name

    def cross_binary_path(self, architecture: str) -> Path:
        """Where the cross-build binary for *architecture* is written."""
        return self.paths.dist_arch_path(architecture) / self.backend.binary_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file.

        Returns:
            The path where the file was written.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls, base: "Config | None" = None) -> "Config":
        """Build a ``Config`` from environment variables.

        Values found in the environment override those of *base* (or the
        defaults). Recognised variables (all optional):
            BACKEND_BUILD_BASE_DIR, BACKEND_BUILD_ARCH_DEFAULT,
            BACKEND_BUILD_ARCH_LIST, BACKEND_BUILD_BINARY_NAME,
            BACKEND_BUILD_TOOLCHAIN, BACKEND_BUILD_MAX_PARALLEL,
            BACKEND_BUILD_VERSION, BACKEND_BUILD_COMMIT.
        """
        config = base or cls()

        paths_kwargs: dict[str, Any] = {}
        if os.environ.get("BACKEND_BUILD_BASE_DIR"):
            paths_kwargs["base_dir"] = Path(os.environ["BACKEND_BUILD_BASE_DIR"])

        arch_kwargs: dict[str, Any] = {}
        if os.environ.get("BACKEND_BUILD_ARCH_DEFAULT"):
            arch_kwargs["default"] = os.environ["BACKEND_BUILD_ARCH_DEFAULT"]
        if os.environ.get("BACKEND_BUILD_ARCH_LIST"):
            arch_kwargs["architectures"] = parse_arch_list(os.environ["BACKEND_BUILD_ARCH_LIST"])

        backend_kwargs: dict[str, Any] = {}
        if os.environ.get("BACKEND_BUILD_BINARY_NAME"):
            backend_kwargs["binary_name"] = os.environ["BACKEND_BUILD_BINARY_NAME"]
        if os.environ.get("BACKEND_BUILD_TOOLCHAIN"):
            backend_kwargs["toolchain"] = os.environ["BACKEND_BUILD_TOOLCHAIN"]
        if os.environ.get("BACKEND_BUILD_MAX_PARALLEL"):
            backend_kwargs["max_parallel"] = os.environ["BACKEND_BUILD_MAX_PARALLEL"]

        version_kwargs: dict[str, Any] = {}
        if os.environ.get("BACKEND_BUILD_VERSION"):
            version_kwargs["version"] = os.environ["BACKEND_BUILD_VERSION"]
        if os.environ.get("BACKEND_BUILD_COMMIT"):
            version_kwargs["commit"] = os.environ["BACKEND_BUILD_COMMIT"]

        return cls(
            paths=config.paths.model_copy(update=paths_kwargs),
            arch=ArchConfig(**{**config.arch.model_dump(), **arch_kwargs}),
            backend=BackendConfig(**{**config.backend.model_dump(), **backend_kwargs}),
            version=config.version.model_copy(update=version_kwargs),
        )


def parse_arch_list(raw: str) -> list[str]:
    """Split a comma-separated architecture list, dropping blanks.

    Examples::

        parse_arch_list("amd64, arm64") -> ["amd64", "arm64"]
        parse_arch_list("") -> []
    """
    return [part.strip() for part in raw.split(",") if part.strip()]
