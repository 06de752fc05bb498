"""Unit tests for compile task construction (backend_build.compiler.tasks).

Tests cover:
- BuildMode values
- BuildTarget / CompileTask immutability
- development_task arguments (debug flags, -i, version stamp, no env)
- production_task arguments and env (rebuild-all, cgo off, GOOS/GOARCH)
- production_targets (per-arch paths, duplicates, empty names)
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from backend_build.compiler.tasks import (
    DEBUG_FLAGS,
    INSTALL_FLAG,
    REBUILD_ALL_FLAGS,
    BuildMode,
    BuildTarget,
    CompileTask,
    development_task,
    production_targets,
    production_task,
)
from backend_build.config import BackendConfig, Config, PathConfig, VersionConfig


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        paths=PathConfig(base_dir=tmp_path),
        version=VersionConfig(version="v1.0.0", package="example.com/app/client"),
    )


def _contains_sequence(haystack: tuple[str, ...], needle: tuple[str, ...]) -> bool:
    n = len(needle)
    return any(haystack[i : i + n] == needle for i in range(len(haystack) - n + 1))


class TestBuildMode:
    @pytest.mark.unit
    def test_values(self):
        assert BuildMode("development") is BuildMode.DEVELOPMENT
        assert BuildMode("production") is BuildMode.PRODUCTION
        assert BuildMode("production-cross") is BuildMode.PRODUCTION_CROSS


class TestImmutability:
    @pytest.mark.unit
    def test_build_target_frozen(self):
        target = BuildTarget(output_path=Path("dist/arm/x"), architecture="arm")
        with pytest.raises(dataclasses.FrozenInstanceError):
            target.architecture = "arm64"

    @pytest.mark.unit
    def test_compile_task_frozen(self):
        task = CompileTask(arguments=("build",), output_path=Path("x"))
        with pytest.raises(dataclasses.FrozenInstanceError):
            task.arguments = ()


# ---------------------------------------------------------------------------
# development_task
# ---------------------------------------------------------------------------


class TestDevelopmentTask:
    @pytest.mark.unit
    def test_arguments(self, config: Config):
        task = development_task(config)
        assert task.arguments == (
            "build",
            "-i",
            "-ldflags",
            "-X example.com/app/client.Version=v1.0.0",
            "-gcflags=all=-N -l",
            "-o",
            str(config.development_binary_path),
            ".",
        )

    @pytest.mark.unit
    def test_includes_debug_flags(self, config: Config):
        task = development_task(config)
        for flag in DEBUG_FLAGS:
            assert flag in task.arguments

    @pytest.mark.unit
    def test_never_includes_production_flags(self, config: Config):
        task = development_task(config)
        assert not _contains_sequence(task.arguments, REBUILD_ALL_FLAGS)
        assert "-a" not in task.arguments

    @pytest.mark.unit
    def test_no_env_overrides(self, config: Config):
        task = development_task(config)
        assert dict(task.env) == {}
        assert task.architecture is None

    @pytest.mark.unit
    def test_output_path(self, config: Config):
        assert development_task(config).output_path == config.paths.serve_path / "dashboard"

    @pytest.mark.unit
    def test_install_flag_optional(self, config: Config):
        config = config.model_copy(
            update={"backend": BackendConfig(install_dependencies=False)}
        )
        assert INSTALL_FLAG not in development_task(config).arguments

    @pytest.mark.unit
    def test_main_package_last(self, config: Config):
        config = config.model_copy(
            update={"backend": BackendConfig(main_package="./cmd/server")}
        )
        assert development_task(config).arguments[-1] == "./cmd/server"


# ---------------------------------------------------------------------------
# production_task
# ---------------------------------------------------------------------------


class TestProductionTask:
    @pytest.mark.unit
    def test_arguments(self, config: Config):
        target = BuildTarget(output_path=Path("/out/arm64/dashboard"), architecture="arm64")
        task = production_task(config, target)
        assert task.arguments == (
            "build",
            "-a",
            "-installsuffix",
            "cgo",
            "-ldflags",
            "-X example.com/app/client.Version=v1.0.0",
            "-o",
            "/out/arm64/dashboard",
            ".",
        )

    @pytest.mark.unit
    def test_env_overrides(self, config: Config):
        target = BuildTarget(output_path=Path("/out/s390x/dashboard"), architecture="s390x")
        task = production_task(config, target)
        assert dict(task.env) == {"CGO_ENABLED": "0", "GOARCH": "s390x", "GOOS": "linux"}
        assert task.architecture == "s390x"
        assert task.output_path == Path("/out/s390x/dashboard")

    @pytest.mark.unit
    def test_never_includes_debug_flags(self, config: Config):
        target = BuildTarget(output_path=Path("/out/amd64/dashboard"), architecture="amd64")
        task = production_task(config, target)
        for flag in DEBUG_FLAGS:
            assert flag not in task.arguments
        assert INSTALL_FLAG not in task.arguments
        assert _contains_sequence(task.arguments, REBUILD_ALL_FLAGS)


# ---------------------------------------------------------------------------
# production_targets
# ---------------------------------------------------------------------------


class TestProductionTargets:
    @pytest.mark.unit
    def test_one_target_per_arch(self, config: Config):
        targets = production_targets(config, ["amd64", "arm", "ppc64le"])
        assert [t.architecture for t in targets] == ["amd64", "arm", "ppc64le"]
        assert [t.output_path for t in targets] == [
            config.paths.dist_path / "amd64" / "dashboard",
            config.paths.dist_path / "arm" / "dashboard",
            config.paths.dist_path / "ppc64le" / "dashboard",
        ]

    @pytest.mark.unit
    def test_empty(self, config: Config):
        assert production_targets(config, []) == []

    @pytest.mark.unit
    def test_duplicate_rejected(self, config: Config):
        with pytest.raises(ValueError, match="more than once: arm"):
            production_targets(config, ["arm", "amd64", "arm"])

    @pytest.mark.unit
    def test_blank_rejected(self, config: Config):
        with pytest.raises(ValueError, match="Empty architecture"):
            production_targets(config, ["amd64", ""])
