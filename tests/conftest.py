"""Shared pytest fixtures for the backend build test suite.

Provides reusable fixtures for:
- A temporary project with backend source and vendor trees
- Configs pointing at that project
- A recording CompilerInvoker that never spawns the real toolchain
- Mock subprocess helpers
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend_build.compiler import CompileError, CompileResult, CompilerInvoker
from backend_build.config import ArchConfig, Config, PathConfig


# ---------------------------------------------------------------------------
# Project layout
# ---------------------------------------------------------------------------

SOURCE_FILES: dict[str, str] = {
    "main.go": "package main\n\nfunc main() {}\n",
    "client/version.go": "package client\n\nvar Version = \"UNKNOWN\"\n",
    "handler/apihandler.go": "package handler\n",
    "handler/testdata/fixture.json": "{}\n",
}


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Temporary project root with a backend source tree and a vendor directory.

    Layout::

        <root>/src/app/backend/...   (SOURCE_FILES)
        <root>/vendor/github.com/example/lib/lib.go
    """
    root = tmp_path / "project"
    source = root / "src" / "app" / "backend"
    for rel, content in SOURCE_FILES.items():
        path = source / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    vendored = root / "vendor" / "github.com" / "example" / "lib"
    vendored.mkdir(parents=True)
    (vendored / "lib.go").write_text("package lib\n", encoding="utf-8")
    yield root


@pytest.fixture
def build_config(project_dir: Path) -> Config:
    """Config rooted at the temporary project with three architectures."""
    return Config(
        paths=PathConfig(base_dir=project_dir),
        arch=ArchConfig(default="amd64", architectures=["amd64", "arm", "arm64"]),
    )


# ---------------------------------------------------------------------------
# Recording invoker
# ---------------------------------------------------------------------------


class RecordingInvoker(CompilerInvoker):
    """CompilerInvoker double that records calls instead of spawning a toolchain.

    Successful calls write a fake binary to the output path. Architectures in
    ``fail_archs`` raise CompileError carrying a synthetic diagnostic.
    """

    def __init__(
        self,
        work_dir: Path,
        fail_archs: Sequence[str] = (),
        delay: float = 0.0,
    ) -> None:
        super().__init__(work_dir, toolchain="fake-go")
        self.fail_archs = set(fail_archs)
        self.delay = delay
        self.calls: list[dict] = []
        self.active = 0
        self.max_active = 0
        self.staging_seen: list[bool] = []

    async def invoke(
        self,
        arguments: Sequence[str],
        env: Mapping[str, str],
        output_path: str | Path,
        architecture: str | None = None,
    ) -> CompileResult:
        self.calls.append(
            {
                "arguments": list(arguments),
                "env": dict(env),
                "output_path": Path(output_path),
                "architecture": architecture,
            }
        )
        self.staging_seen.append((self.work_dir / "vendor").is_symlink())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

        output = Path(output_path)
        if architecture in self.fail_archs:
            result = CompileResult(
                success=False,
                output_path=output,
                architecture=architecture,
                exit_code=2,
                stderr=f"cmd/compile: unsupported GOARCH {architecture}",
            )
            raise CompileError(f"Compilation of {output} ({architecture}) failed", result=result)

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"\x7fELF fake")
        return CompileResult(
            success=True,
            output_path=output,
            architecture=architecture,
            exit_code=0,
        )


@pytest.fixture
def recording_invoker(build_config: Config):
    """Factory for RecordingInvoker bound to the config's staging directory.

    Usage:
        def test_build(recording_invoker):
            invoker = recording_invoker(fail_archs=["arm"])
    """
    def factory(fail_archs: Sequence[str] = (), delay: float = 0.0) -> RecordingInvoker:
        return RecordingInvoker(build_config.paths.staging_path, fail_archs=fail_archs, delay=delay)

    return factory


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
