"""Pytest configuration and fixtures."""

import asyncio
import os
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

from deployer.api.app import create_app
from deployer.config import Settings
from deployer.pipeline.toolchain import CommandSpec, ToolchainResult, clear_blocked_attempts
from deployer.services.deployment_service import DeploymentService

VALID_KEY = "2a975a6e86c98d3e96927ba685f2e45a7df6363596e30df574c7901f2e2e6cc9"
VALID_ADDRESS = "0x71197e7a1CA5A2cb2AD82432B924F69B1E3dB123"

HELLO_WORLD_SOL = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.28;

contract HelloWorld {
    string public greeting = "hello";
}
"""

COUNTER_MOVE = """\
module example::counter {
    struct Counter has key { value: u64 }
}
"""


class FakeRunner:
    """Stands in for the subprocess runner.

    Returns queued results in order (success with empty output once the queue
    is empty) and records every command together with whether its working
    directory existed when it ran.
    """

    def __init__(self, results: Optional[list[ToolchainResult]] = None, hang_on: Optional[int] = None):
        self.results = list(results or [])
        self.calls: list[CommandSpec] = []
        self.cwd_existed: list[bool] = []
        self.hang_on = hang_on

    async def __call__(self, spec: CommandSpec) -> ToolchainResult:
        self.calls.append(spec)
        self.cwd_existed.append(Path(spec.cwd).is_dir())
        if self.hang_on is not None and len(self.calls) == self.hang_on:
            await asyncio.sleep(3600)
        if self.results:
            return self.results.pop(0)
        return ToolchainResult(step="", returncode=0, stdout="", stderr="")

    @property
    def programs(self) -> list[str]:
        return [" ".join(spec.argv[:2]) for spec in self.calls]


def ok(stdout: str = "", stderr: str = "") -> ToolchainResult:
    return ToolchainResult(step="", returncode=0, stdout=stdout, stderr=stderr)


def failed(returncode: int = 1, stdout: str = "", stderr: str = "") -> ToolchainResult:
    return ToolchainResult(step="", returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture(autouse=True)
def reset_blocked_attempts():
    """Clear sanitizer counters before each test."""
    clear_blocked_attempts()


@pytest.fixture
def workspace_root(tmp_path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def settings(workspace_root) -> Settings:
    """Settings pointing workspaces at a temporary directory."""
    return Settings(
        _env_file=None,
        workspace_root=workspace_root,
        rate_limit_max_requests=5,
        rate_limit_window_seconds=60,
        cleanup_delay_seconds=300,
        deploy_timeout_seconds=30,
    )


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest_asyncio.fixture
async def service(settings, fake_runner):
    """Deployment service wired with the fake runner."""
    svc = DeploymentService.from_settings(settings, runner=fake_runner)
    yield svc
    await svc.shutdown()


@pytest_asyncio.fixture
async def client(settings, service):
    """Async test client against a fresh application."""
    app = create_app(settings, service=service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def workspace_dirs(root: Path) -> list[Path]:
    """Workspace directories currently on disk."""
    return [p for p in root.iterdir() if p.is_dir()]
