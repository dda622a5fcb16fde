"""Shared pytest fixtures for the PR Runner test suite.

Provides reusable fixtures for:
- Mock subprocess helpers (buffered and streaming)
- A scripted prompter that answers menus, confirmations and secrets
- Pull request and destination factories
- A fake checkout containing Xcode project descriptors
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from pr_runner.config import Config, ToolchainConfig
from pr_runner.github_client import PullRequestRef, Repository
from pr_runner.prompts import Prompter
from pr_runner.xcode.models import (
    EmulatedDestination,
    PhysicalDestination,
    PowerState,
    ProjectDescriptor,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config with checkouts and settings under ``tmp_path`` and no boot pause."""
    return Config(
        checkout_root=tmp_path / "checkouts",
        settings_path=tmp_path / "settings" / "config.json",
        toolchain=ToolchainConfig(boot_wait_seconds=0),
    )


# ---------------------------------------------------------------------------
# Scripted prompter
# ---------------------------------------------------------------------------

class ScriptedPrompter(Prompter):
    """Answers prompts from pre-recorded scripts.

    ``selections`` holds the index of the choice to pick for each
    ``select()`` call, in order.  Every prompt is recorded in ``asked``.
    """

    def __init__(
        self,
        selections: Sequence[int] = (),
        confirmations: Sequence[bool] = (),
        secrets: Sequence[str] = (),
    ) -> None:
        self.selections = list(selections)
        self.confirmations = list(confirmations)
        self.secrets = list(secrets)
        self.asked: list[str] = []
        self.offered: list[list[str]] = []

    def select(self, message: str, choices: Sequence[tuple[str, Any]]) -> Any:
        self.asked.append(message)
        self.offered.append([label for label, _ in choices])
        assert self.selections, f"unexpected select(): {message}"
        return choices[self.selections.pop(0)][1]

    def confirm(self, message: str, default: bool = True) -> bool:
        self.asked.append(message)
        assert self.confirmations, f"unexpected confirm(): {message}"
        return self.confirmations.pop(0)

    def secret(self, message: str) -> str:
        self.asked.append(message)
        assert self.secrets, f"unexpected secret(): {message}"
        return self.secrets.pop(0)


@pytest.fixture
def scripted_prompter():
    """Factory for :class:`ScriptedPrompter` instances.

    Usage:
        def test_flow(scripted_prompter):
            prompter = scripted_prompter(selections=[0, 2], confirmations=[True])
    """
    return ScriptedPrompter


# ---------------------------------------------------------------------------
# Hosting data
# ---------------------------------------------------------------------------

@pytest.fixture
def repository() -> Repository:
    return Repository(
        owner="octo",
        name="app",
        full_name="octo/app",
        clone_url="https://github.com/octo/app.git",
    )


@pytest.fixture
def make_pr():
    """Factory for :class:`PullRequestRef` instances.

    ``hours_ago`` sets ``updated_at`` relative to a fixed ``NOW``.
    """
    def factory(number: int, hours_ago: float = 1, title: str | None = None) -> PullRequestRef:
        updated = NOW - timedelta(hours=hours_ago)
        return PullRequestRef(
            number=number,
            title=title or f"Change {number}",
            author="octocat",
            head_ref=f"feature/pr-{number}",
            created_at=updated - timedelta(days=1),
            updated_at=updated,
        )

    return factory


# ---------------------------------------------------------------------------
# Destinations & projects
# ---------------------------------------------------------------------------

@pytest.fixture
def simulator() -> EmulatedDestination:
    return EmulatedDestination(
        name="iPhone 15",
        udid="SIM-1111",
        version="iOS 17 0",
        state=PowerState.BOOTED,
    )


@pytest.fixture
def device() -> PhysicalDestination:
    return PhysicalDestination(name="Jane's iPhone", udid="00008110-001A2B3C4D5E6F70", version="17.1")


@pytest.fixture
def project(tmp_path: Path) -> ProjectDescriptor:
    path = tmp_path / "checkout" / "App.xcodeproj"
    path.mkdir(parents=True)
    return ProjectDescriptor(name="App.xcodeproj", path=path, is_workspace=False)


@pytest.fixture
def make_checkout():
    """Factory creating a checkout directory with the given descriptor dirs."""
    def factory(root: Path, *descriptors: str) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for rel in descriptors:
            (root / rel).mkdir(parents=True, exist_ok=True)
        return root

    return factory


# ---------------------------------------------------------------------------
# Mock Subprocess (buffered)
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


# ---------------------------------------------------------------------------
# Mock Subprocess (streaming)
# ---------------------------------------------------------------------------

def _stream(text: str) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    if text:
        reader.feed_data(text.encode("utf-8"))
    reader.feed_eof()
    return reader


@pytest.fixture
def mock_streaming_process():
    """Mock subprocess whose stdout/stderr are real ``StreamReader`` objects.

    Must be called from inside a running event loop (an async test).

    Usage:
        async def test_build(mock_streaming_process):
            proc = mock_streaming_process(stdout="Compiling A.swift\\n", returncode=0)
    """
    def factory(stdout: str = "", stderr: str = "", returncode: int = 0) -> MagicMock:
        proc = MagicMock()
        proc.stdout = _stream(stdout)
        proc.stderr = _stream(stderr)
        proc.returncode = returncode
        proc.wait = AsyncMock(return_value=returncode)
        proc.kill = MagicMock()
        return proc

    return factory
