"""PR Runner configuration.

Centralised, typed configuration for the CLI. All settings use Pydantic v2
models so they can be validated at construction time and serialised to/from
JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class GitHubConfig(BaseModel):
    """Connection settings for the GitHub REST API."""

    api_url: str = Field(default="https://api.github.com")
    timeout: int = Field(default=30, ge=1, description="Per-request timeout in seconds")
    per_page: int = Field(default=100, ge=1, le=100)
    token: str | None = Field(default=None, description="Token supplied by env, bypasses the prompt")


class ToolchainConfig(BaseModel):
    """How the Xcode toolchain is invoked and how its output is reported."""

    xcodebuild_binary: str = Field(default="xcodebuild")
    xcrun_binary: str = Field(default="xcrun")
    configuration: str = Field(default="Debug")
    list_timeout: int = Field(
        default=120, ge=1, description="Timeout for listing schemes/simulators/devices"
    )
    boot_wait_seconds: float = Field(
        default=3.0, ge=0.0, description="Pause after booting a simulator"
    )
    max_reported_errors: int = Field(
        default=5, ge=1, description="Distinct compiler errors shown before '... N more'"
    )
    failure_summary_lines: int = Field(
        default=20, ge=0, description="Lines kept after the BUILD FAILED marker"
    )


class SessionConfig(BaseModel):
    """Defaults for the interactive flows."""

    latest_count: int = Field(default=10, ge=1)
    watch_interval: int = Field(default=60, ge=1, description="Seconds between watch polls")


class Config(BaseModel):
    """Global PR Runner configuration.

    Instances are created once by the CLI entry point and then passed
    through the session to every component that needs them.
    """

    checkout_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    checkout_prefix: str = Field(default="ios-pr")
    settings_path: Path = Field(
        default_factory=lambda: Path.home() / ".pr-runner" / "config.json"
    )
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    def checkout_path(self, repo_name: str, pr_number: int) -> Path:
        """Working-copy location for one (repository, pull request) pair."""
        return self.checkout_root / f"{self.checkout_prefix}-{repo_name}-{pr_number}"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            PR_RUNNER_GITHUB_TOKEN (or GITHUB_TOKEN), PR_RUNNER_GITHUB_API_URL,
            PR_RUNNER_CHECKOUT_ROOT, PR_RUNNER_SETTINGS_PATH,
            PR_RUNNER_WATCH_INTERVAL, PR_RUNNER_LATEST_COUNT.
        """
        github_kwargs: dict[str, Any] = {}
        token = os.environ.get("PR_RUNNER_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN")
        if token:
            github_kwargs["token"] = token
        if os.environ.get("PR_RUNNER_GITHUB_API_URL"):
            github_kwargs["api_url"] = os.environ["PR_RUNNER_GITHUB_API_URL"]

        session_kwargs: dict[str, Any] = {}
        if os.environ.get("PR_RUNNER_WATCH_INTERVAL"):
            session_kwargs["watch_interval"] = int(os.environ["PR_RUNNER_WATCH_INTERVAL"])
        if os.environ.get("PR_RUNNER_LATEST_COUNT"):
            session_kwargs["latest_count"] = int(os.environ["PR_RUNNER_LATEST_COUNT"])

        kwargs: dict[str, Any] = {
            "github": GitHubConfig(**github_kwargs),
            "session": SessionConfig(**session_kwargs),
        }
        if os.environ.get("PR_RUNNER_CHECKOUT_ROOT"):
            kwargs["checkout_root"] = Path(os.environ["PR_RUNNER_CHECKOUT_ROOT"])
        if os.environ.get("PR_RUNNER_SETTINGS_PATH"):
            kwargs["settings_path"] = Path(os.environ["PR_RUNNER_SETTINGS_PATH"])

        return cls(**kwargs)
