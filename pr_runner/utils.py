"""Shared utility functions for PR Runner.

Provides async command execution, Rich-based console reporting, and small
formatting helpers used by the session driver and the toolchain wrappers.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from pr_runner.errors import ToolchainInvocationError

console = Console()

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    timeout: float = 120,
) -> tuple[int, str, str]:
    """Run a command asynchronously and capture its output.

    Args:
        cmd: Program and arguments; no shell is involved.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  A timed-out command
        reports returncode ``-1``.

    Raises:
        ToolchainInvocationError: If the program cannot be started.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise ToolchainInvocationError(
            f"Could not start '{cmd[0]}': {exc}. Is it installed and in PATH?",
            command=" ".join(cmd),
        ) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return (-1, "", f"Command timed out after {timeout}s: {' '.join(cmd)}")

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_relative_time(moment: datetime, now: datetime | None = None) -> str:
    """Describe how long ago *moment* was, at hour/day granularity.

    Examples::

        format_relative_time(now - 20min)  -> "Updated just now"
        format_relative_time(now - 5h)     -> "Updated 5h ago"
        format_relative_time(now - 50h)    -> "Updated 2d ago"
    """
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    hours = int((now - moment).total_seconds() // 3600)
    if hours < 1:
        return "Updated just now"
    if hours < 24:
        return f"Updated {hours}h ago"
    return f"Updated {hours // 24}d ago"


def timestamp() -> str:
    """Local wall-clock time used to prefix watch-mode log lines."""
    return datetime.now().strftime("%H:%M:%S")


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts.

    Raises:
        ValueError: If either part is missing.
    """
    owner, _, name = slug.strip().partition("/")
    if not owner or not name or "/" in name:
        raise ValueError(f"Invalid repository format '{slug}'. Use: owner/repo")
    return owner, name


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_section(title: str, color: str = "bright_cyan") -> None:
    """Print a full-width rule introducing the next step of a flow."""
    console.print()
    console.print(Rule(f"[bold {color}] {title} [/bold {color}]", style=color))
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")


def print_dim(message: str) -> None:
    """Print raw tool output dimmed; markup characters are escaped."""
    console.print(f"[dim]{escape(message)}[/dim]", highlight=False)
