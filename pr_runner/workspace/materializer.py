"""Fresh single-branch checkouts of a pull request's source branch.

Each (repository, pull request) pair gets its own working copy.  Any copy
left over from an earlier run is deleted before cloning, so a partial or
hand-edited checkout never blocks a retry.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from pr_runner.errors import CheckoutError
from pr_runner.utils import console


async def _run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float = 300.0,
) -> tuple[str, str]:
    """Run a git command asynchronously and return (stdout, stderr).

    Raises CheckoutError if git is missing, times out, or exits non-zero.
    """
    cmd = ["git"] + list(args)
    cmd_str = " ".join(cmd)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except FileNotFoundError as exc:
        raise CheckoutError("git is not installed or not in PATH", command=cmd_str) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        raise CheckoutError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            command=cmd_str,
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
    stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        raise CheckoutError(
            f"Git command failed (exit {process.returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
        )

    return stdout, stderr


class WorkspaceMaterializer:
    """Produces a clean local working copy checked out to one branch."""

    def __init__(self, clone_timeout: float = 600.0) -> None:
        self.clone_timeout = clone_timeout

    async def materialize(self, remote_url: str, branch: str, target_path: str | Path) -> Path:
        """Clone *branch* of *remote_url* into *target_path*.

        The target is removed first if it exists.  The clone is shallow and
        single-branch.  After cloning, the checked-out branch must equal
        *branch* exactly, whatever git's own exit status was.

        Returns:
            The resolved checkout path.

        Raises:
            CheckoutError: If the target cannot be prepared, cloning fails, or
                the wrong branch is checked out.
        """
        target = Path(target_path)

        try:
            if target.exists():
                console.print(f"[yellow]Removing previous checkout[/yellow] {target}")
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CheckoutError(f"Could not prepare {target}: {exc}") from exc

        console.print(
            f"[cyan]Cloning[/cyan] [bold]{branch}[/bold] into {target}..."
        )
        await _run_git(
            "clone",
            "--depth", "1",
            "--branch", branch,
            "--single-branch",
            remote_url,
            str(target),
            timeout=self.clone_timeout,
        )

        current = await self.current_branch(target)
        if current != branch:
            raise CheckoutError(
                f"Failed to checkout branch {branch}: working copy is on "
                f"'{current or '(detached HEAD)'}'"
            )

        return target.resolve()

    @staticmethod
    async def current_branch(path: str | Path) -> str:
        """Name of the branch checked out at *path* (empty when detached)."""
        stdout, _ = await _run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=path)
        branch = stdout.strip()
        return "" if branch == "HEAD" else branch
