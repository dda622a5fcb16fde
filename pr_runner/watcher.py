"""Polling watch mode for new and closed pull requests.

The first poll only records a baseline.  Every later poll diffs the open
pull-request numbers against the known set: new numbers are announced and
handed to a callback, vanished numbers are reported as closed or merged and
dropped from tracking.

Polls run one after another on the event loop; the next interval starts
only after the previous poll (including any build it triggered) finished.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from rich.markup import escape

from pr_runner.errors import HostingClientError
from pr_runner.github_client import PullRequestRef
from pr_runner.utils import console, print_dim, print_error, timestamp

# Signature: async () -> list[PullRequestRef]
PullRequestFetcher = Callable[[], Awaitable[list[PullRequestRef]]]
# Signature: async (new_pull_requests) -> None
NewPullRequestHandler = Callable[[list[PullRequestRef]], Awaitable[None]]


def diff_pull_requests(known: set[int], current: set[int]) -> tuple[set[int], set[int]]:
    """Return ``(new, closed)`` PR numbers between two polls."""
    return current - known, known - current


@dataclass
class PullRequestDiff:
    """Changes detected by one poll."""

    baseline: bool = False
    new: list[PullRequestRef] = field(default_factory=list)
    closed: list[int] = field(default_factory=list)


class WatchState:
    """The set of PR numbers seen so far."""

    def __init__(self) -> None:
        self.known: set[int] = set()
        self.initialized = False

    def update(self, pull_requests: list[PullRequestRef]) -> PullRequestDiff:
        current = {pr.number for pr in pull_requests}
        if not self.initialized:
            self.known = current
            self.initialized = True
            return PullRequestDiff(baseline=True)

        new_numbers, closed_numbers = diff_pull_requests(self.known, current)
        self.known = (self.known | new_numbers) - closed_numbers
        return PullRequestDiff(
            new=[pr for pr in pull_requests if pr.number in new_numbers],
            closed=sorted(closed_numbers),
        )


class PullRequestWatcher:
    """Polls at a fixed interval until cancelled."""

    def __init__(
        self,
        fetch: PullRequestFetcher,
        on_new: NewPullRequestHandler,
        interval: float = 60.0,
    ) -> None:
        self.fetch = fetch
        self.on_new = on_new
        self.interval = interval
        self.state = WatchState()
        self._timer: asyncio.Task | None = None

    async def poll_once(self) -> PullRequestDiff | None:
        """Run one poll.  Hosting errors are reported and yield ``None``."""
        try:
            pull_requests = await self.fetch()
        except HostingClientError as exc:
            print_error(f"[{timestamp()}] Error checking PRs: {exc}")
            return None

        diff = self.state.update(pull_requests)

        if diff.baseline:
            print_dim(f"[{timestamp()}] Currently tracking {len(pull_requests)} open PR(s)")
            return diff

        if diff.new:
            console.print(f"\n[bold green]{len(diff.new)} new PR(s) detected![/bold green]\n")
            for pr in diff.new:
                console.print(f"[yellow]NEW: {escape(pr.display())}[/yellow]")
            console.print()
            await self.on_new(diff.new)
        else:
            print_dim(f"[{timestamp()}] No new PRs. Still watching...")

        for number in diff.closed:
            print_dim(f"[{timestamp()}] PR #{number} was closed or merged")

        return diff

    async def run(self) -> None:
        """Poll forever.  Cancelling the task cancels the pending interval."""
        try:
            while True:
                await self.poll_once()
                self._timer = asyncio.ensure_future(asyncio.sleep(self.interval))
                await self._timer
        finally:
            self.stop()

    def stop(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
