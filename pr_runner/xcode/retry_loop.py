"""Build / retry / reselect / abort loop.

After a failed build the operator decides what happens next:

- **retry** builds again against the same destination,
- **reselect** clears the destination and asks for a new one,
- **exit** stops.

Project and scheme stay fixed for the whole loop.  There is no attempt
limit; the loop ends only on success or an explicit exit.

Destination selection is abstracted behind a callback so this module works
with any selection UI (interactive menu, scripted test double, etc.).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from rich.markup import escape

from pr_runner.prompts import Prompter
from pr_runner.utils import console, print_error, print_success
from pr_runner.xcode.build_runner import BuildRunner
from pr_runner.xcode.models import BuildOutcome, BuildRequest, Destination, ProjectDescriptor

# Type alias for the destination callback.
# Signature: async () -> Destination | None
#   Returns None when the operator backs out of the selection.
DestinationSelector = Callable[[], Awaitable[Destination | None]]


class BuildState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRYING = "retrying"
    RESELECTING = "reselecting"
    ABORTED = "aborted"


class RetryAction(str, Enum):
    RETRY = "retry"
    RESELECT = "reselect"
    EXIT = "exit"


RETRY_CHOICES: list[tuple[str, RetryAction]] = [
    ("Try again with same device", RetryAction.RETRY),
    ("Select a different device/simulator", RetryAction.RESELECT),
    ("Exit", RetryAction.EXIT),
]


@dataclass
class BuildRunResult:
    """What happened over one call to :meth:`BuildRetryLoop.run`."""

    state: BuildState
    outcome: BuildOutcome | None = None
    requests: list[BuildRequest] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is BuildState.SUCCEEDED

    @property
    def attempts(self) -> int:
        return len(self.requests)


class BuildRetryLoop:
    """Drives build attempts until success or until the operator exits.

    Parameters
    ----------
    runner:
        Compiles, installs and launches one :class:`BuildRequest`.
    prompter:
        Asks the operator what to do after a failure.
    select_destination:
        Called whenever no destination is selected (first attempt without
        one, or after "reselect").
    """

    def __init__(
        self,
        runner: BuildRunner,
        prompter: Prompter,
        select_destination: DestinationSelector,
        *,
        configuration: str = "Debug",
    ) -> None:
        self.runner = runner
        self.prompter = prompter
        self.select_destination = select_destination
        self.configuration = configuration
        self.state = BuildState.IDLE
        self.history: list[BuildState] = []

    # -- Public API ----------------------------------------------------------

    async def run(
        self,
        project: ProjectDescriptor,
        scheme: str,
        destination: Destination | None = None,
    ) -> BuildRunResult:
        """Build *scheme* of *project*, looping on failure.

        A fresh :class:`BuildRequest` is created for every attempt.
        """
        result = BuildRunResult(state=self.state)

        while True:
            if destination is None:
                destination = await self.select_destination()
                if destination is None:
                    self._transition(BuildState.ABORTED)
                    result.state = self.state
                    return result

            request = BuildRequest(
                project=project,
                scheme=scheme,
                destination=destination,
                configuration=self.configuration,
            )
            result.requests.append(request)

            self._transition(BuildState.BUILDING)
            result.outcome = await self._build(request)

            if result.outcome.succeeded:
                self._transition(BuildState.SUCCEEDED)
                result.state = self.state
                print_success("App built and launched successfully!")
                return result

            self._transition(BuildState.FAILED)
            print_error("Build/Run failed.")

            action = self.prompter.select("What would you like to do?", RETRY_CHOICES)
            if action is RetryAction.EXIT:
                self._transition(BuildState.ABORTED)
                result.state = self.state
                return result
            if action is RetryAction.RESELECT:
                self._transition(BuildState.RESELECTING)
                destination = None
            else:
                self._transition(BuildState.RETRYING)

    # -- Internal ------------------------------------------------------------

    async def _build(self, request: BuildRequest) -> BuildOutcome:
        with console.status("[cyan]Building project...[/cyan]") as status:
            def _on_progress(line: str) -> None:
                status.update(f"[cyan]{escape(line[:120])}[/cyan]")

            return await self.runner.build_and_run(request, _on_progress)

    def _transition(self, state: BuildState) -> None:
        self.state = state
        self.history.append(state)
