"""Interactive session driver.

Sequences authentication, repository and pull-request selection, checkout,
project and scheme detection, and the build/retry loop into the three
user-facing flows:

run    -- pick a repository, pick an open PR, build and launch it.
latest -- list the most recently updated PRs with build / refresh / exit.
watch  -- poll a repository and offer to build newly opened PRs.

Every collaborator is constructed once by the CLI and injected here; the
session itself holds only the selections made during one invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rich.markup import escape
from rich.table import Table

from pr_runner.config import Config
from pr_runner.errors import NoProjectsError, PrRunnerError
from pr_runner.github_client import GitHubClient, PullRequestRef, Repository
from pr_runner.prompts import Prompter
from pr_runner.settings import SettingsStore
from pr_runner.utils import (
    console,
    parse_repo_slug,
    print_dim,
    print_error,
    print_section,
    print_success,
)
from pr_runner.watcher import PullRequestWatcher
from pr_runner.workspace import WorkspaceMaterializer, locate_projects
from pr_runner.xcode import (
    BuildRetryLoop,
    BuildRunner,
    BuildRunResult,
    Destination,
    ProjectDescriptor,
    TargetResolver,
)

# Signature: (token) -> GitHubClient
ClientFactory = Callable[[str], GitHubClient]

LATEST_CHOICES: list[tuple[str, str]] = [
    ("Build and run a PR", "build"),
    ("Refresh list", "refresh"),
    ("Exit", "exit"),
]

DESTINATION_KIND_CHOICES: list[tuple[str, str]] = [
    ("iOS Simulator", "simulator"),
    ("Physical Device", "device"),
]


def latest_pull_requests(pull_requests: list[PullRequestRef], count: int) -> list[PullRequestRef]:
    """The *count* most recently updated pull requests, newest first."""
    ordered = sorted(pull_requests, key=lambda pr: pr.updated_at, reverse=True)
    return ordered[:count]


@dataclass
class SessionState:
    """Selections made during one invocation."""

    repository: Repository | None = None
    pull_request: PullRequestRef | None = None
    project: ProjectDescriptor | None = None
    scheme: str | None = None
    destination: Destination | None = None


class Session:
    """Runs the interactive flows.

    Attributes:
        config: Global configuration.
        settings: Stored-credential access.
        prompter: Operator interaction.
        state: Current selections.
    """

    def __init__(
        self,
        config: Config,
        settings: SettingsStore,
        prompter: Prompter,
        *,
        client_factory: ClientFactory | None = None,
        materializer: WorkspaceMaterializer | None = None,
        resolver: TargetResolver | None = None,
        runner: BuildRunner | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.prompter = prompter
        self.client_factory = client_factory or self._default_client
        self.materializer = materializer or WorkspaceMaterializer()
        self.resolver = resolver or TargetResolver(config.toolchain)
        self.runner = runner or BuildRunner(config.toolchain, self.resolver)
        self.state = SessionState()
        self.client: GitHubClient | None = None
        self._watcher: PullRequestWatcher | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _default_client(self, token: str) -> GitHubClient:
        gh = self.config.github
        return GitHubClient(token, base_url=gh.api_url, timeout=gh.timeout, per_page=gh.per_page)

    def configure(self) -> GitHubClient:
        """Authenticate and create the GitHub client."""
        print_section("GitHub Authentication")
        self.client = self.client_factory(self._resolve_token())
        return self.client

    def teardown(self) -> None:
        """Stop a running watch and forget every selection."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self.state = SessionState()

    def _resolve_token(self) -> str:
        if self.config.github.token:
            print_dim("Using GitHub token from the environment.")
            return self.config.github.token

        saved = self.settings.get()
        if saved and self.prompter.confirm("Use saved GitHub token?", default=True):
            return saved

        token = self.prompter.secret("Enter your GitHub Personal Access Token")
        if self.prompter.confirm("Save this token for future use?", default=True):
            self.settings.set(token)
            print_success("Token saved successfully")
        return token

    def _require_client(self) -> GitHubClient:
        if self.client is None:
            return self.configure()
        return self.client

    # ------------------------------------------------------------------
    # Selection steps
    # ------------------------------------------------------------------

    async def select_repository(self) -> Repository | None:
        client = self._require_client()
        print_section("Repository Selection")
        with console.status("Fetching repositories..."):
            repos = await client.list_repositories()
        if not repos:
            print_error("No repositories found.")
            return None
        repo = self.prompter.select(
            "Select a repository:", [(r.display(), r) for r in repos]
        )
        self.state.repository = repo
        return repo

    async def resolve_repository(self, slug: str) -> Repository:
        """Fetch ``owner/name``.

        Raises:
            ValueError: If *slug* is not ``owner/name``.
            HostingClientError: If the repository cannot be fetched.
        """
        owner, name = parse_repo_slug(slug)
        client = self._require_client()
        with console.status(f"Fetching repository {escape(slug)}..."):
            repo = await client.get_repository(owner, name)
        self.state.repository = repo
        return repo

    async def select_destination(self) -> Destination | None:
        """Ask for a simulator or device, booting the simulator if needed.

        Lists are fetched fresh on every call.  Returns ``None`` when there
        is nothing to choose from.
        """
        print_section("Destination Selection")
        kind = self.prompter.select("Where do you want to run the app?", DESTINATION_KIND_CHOICES)

        destination: Destination
        if kind == "simulator":
            with console.status("Fetching simulators..."):
                simulators = await self.resolver.list_simulators()
            if not simulators:
                print_error("No available simulators found.")
                return None
            simulator = self.prompter.select(
                "Select a simulator:", [(s.display(), s) for s in simulators]
            )
            if not simulator.is_booted:
                with console.status("Booting simulator..."):
                    await self.resolver.boot_simulator(simulator)
            destination = simulator
        else:
            with console.status("Fetching devices..."):
                devices = await self.resolver.list_devices()
            if not devices:
                print_error("No connected devices found.")
                return None
            destination = self.prompter.select(
                "Select a device:", [(d.display(), d) for d in devices]
            )

        self.state.destination = destination
        return destination

    def _select_project(self, checkout: Path) -> ProjectDescriptor:
        projects = locate_projects(checkout)
        if not projects:
            raise NoProjectsError("No iOS projects (.xcodeproj or .xcworkspace) found.")
        if len(projects) == 1:
            return projects[0]
        return self.prompter.select(
            "Multiple iOS projects found. Select one:", [(p.name, p) for p in projects]
        )

    # ------------------------------------------------------------------
    # Build a pull request
    # ------------------------------------------------------------------

    async def build_pull_request(
        self, repo: Repository, pull_request: PullRequestRef
    ) -> BuildRunResult:
        """Check out *pull_request*, pick project and scheme, and build it.

        Raises:
            CheckoutError, NoProjectsError, NoSchemesError, ToolchainError:
                Anything that goes wrong before the first build attempt.
        """
        self.state.repository = repo
        self.state.pull_request = pull_request

        print_section("Checking out PR")
        checkout = self.config.checkout_path(repo.name, pull_request.number)
        with console.status("Cloning repository and checking out PR..."):
            checkout = await self.materializer.materialize(
                repo.clone_url, pull_request.head_ref, checkout
            )
        print_success(f"Checked out PR #{pull_request.number} to {checkout}")

        print_section("iOS Project Detection")
        project = self._select_project(checkout)
        self.state.project = project
        print_success(f"Using project: {project.name}")

        with console.status("Detecting schemes..."):
            schemes = await self.resolver.list_schemes(project)
        if len(schemes) == 1:
            scheme = schemes[0]
        else:
            scheme = self.prompter.select("Select a scheme to build:", [(s, s) for s in schemes])
        self.state.scheme = scheme

        print_section("Building and Running")
        loop = BuildRetryLoop(
            self.runner,
            self.prompter,
            self.select_destination,
            configuration=self.config.toolchain.configuration,
        )
        result = await loop.run(project, scheme)
        if result.requests:
            self.state.destination = result.requests[-1].destination
        return result

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def run(self) -> BuildRunResult | None:
        """Select a repository and an open PR, then build and launch it."""
        repo = await self.select_repository()
        if repo is None:
            return None

        print_section("Pull Request Selection")
        with console.status("Fetching pull requests..."):
            pull_requests = await self._require_client().list_open_pull_requests(
                repo.owner, repo.name
            )
        if not pull_requests:
            print_error("No open pull requests found.")
            return None

        pull_request = self.prompter.select(
            "Select a pull request:", [(pr.display(), pr) for pr in pull_requests]
        )
        return await self.build_pull_request(repo, pull_request)

    async def latest(self, repo_slug: str | None = None, count: int | None = None) -> BuildRunResult | None:
        """Show the latest PRs and offer build / refresh / exit."""
        count = count or self.config.session.latest_count
        if repo_slug:
            repo = await self.resolve_repository(repo_slug)
        else:
            repo = await self.select_repository()
            if repo is None:
                return None

        client = self._require_client()
        print_section(f"Latest PRs for {escape(repo.full_name)}")

        while True:
            with console.status("Fetching pull requests..."):
                pull_requests = await client.list_open_pull_requests(repo.owner, repo.name)
            if not pull_requests:
                print_error("No open pull requests found.")
                return None

            latest = latest_pull_requests(pull_requests, count)
            self._show_pull_requests(latest)

            action = self.prompter.select("What would you like to do?", LATEST_CHOICES)
            if action == "exit":
                return None
            if action == "refresh":
                console.print("[blue]Refreshing...[/blue]")
                continue

            pull_request = self.prompter.select(
                "Select a PR to build:", [(pr.display(), pr) for pr in latest]
            )
            return await self.build_pull_request(repo, pull_request)

    async def watch(self, repo_slug: str, interval: float | None = None) -> None:
        """Poll *repo_slug* for new PRs until the task is cancelled."""
        interval = interval or self.config.session.watch_interval
        owner, name = parse_repo_slug(repo_slug)
        repo = await self.resolve_repository(repo_slug)
        client = self._require_client()

        print_success(f"Connected to {repo.full_name}")
        console.print(
            f"\n[blue]Watching for new PRs (checking every {interval}s)[/blue]\n"
        )
        print_dim("Press Ctrl+C to stop watching")

        async def _fetch() -> list[PullRequestRef]:
            return await client.list_open_pull_requests(owner, name)

        async def _on_new(new_prs: list[PullRequestRef]) -> None:
            if not self.prompter.confirm(
                "Would you like to build one of these PRs now?", default=False
            ):
                return
            pull_request = self.prompter.select(
                "Select a PR to build:", [(pr.display(), pr) for pr in new_prs]
            )
            try:
                # The branch may have moved or the PR closed since the poll
                pull_request = await client.get_pull_request(owner, name, pull_request.number)
                await self.build_pull_request(repo, pull_request)
            except PrRunnerError as exc:
                print_error(f"Error: {exc}")
            console.print("\n[blue]Resuming watch...[/blue]\n")

        self._watcher = PullRequestWatcher(_fetch, _on_new, interval=interval)
        try:
            await self._watcher.run()
        finally:
            self._watcher = None

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def _show_pull_requests(pull_requests: list[PullRequestRef]) -> None:
        table = Table(
            title=f"{len(pull_requests)} most recently updated PR(s)",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("#", justify="right", style="dim")
        table.add_column("Pull request")
        for index, pr in enumerate(pull_requests, 1):
            table.add_row(str(index), escape(pr.display()))
        console.print(table)
        console.print()
