"""xcodebuild process management for one build attempt.

Compiles a scheme for a destination while streaming the toolchain's
output, classifies compiler errors when the build fails, and installs and
launches the resulting app on a simulator when it succeeds.  Problems in
the install/launch step never turn a successful build into a failure; they
are attached to the outcome as warnings.
"""

from __future__ import annotations

import asyncio
import plistlib
import time
from pathlib import Path
from typing import Callable

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pr_runner.config import ToolchainConfig
from pr_runner.errors import (
    ArtifactNotFoundError,
    BuildFailedError,
    ToolchainCommandError,
    ToolchainError,
    ToolchainInvocationError,
)
from pr_runner.utils import console, print_dim, print_warning, run_command
from pr_runner.xcode.models import (
    BuildErrorReport,
    BuildOutcome,
    BuildRequest,
    EmulatedDestination,
)
from pr_runner.xcode.targets import TargetResolver

# Signature: (progress_line) -> None
ProgressCallback = Callable[[str], None]

PROGRESS_KEYWORDS: tuple[str, ...] = ("Building", "Compiling", "Linking", "Generating")

ERROR_MARKER = "error:"
WARNING_MARKER = "warning:"
BUILD_FAILED_MARKER = "** BUILD FAILED **"

# xcodebuild prints whole compiler invocations on one line.
_STREAM_LIMIT = 10 * 1024 * 1024


# ---------------------------------------------------------------------------
# Output classification
# ---------------------------------------------------------------------------


def is_progress_line(line: str) -> bool:
    return any(keyword in line for keyword in PROGRESS_KEYWORDS)


def extract_build_errors(
    output: str,
    max_entries: int = 5,
    summary_lines: int = 20,
) -> BuildErrorReport:
    """Classify the captured output of a failed build.

    Every line carrying a compiler error marker contributes its context
    (one line before, two after) as an entry.  Identical entries collapse
    into one.  The ``** BUILD FAILED **`` section, up to *summary_lines*
    lines after the marker, is kept separately as the failure summary.
    """
    lines = output.split("\n")
    entries: list[str] = []
    seen: set[str] = set()
    failure_start: int | None = None

    for i, line in enumerate(lines):
        if ERROR_MARKER in line and WARNING_MARKER not in line:
            context = "\n".join(lines[max(0, i - 1): i + 3]).strip("\n")
            if context not in seen:
                seen.add(context)
                entries.append(context)
        if failure_start is None and BUILD_FAILED_MARKER in line:
            failure_start = i

    failure_summary = ""
    if failure_start is not None:
        section = lines[failure_start: failure_start + 1 + summary_lines]
        failure_summary = "\n".join(section).strip()

    return BuildErrorReport(
        entries=entries,
        failure_summary=failure_summary,
        max_entries=max_entries,
    )


def find_app_bundle(products_dir: Path, scheme: str) -> Path:
    """The ``.app`` bundle in *products_dir*, preferring ``<scheme>.app``.

    Raises:
        ArtifactNotFoundError: If the directory or a bundle is missing.
    """
    if not products_dir.is_dir():
        raise ArtifactNotFoundError(f"Build directory not found: {products_dir}")
    apps = sorted(p for p in products_dir.iterdir() if p.suffix == ".app")
    if not apps:
        raise ArtifactNotFoundError(f"No .app bundle found in {products_dir}")
    for app in apps:
        if app.stem == scheme:
            return app
    return apps[0]


def read_bundle_identifier(app_path: Path) -> str:
    """``CFBundleIdentifier`` from the bundle's ``Info.plist``."""
    plist_path = app_path / "Info.plist"
    try:
        with plist_path.open("rb") as fh:
            info = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError) as exc:
        raise ArtifactNotFoundError(f"Could not read {plist_path}: {exc}") from exc
    bundle_id = info.get("CFBundleIdentifier") if isinstance(info, dict) else None
    if not bundle_id:
        raise ArtifactNotFoundError(f"No CFBundleIdentifier in {plist_path}")
    return str(bundle_id)


# ---------------------------------------------------------------------------
# BuildRunner
# ---------------------------------------------------------------------------


class BuildRunner:
    """Runs xcodebuild for a :class:`BuildRequest` and launches the result."""

    def __init__(
        self,
        config: ToolchainConfig | None = None,
        resolver: TargetResolver | None = None,
    ) -> None:
        self.config = config or ToolchainConfig()
        self.resolver = resolver or TargetResolver(self.config)

    def build_command(self, request: BuildRequest) -> list[str]:
        project = request.project
        cmd = [
            self.config.xcodebuild_binary,
            project.container_flag, str(project.path),
            "-scheme", request.scheme,
            "-destination", request.destination.specifier(),
            "-configuration", request.configuration,
            "clean", "build",
            f"SYMROOT={project.project_dir / 'build'}",
        ]
        if request.signing_disabled:
            cmd += [
                "CODE_SIGN_IDENTITY=",
                "CODE_SIGNING_REQUIRED=NO",
                "CODE_SIGNING_ALLOWED=NO",
            ]
        return cmd

    async def compile(
        self,
        request: BuildRequest,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[str, str]:
        """Run the build, streaming output, and return ``(stdout, stderr)``.

        Progress lines on stdout are handed to *on_progress*.  Stderr lines
        are echoed unless they are toolchain warnings.

        Raises:
            ToolchainInvocationError: If xcodebuild cannot be started.
            BuildFailedError: If xcodebuild exits non-zero.
        """
        cmd = self.build_command(request)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ToolchainInvocationError(
                f"Build process error: could not start '{cmd[0]}' ({exc})",
                command=" ".join(cmd),
            ) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def _pump_stdout() -> None:
            assert process.stdout is not None  # guaranteed by PIPE
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                stdout_lines.append(line)
                if on_progress is not None and is_progress_line(line):
                    on_progress(line.strip())

        async def _pump_stderr() -> None:
            assert process.stderr is not None  # guaranteed by PIPE
            async for raw in process.stderr:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                stderr_lines.append(line)
                if line.strip() and WARNING_MARKER not in line:
                    print_dim(line)

        await asyncio.gather(_pump_stdout(), _pump_stderr())
        exit_code = await process.wait()

        stdout = "\n".join(stdout_lines)
        stderr = "\n".join(stderr_lines)

        if exit_code != 0:
            report = extract_build_errors(
                stdout + "\n" + stderr,
                max_entries=self.config.max_reported_errors,
                summary_lines=self.config.failure_summary_lines,
            )
            raise BuildFailedError(
                f"Build failed with exit code {exit_code}",
                report=report,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
            )

        return stdout, stderr

    async def install_and_launch(self, request: BuildRequest) -> bool:
        """Install and launch the built app on a simulator.

        Physical devices are left to xcodebuild, so nothing happens for
        them and ``False`` is returned.

        Raises:
            ArtifactNotFoundError: If the app bundle or its identifier is missing.
            ToolchainError: If the simulator is gone or simctl fails.
        """
        destination = request.destination
        if not isinstance(destination, EmulatedDestination):
            return False

        app_path = find_app_bundle(request.products_dir, request.scheme)
        udid = await self._resolve_simulator_udid(destination)

        await self._simctl("install", udid, str(app_path))
        bundle_id = read_bundle_identifier(app_path)
        await self._simctl("launch", udid, bundle_id)
        return True

    async def build_and_run(
        self,
        request: BuildRequest,
        on_progress: ProgressCallback | None = None,
    ) -> BuildOutcome:
        """Compile *request*, then install and launch it.

        Returns a failed outcome (with its error report) when compilation
        fails.  Install/launch problems become warnings on a successful
        outcome.

        Raises:
            ToolchainInvocationError: If xcodebuild cannot be started.
        """
        start = time.monotonic()
        try:
            stdout, stderr = await self.compile(request, on_progress)
        except BuildFailedError as exc:
            outcome = BuildOutcome(
                succeeded=False,
                request=request,
                exit_code=exc.exit_code,
                report=exc.report,
                stdout=exc.stdout,
                stderr=exc.stderr,
                duration_seconds=time.monotonic() - start,
            )
            self._display_result(outcome)
            return outcome

        outcome = BuildOutcome(
            succeeded=True,
            request=request,
            exit_code=0,
            stdout=stdout,
            stderr=stderr,
        )
        try:
            outcome.launched = await self.install_and_launch(request)
        except (ArtifactNotFoundError, ToolchainError) as exc:
            outcome.warnings.append(str(exc))
            print_warning(
                f"Note: App built successfully but launch may have failed: {exc}"
            )
        outcome.duration_seconds = time.monotonic() - start

        self._display_result(outcome)
        return outcome

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_simulator_udid(self, destination: EmulatedDestination) -> str:
        """Look the simulator up again in a fresh listing.

        The selected id wins when it is still listed; otherwise the first
        simulator with the same name (same runtime preferred) is used.
        """
        simulators = await self.resolver.list_simulators()
        for sim in simulators:
            if sim.udid == destination.udid:
                return sim.udid
        same_name = [s for s in simulators if s.name == destination.name]
        for sim in same_name:
            if sim.version == destination.version:
                return sim.udid
        if same_name:
            return same_name[0].udid
        raise ToolchainCommandError(
            f"Simulator '{destination.name}' is no longer available"
        )

    async def _simctl(self, *args: str) -> str:
        cmd = [self.config.xcrun_binary, "simctl", *args]
        code, stdout, stderr = await run_command(cmd, timeout=self.config.list_timeout)
        if code != 0:
            raise ToolchainCommandError(
                f"simctl {args[0]} failed: {stderr or f'exit code {code}'}",
                command=" ".join(cmd),
                stderr=stderr,
            )
        return stdout

    def _display_result(self, outcome: BuildOutcome) -> None:
        """Display a formatted result summary to the console."""
        if outcome.succeeded:
            style = "green"
            title = "Build Succeeded"
        else:
            style = "red"
            title = "Build Failed"

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="bold")
        table.add_column("Value")

        table.add_row("Scheme", escape(outcome.request.scheme))
        table.add_row("Destination", escape(outcome.request.destination.display()))
        table.add_row("Exit Code", str(outcome.exit_code))
        table.add_row("Duration", f"{outcome.duration_seconds:.1f}s")
        if outcome.succeeded:
            table.add_row("Launched", "yes" if outcome.launched else "no")
        if outcome.warnings:
            table.add_row("Warnings", str(len(outcome.warnings)))

        console.print(Panel(table, title=title, border_style=style))

        if outcome.report is not None:
            console.print(f"[red]{escape(outcome.report.format())}[/red]")
