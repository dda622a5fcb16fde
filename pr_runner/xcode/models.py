"""Data model shared by the target resolver, build runner and retry loop.

Everything here lives for one process at most.  Descriptors and
destinations are re-queried every time a selection step is re-entered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

GENERIC_FAILURE_MESSAGE = (
    "Build failed but no specific errors were captured. "
    "The build output may contain more details."
)


@dataclass(frozen=True)
class ProjectDescriptor:
    """An ``.xcworkspace`` or ``.xcodeproj`` found in a checkout."""

    name: str
    path: Path
    is_workspace: bool

    @property
    def container_flag(self) -> str:
        """The xcodebuild flag that selects this kind of container."""
        return "-workspace" if self.is_workspace else "-project"

    @property
    def project_dir(self) -> Path:
        return self.path.parent


class PowerState(str, Enum):
    """Simulator power state as reported by ``simctl``."""

    STOPPED = "Shutdown"
    BOOTED = "Booted"
    BOOTING = "Booting"
    SHUTTING_DOWN = "Shutting Down"

    @classmethod
    def parse(cls, raw: str) -> "PowerState":
        for state in cls:
            if state.value.lower() == (raw or "").strip().lower():
                return state
        return cls.STOPPED


@dataclass(frozen=True)
class Destination:
    """A run target.  ``udid`` is the only value used to address it."""

    name: str
    udid: str
    version: str

    @property
    def is_emulated(self) -> bool:
        return False

    @property
    def platform_dir(self) -> str:
        """Suffix of the ``<Configuration>-<platform>`` build products folder."""
        return "iphoneos"

    def specifier(self) -> str:
        """Value passed to ``xcodebuild -destination``."""
        return f"platform=iOS,id={self.udid}"

    def display(self) -> str:
        return f"{self.name} ({self.version})"


@dataclass(frozen=True)
class PhysicalDestination(Destination):
    """A device attached over USB or the network."""


@dataclass(frozen=True)
class EmulatedDestination(Destination):
    """A simulator.  ``version`` holds the runtime label, e.g. ``iOS 17 0``."""

    state: PowerState = PowerState.STOPPED

    @property
    def is_emulated(self) -> bool:
        return True

    @property
    def is_booted(self) -> bool:
        return self.state is PowerState.BOOTED

    @property
    def platform_dir(self) -> str:
        return "iphonesimulator"

    def specifier(self) -> str:
        return f"platform=iOS Simulator,id={self.udid}"

    def display(self) -> str:
        marker = "booted" if self.is_booted else self.state.value.lower()
        return f"{self.name} ({self.version}) [{marker}]"


@dataclass(frozen=True)
class BuildRequest:
    """One build attempt.  A retry constructs a new request."""

    project: ProjectDescriptor
    scheme: str
    destination: Destination
    configuration: str = "Debug"

    @property
    def signing_disabled(self) -> bool:
        return self.destination.is_emulated

    @property
    def products_dir(self) -> Path:
        """Where the build products for this request land."""
        return (
            self.project.project_dir
            / "build"
            / f"{self.configuration}-{self.destination.platform_dir}"
        )


@dataclass
class BuildErrorReport:
    """Classified compiler errors extracted from a failed build.

    ``entries`` holds every distinct error context in order of appearance;
    only the first ``max_entries`` are shown.
    """

    entries: list[str] = field(default_factory=list)
    failure_summary: str = ""
    max_entries: int = 5

    @property
    def total_distinct(self) -> int:
        return len(self.entries)

    @property
    def shown(self) -> list[str]:
        return self.entries[: self.max_entries]

    @property
    def hidden_count(self) -> int:
        return max(0, self.total_distinct - self.max_entries)

    @property
    def is_generic(self) -> bool:
        """True when neither compiler errors nor a failure summary were found."""
        return not self.entries and not self.failure_summary

    def format(self) -> str:
        parts: list[str] = []
        if self.entries:
            parts.append("Compilation Errors:\n")
            parts.append("\n---\n".join(self.shown))
            if self.hidden_count:
                parts.append(f"\n... and {self.hidden_count} more error(s)")
            parts.append("")
        if self.failure_summary:
            parts.append(self.failure_summary)
        if not parts:
            return GENERIC_FAILURE_MESSAGE
        return "\n".join(parts).strip()


@dataclass
class BuildOutcome:
    """Result of a build attempt plus the install/launch step."""

    succeeded: bool
    request: BuildRequest
    exit_code: int = -1
    report: BuildErrorReport | None = None
    warnings: list[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    launched: bool = False
