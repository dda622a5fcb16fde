"""Scheme, simulator and device enumeration via the Xcode toolchain.

Parses three kinds of toolchain output:

- ``xcodebuild -list -json`` for the schemes of a project or workspace
- ``xcrun simctl list devices available --json`` for simulators
- ``xcrun xctrace list devices`` (line-oriented) for attached devices

Results are never cached; callers re-query whenever a selection step is
re-entered so simulator state changes are picked up.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

from pr_runner.config import ToolchainConfig
from pr_runner.errors import NoSchemesError, ToolchainCommandError
from pr_runner.utils import print_warning, run_command
from pr_runner.xcode.models import (
    EmulatedDestination,
    PhysicalDestination,
    PowerState,
    ProjectDescriptor,
)

RUNTIME_PREFIX = "com.apple.CoreSimulator.SimRuntime."

# "<name> (<version>) (<hex id>)"
_DEVICE_LINE = re.compile(r"^(.+?)\s+\((\d+\.\d+(?:\.\d+)?)\)\s+\(([A-Fa-f0-9-]+)\)$")

_ALREADY_BOOTED = "Unable to boot device in current state: Booted"


# ---------------------------------------------------------------------------
# Output parsers
# ---------------------------------------------------------------------------


def _load_json_output(raw: str) -> Any:
    """Parse JSON that may be preceded by toolchain chatter.

    xcodebuild sometimes prints warnings before the JSON document, so when a
    direct parse fails the text from the first ``{`` onward is tried.
    """
    raw = raw.strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    start = raw.find("{")
    if start == -1:
        raise ValueError("no JSON object in toolchain output")
    return json.loads(raw[start:])


def parse_schemes(raw: str) -> list[str]:
    """Scheme names from ``xcodebuild -list -json`` output, in listed order."""
    data = _load_json_output(raw)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    container = data.get("project") or data.get("workspace") or {}
    return [str(s) for s in container.get("schemes", [])]


def runtime_label(runtime_id: str) -> str:
    """``com.apple.CoreSimulator.SimRuntime.iOS-17-0`` -> ``iOS 17 0``."""
    return runtime_id.removeprefix(RUNTIME_PREFIX).replace("-", " ")


def _natural_key(text: str) -> tuple:
    """Split digits out so ``iOS 17`` orders after ``iOS 9``."""
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in re.split(r"(\d+)", text)
        if part
    )


def sort_simulators(simulators: list[EmulatedDestination]) -> list[EmulatedDestination]:
    """Newest runtime first, then name ascending."""
    by_name = sorted(simulators, key=lambda s: s.name.lower())
    return sorted(by_name, key=lambda s: _natural_key(s.version), reverse=True)


def parse_simulators(raw: str) -> list[EmulatedDestination]:
    """Available simulators from ``simctl list devices --json``, sorted."""
    data = _load_json_output(raw)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    simulators: list[EmulatedDestination] = []
    for runtime, devices in (data.get("devices") or {}).items():
        label = runtime_label(runtime)
        for device in devices:
            if not device.get("isAvailable", False):
                continue
            simulators.append(
                EmulatedDestination(
                    name=device.get("name", ""),
                    udid=device.get("udid", ""),
                    version=label,
                    state=PowerState.parse(device.get("state", "")),
                )
            )
    return sort_simulators(simulators)


def parse_devices(raw: str) -> list[PhysicalDestination]:
    """Physical devices from ``xctrace list devices``.

    Lines that do not match exactly, or that mention a simulator, are
    dropped.
    """
    devices: list[PhysicalDestination] = []
    for line in raw.splitlines():
        line = line.strip()
        if "Simulator" in line:
            continue
        match = _DEVICE_LINE.match(line)
        if not match:
            continue
        devices.append(
            PhysicalDestination(
                name=match.group(1).strip(),
                version=match.group(2),
                udid=match.group(3),
            )
        )
    return devices


# ---------------------------------------------------------------------------
# TargetResolver
# ---------------------------------------------------------------------------


class TargetResolver:
    """Lists schemes and run destinations through the toolchain."""

    def __init__(self, config: ToolchainConfig | None = None) -> None:
        self.config = config or ToolchainConfig()

    async def list_schemes(self, project: ProjectDescriptor) -> list[str]:
        """Buildable schemes of *project*.

        Raises:
            ToolchainCommandError: If xcodebuild fails or prints unusable output.
            NoSchemesError: If the project lists no schemes.
        """
        cmd = [
            self.config.xcodebuild_binary,
            project.container_flag, str(project.path),
            "-list", "-json",
        ]
        code, stdout, stderr = await run_command(cmd, timeout=self.config.list_timeout)
        if code != 0:
            raise ToolchainCommandError(
                f"Failed to get schemes: {stderr or f'exit code {code}'}",
                command=" ".join(cmd),
                stderr=stderr,
            )
        try:
            schemes = parse_schemes(stdout)
        except ValueError as exc:
            raise ToolchainCommandError(
                f"Failed to get schemes: unreadable output ({exc})",
                command=" ".join(cmd),
            ) from exc
        if not schemes:
            raise NoSchemesError(f"No schemes found in {project.name}")
        return schemes

    async def list_simulators(self) -> list[EmulatedDestination]:
        cmd = [self.config.xcrun_binary, "simctl", "list", "devices", "available", "--json"]
        code, stdout, stderr = await run_command(cmd, timeout=self.config.list_timeout)
        if code != 0:
            raise ToolchainCommandError(
                f"Failed to get simulators: {stderr or f'exit code {code}'}",
                command=" ".join(cmd),
                stderr=stderr,
            )
        try:
            return parse_simulators(stdout)
        except ValueError as exc:
            raise ToolchainCommandError(
                f"Failed to get simulators: unreadable output ({exc})",
                command=" ".join(cmd),
            ) from exc

    async def list_devices(self) -> list[PhysicalDestination]:
        """Attached devices.  Best effort: a failing listing yields ``[]``."""
        cmd = [self.config.xcrun_binary, "xctrace", "list", "devices"]
        code, stdout, stderr = await run_command(cmd, timeout=self.config.list_timeout)
        if code != 0:
            print_warning(f"Could not list devices: {stderr or f'exit code {code}'}")
            return []
        return parse_devices(stdout)

    async def list_destinations(
        self,
    ) -> tuple[list[EmulatedDestination], list[PhysicalDestination]]:
        """``(simulators, devices)``, queried one after the other."""
        simulators = await self.list_simulators()
        devices = await self.list_devices()
        return simulators, devices

    async def boot_simulator(self, simulator: EmulatedDestination) -> None:
        """Boot *simulator* and give it a moment to come up.

        A simulator that is already booted is not an error.
        """
        cmd = [self.config.xcrun_binary, "simctl", "boot", simulator.udid]
        code, _, stderr = await run_command(cmd, timeout=self.config.list_timeout)
        if code != 0:
            if _ALREADY_BOOTED in stderr:
                return
            raise ToolchainCommandError(
                f"Failed to boot simulator {simulator.name}: {stderr}",
                command=" ".join(cmd),
                stderr=stderr,
            )
        if self.config.boot_wait_seconds:
            await asyncio.sleep(self.config.boot_wait_seconds)
