"""PR Runner Xcode module.

Everything that talks to the Xcode toolchain: scheme and destination
enumeration, the build/install/launch runner, and the operator-driven retry
loop around it.

Key classes:
    TargetResolver   - Schemes, simulators and attached devices
    BuildRunner      - xcodebuild execution, error classification, simctl launch
    BuildRetryLoop   - retry / reselect / exit state machine
"""

from .build_runner import BuildRunner, extract_build_errors
from .models import (
    BuildErrorReport,
    BuildOutcome,
    BuildRequest,
    Destination,
    EmulatedDestination,
    PhysicalDestination,
    PowerState,
    ProjectDescriptor,
)
from .retry_loop import BuildRetryLoop, BuildRunResult, BuildState, RetryAction
from .targets import TargetResolver

__all__ = [
    # Data model
    "ProjectDescriptor",
    "Destination",
    "EmulatedDestination",
    "PhysicalDestination",
    "PowerState",
    "BuildRequest",
    "BuildOutcome",
    "BuildErrorReport",
    # Target resolution
    "TargetResolver",
    # Build runner
    "BuildRunner",
    "extract_build_errors",
    # Retry loop
    "BuildRetryLoop",
    "BuildRunResult",
    "BuildState",
    "RetryAction",
]
