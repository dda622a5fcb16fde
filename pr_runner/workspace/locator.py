"""Discovery of Xcode projects and workspaces inside a checkout."""

from __future__ import annotations

from pathlib import Path

from pr_runner.xcode.models import ProjectDescriptor

# Dependency caches, VCS metadata and build output. Build folders often hold
# copies of project files that must not be mistaken for sources.
EXCLUDED_DIRS: frozenset[str] = frozenset(
    {"node_modules", "Pods", ".git", "build", "DerivedData"}
)

WORKSPACE_SUFFIX = ".xcworkspace"
PROJECT_SUFFIX = ".xcodeproj"


def locate_projects(root_dir: str | Path) -> list[ProjectDescriptor]:
    """Find buildable project descriptors under *root_dir*.

    Workspaces and projects are leaves: nothing inside them is scanned.
    When at least one workspace is found only workspaces are returned,
    otherwise every ``.xcodeproj`` found.  Unreadable directories are
    skipped.
    """
    found: list[ProjectDescriptor] = []
    _scan(Path(root_dir), found)

    workspaces = [p for p in found if p.is_workspace]
    if workspaces:
        return workspaces
    return found


def _scan(directory: Path, found: list[ProjectDescriptor]) -> None:
    try:
        children = sorted(directory.iterdir())
    except OSError:
        return

    for child in children:
        if child.name in EXCLUDED_DIRS or child.is_symlink() or not child.is_dir():
            continue
        if child.suffix == WORKSPACE_SUFFIX:
            found.append(ProjectDescriptor(name=child.name, path=child, is_workspace=True))
        elif child.suffix == PROJECT_SUFFIX:
            found.append(ProjectDescriptor(name=child.name, path=child, is_workspace=False))
        else:
            _scan(child, found)
