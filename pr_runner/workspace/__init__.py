"""PR Runner workspace module.

Turns a pull request into something buildable on disk.

Key pieces:
    WorkspaceMaterializer - fresh single-branch clone with branch verification
    locate_projects       - Xcode workspace/project discovery
"""

from .locator import EXCLUDED_DIRS, locate_projects
from .materializer import WorkspaceMaterializer

__all__ = [
    "WorkspaceMaterializer",
    "locate_projects",
    "EXCLUDED_DIRS",
]
