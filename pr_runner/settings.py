"""Persistent storage for the GitHub credential.

The store is a single JSON object in a user-private directory.  The
directory is created with mode ``0700`` and the file is written with mode
``0600``.  A missing or unreadable file behaves as "nothing saved".
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from pr_runner.errors import SettingsError
from pr_runner.utils import print_warning


class StoredSettings(BaseModel):
    """On-disk shape of the settings file."""

    github_token: str | None = Field(default=None, alias="githubToken")

    model_config = {"populate_by_name": True}


class SettingsStore:
    """Reads and writes the stored GitHub token."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _ensure_dir(self) -> None:
        directory = self.path.parent
        if not directory.exists():
            directory.mkdir(parents=True, mode=0o700)

    def _read(self) -> StoredSettings:
        if not self.path.exists():
            return StoredSettings()
        try:
            raw = self.path.read_text(encoding="utf-8")
            return StoredSettings.model_validate_json(raw)
        except (OSError, ValueError, ValidationError) as exc:
            print_warning(f"Ignoring unreadable settings file {self.path}: {exc}")
            return StoredSettings()

    def _write(self, settings: StoredSettings) -> None:
        self._ensure_dir()
        content = settings.model_dump_json(by_alias=True, exclude_none=True, indent=2)
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            # O_CREAT only applies the mode to new files
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise SettingsError(f"Could not write settings file {self.path}: {exc}") from exc

    def get(self) -> str | None:
        """Return the stored token, or ``None`` if nothing usable is saved."""
        token = self._read().github_token
        return token or None

    def set(self, token: str) -> None:
        settings = self._read()
        settings.github_token = token
        self._write(settings)

    def clear(self) -> None:
        settings = self._read()
        settings.github_token = None
        self._write(settings)
