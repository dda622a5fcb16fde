"""Operator prompts.

The session driver and the retry loop only talk to the operator through a
:class:`Prompter`, so flows can be driven from tests with scripted answers.
:class:`RichPrompter` is the terminal implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt

from pr_runner.utils import console as default_console

T = TypeVar("T")


class Prompter(ABC):
    """Asks the operator to pick, confirm, or type something."""

    @abstractmethod
    def select(self, message: str, choices: Sequence[tuple[str, T]]) -> T:
        """Return the value of the choice the operator picked.

        *choices* is a non-empty sequence of ``(label, value)`` pairs.
        """

    @abstractmethod
    def confirm(self, message: str, default: bool = True) -> bool:
        ...

    @abstractmethod
    def secret(self, message: str) -> str:
        """Hidden input; never returns an empty string."""


class RichPrompter(Prompter):
    """Numbered-menu prompts rendered with Rich."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or default_console

    def select(self, message: str, choices: Sequence[tuple[str, T]]) -> T:
        if not choices:
            raise ValueError("select() needs at least one choice")
        self.console.print(f"[bold]{escape(message)}[/bold]")
        for index, (label, _) in enumerate(choices, 1):
            self.console.print(f"  [cyan]{index:>2}[/cyan]. {escape(label)}", highlight=False)
        picked = IntPrompt.ask(
            "Choice",
            console=self.console,
            choices=[str(i) for i in range(1, len(choices) + 1)],
            show_choices=False,
            default=1,
        )
        return choices[picked - 1][1]

    def confirm(self, message: str, default: bool = True) -> bool:
        return Confirm.ask(f"[bold]{escape(message)}[/]", console=self.console, default=default)

    def secret(self, message: str) -> str:
        while True:
            value = Prompt.ask(escape(message), console=self.console, password=True).strip()
            if value:
                return value
            self.console.print("[red]A value is required.[/red]")
