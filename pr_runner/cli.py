"""Command-line entry point for PR Runner.

Usage::

    pr-runner run
    pr-runner latest [--repo owner/name] [--count 10]
    pr-runner watch --repo owner/name [--interval 60]
    pr-runner logout
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import threading

from rich.markup import escape

from pr_runner.config import Config
from pr_runner.errors import PrRunnerError
from pr_runner.prompts import RichPrompter
from pr_runner.session import Session
from pr_runner.settings import SettingsStore
from pr_runner.utils import console, parse_repo_slug, print_success


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def _repo_slug(value: str) -> str:
    try:
        parse_repo_slug(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pr-runner",
        description="Check out a GitHub pull request and build/run its iOS app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  pr-runner run\n"
            "  pr-runner latest --repo octo/app -n 5\n"
            "  pr-runner watch --repo octo/app --interval 120\n"
        ),
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Select a repository and PR, then build and run it")

    latest = subparsers.add_parser("latest", help="Show the most recently updated PRs")
    latest.add_argument(
        "--repo", "-r",
        type=_repo_slug,
        default=None,
        help="Repository as owner/name (prompted if omitted)",
    )
    latest.add_argument(
        "--count", "-n",
        type=_positive_int,
        default=None,
        help="Number of PRs to show (default: 10)",
    )

    watch = subparsers.add_parser("watch", help="Watch a repository for new PRs")
    watch.add_argument(
        "--repo", "-r",
        type=_repo_slug,
        required=True,
        help="Repository as owner/name",
    )
    watch.add_argument(
        "--interval", "-i",
        type=_positive_int,
        default=None,
        help="Seconds between checks (default: 60)",
    )

    subparsers.add_parser("logout", help="Remove the saved GitHub token")

    return parser


async def _dispatch(session: Session, args: argparse.Namespace) -> None:
    # asyncio.run only cancels the main task on Ctrl-C, which a blocking
    # prompt never notices. Raise KeyboardInterrupt straight out of input().
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        session.configure()
        if args.command == "latest":
            await session.latest(args.repo, args.count)
        elif args.command == "watch":
            await session.watch(args.repo, args.interval)
        else:
            await session.run()
    finally:
        session.teardown()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``pr-runner``."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"
    args.command = command

    try:
        config = Config.from_env()
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {escape(str(exc))}")
        sys.exit(1)
    settings = SettingsStore(config.settings_path)

    if command == "logout":
        try:
            settings.clear()
        except PrRunnerError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}", highlight=False)
            sys.exit(1)
        print_success("Saved GitHub token removed")
        return

    console.print("[bold bright_cyan]iOS PR Runner[/bold bright_cyan]")

    session = Session(config, settings, RichPrompter())
    try:
        asyncio.run(_dispatch(session, args))
    except KeyboardInterrupt:
        if command == "watch":
            console.print("\n[yellow]Stopped watching. Goodbye![/yellow]")
            return
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except (PrRunnerError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}", highlight=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
