"""Main CLI entry point for prharvest."""

import argparse
import logging
import signal
import sys
from datetime import date
from pathlib import Path

import trio
from pydantic import ValidationError
from rich.console import Console

from .checkpoint import CheckpointStore
from .config import GITHUB_TOKEN
from .controller import RunController, RunOutcome
from .errors import (
    CheckpointLockedError,
    ConfigurationError,
    HarvestError,
)
from .github_client import GitHubClient
from .models import RunConfig
from .repo import RepoInfo, get_repo
from .stats import write_stats

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_SUSPENDED = 75  # EX_TEMPFAIL: rerun later to resume
EXIT_INTERRUPTED = 130

logger = logging.getLogger(__name__)


def setup_logging(log_file: Path) -> None:
    """Setup file logging for debugging."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_file, mode="a"),
        ],
        force=True,
    )


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def build_config(args: argparse.Namespace, repo: RepoInfo) -> RunConfig:
    """Validate fetch arguments into a RunConfig."""
    token = args.token or GITHUB_TOKEN
    if not token:
        raise ConfigurationError("GitHub auth required. Set GITHUB_TOKEN or pass --token")
    try:
        return RunConfig(
            owner=repo.owner,
            name=repo.name,
            from_date=args.from_date,
            until_date=args.until_date,
            credential=token,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid run settings: {e.errors()[0]['msg']}") from e


async def _signal_watcher(cancel_scope: trio.CancelScope) -> None:
    """Cancel the run on SIGINT/SIGTERM. The last saved checkpoint stays valid."""
    with trio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signal_aiter:
        async for sig in signal_aiter:
            logger.info(f"Signal {sig} received, stopping...")
            cancel_scope.cancel()
            break


async def run_fetch(
    config: RunConfig,
    repo: RepoInfo,
    store: CheckpointStore,
    console: Console,
) -> RunOutcome | None:
    """Run the harvest. Returns None when interrupted by a signal."""
    outcome = None
    token = config.credential.get_secret_value() if config.credential else None

    async with GitHubClient(config.owner, config.name, token=token) as client:
        controller = RunController(client, store, repo.report_file, console)
        try:
            async with trio.open_nursery() as nursery:
                nursery.start_soon(_signal_watcher, nursery.cancel_scope)
                outcome = await controller.run(config)
                nursery.cancel_scope.cancel()
        except ExceptionGroup as group:
            if len(group.exceptions) == 1:
                raise group.exceptions[0] from None
            raise
        logger.info(f"Run finished in phase {controller.phase.value}, {client.request_count} API requests")

    return outcome


def report_outcome(outcome: RunOutcome | None, console: Console) -> int:
    """Print the run result and map it to an exit code."""
    if outcome is None:
        console.print("\n[bold yellow]Interrupted - progress saved[/]")
        console.print("[dim]Run again to resume from checkpoint[/]")
        return EXIT_INTERRUPTED

    if outcome.suspended:
        console.print(f"\n[bold yellow]Suspended: {outcome.reason}[/]")
        console.print(f"  Processed: {outcome.processed} PRs, {outcome.remaining} remaining")
        if outcome.reset_at:
            console.print(f"  Quota resets at {outcome.reset_at.astimezone():%H:%M:%S}")
        console.print("[dim]Run again to resume from checkpoint[/]")
        return EXIT_SUSPENDED

    console.print(f"\n[bold green]Success: {outcome.processed} PRs collected[/]")
    if outcome.skipped:
        console.print(f"  Skipped (no longer accessible): {outcome.skipped}")
    console.print(f"  Report: {outcome.report_path}")
    return EXIT_OK


def cmd_fetch(args: argparse.Namespace, console: Console) -> int:
    try:
        repo = get_repo(args.repo)
        config = build_config(args, repo)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/]")
        return EXIT_USAGE

    setup_logging(repo.log_file)
    console.print(
        f"[bold]Harvesting {config.full_name} merged PRs from {config.from_date} to {config.until_date}[/]"
    )
    console.print("[dim]Press Ctrl+C to stop (progress is saved)[/]\n")

    store = CheckpointStore(repo.checkpoint_file)
    try:
        with store.lock():
            outcome = trio.run(run_fetch, config, repo, store, console)
    except CheckpointLockedError as e:
        console.print(f"[red]Error: {e}[/]")
        return EXIT_USAGE
    except HarvestError as e:
        logger.error(f"Run failed: {type(e).__name__}: {e}")
        console.print(f"[red]Error: {type(e).__name__}: {e}[/]")
        console.print(f"[dim]Checkpoint kept at {repo.checkpoint_file}[/]")
        return EXIT_ERROR

    return report_outcome(outcome, console)


def cmd_stats(args: argparse.Namespace, console: Console) -> int:
    try:
        repo = get_repo(args.repo)
        stats = write_stats(repo.report_file, repo.stats_file, repo.details_file)
    except HarvestError as e:
        console.print(f"[red]Error: {e}[/]")
        return EXIT_ERROR

    console.print(f"[green]Processed {stats['summary']['merged']} PRs[/]")
    console.print(f"  Stats: {repo.stats_file}")
    console.print(f"  Details: {repo.details_file}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prharvest",
        description="Harvest merged pull request metrics from GitHub",
        epilog="Run 'prharvest <command> --help' for more information on a command.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    fetch_parser = subparsers.add_parser(
        "fetch",
        help="Fetch merged PRs in a date range (resumable)",
        description="Discover and enrich merged PRs; rerun to resume after a suspension.",
    )
    fetch_parser.add_argument(
        "--repo",
        "-r",
        type=str,
        default=None,
        help="Repository as owner/name (default: REPO_OWNER/REPO_NAME env or git origin)",
    )
    fetch_parser.add_argument(
        "--from",
        "-f",
        dest="from_date",
        type=_iso_date,
        required=True,
        help="First merge date to include (YYYY-MM-DD)",
    )
    fetch_parser.add_argument(
        "--until",
        "-u",
        dest="until_date",
        type=_iso_date,
        required=True,
        help="Last merge date to include (YYYY-MM-DD, inclusive)",
    )
    fetch_parser.add_argument(
        "--token",
        "-t",
        type=str,
        default=None,
        help="GitHub personal access token (default: GITHUB_TOKEN)",
    )

    stats_parser = subparsers.add_parser(
        "stats",
        help="Compute dashboard statistics from the fetched report",
        description="Aggregate monthly stats, rankings and outliers from data.json.",
    )
    stats_parser.add_argument(
        "--repo",
        "-r",
        type=str,
        default=None,
        help="Repository as owner/name (default: REPO_OWNER/REPO_NAME env or git origin)",
    )
    return parser


def main(argv: list[str] | None = None, console: Console | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = console or Console()

    if args.command == "fetch":
        return cmd_fetch(args, console)
    if args.command == "stats":
        return cmd_stats(args, console)

    parser.print_help()
    return EXIT_OK


def cli():
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
