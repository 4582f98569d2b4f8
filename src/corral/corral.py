"""
Corral - review and approve Claude Code permission grants in bulk.

Usage:
    corral list               Show active sessions grouped by project
    corral collect [--reset]  Collect grants and propose groupings
    corral review <file>      Review a proposal interactively
    corral apply <file>       Add approved items to ~/.claude/settings.json
    corral help               Show this message
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from corral.core.config import Config, configure_logging, load_config
from corral.core.errors import CorralError
from corral.core.history import append_history
from corral.core.models import ReviewQueue, ReviewStatistics
from corral.core.settings import (
    RunState,
    apply_merge,
    load_review,
    read_state,
    save_review,
    write_state,
)
from corral.proposer import propose_groupings
from corral.review_ui import run_review
from corral.sessions import aggregate_commands, discover_sessions, format_sessions, get_filter_date

console = Console()


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _review_path(config: Config, name: str) -> Path:
    """Review files are looked up in review_dir first, then as given."""
    candidate = config.review_dir / name
    return candidate if candidate.exists() else Path(name)


# === Commands ===


def cmd_list(config: Config, args: argparse.Namespace) -> int:
    state = read_state(config.state_file)
    filter_date = get_filter_date(state.last_collect_run, config.lookback_days)
    projects = discover_sessions(config.projects_dir, filter_date)
    console.print(format_sessions(projects), markup=False, highlight=False, soft_wrap=True)
    return 0


def cmd_collect(config: Config, args: argparse.Namespace) -> int:
    state = read_state(config.state_file)
    if args.reset:
        state.last_collect_run = None
    filter_date = get_filter_date(state.last_collect_run, config.lookback_days)
    console.print(f"Analyzing sessions since {filter_date.isoformat()}")

    projects = discover_sessions(config.projects_dir, filter_date)
    sessions = sum(len(p.sessions) for p in projects.values())
    console.print(
        f"Found {_plural(len(projects), 'project')} with {_plural(sessions, 'active session')}"
    )

    commands = aggregate_commands(projects).allowed
    console.print(f"Extracted {_plural(len(commands), 'unique command')}")
    if not commands:
        console.print("No commands found to analyze.")
        return 0

    with console.status(f"Asking {config.model} for groupings..."):
        result, validation = propose_groupings(commands, config)

    for pattern, rejection in validation.rejected:
        console.print(f"[yellow]Rejected[/yellow] {escape(pattern)}: {escape(rejection.reason)}")
    for warning in validation.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    now = datetime.now(timezone.utc)
    queue = ReviewQueue(
        date=now.isoformat(),
        groupings=result.groupings,
        ungrouped=result.ungrouped,
        statistics=ReviewStatistics(
            total_projects=len(projects),
            total_commands=len(commands),
            grouped=result.statistics.grouped,
            ungrouped=result.statistics.ungrouped,
        ),
    )
    path = config.review_dir / f"review-{now:%Y-%m-%dT%H-%M-%S}.json"
    save_review(path, queue)
    write_state(config.state_file, RunState(now))

    console.print(f"Suggested {_plural(len(result.groupings), 'grouping')}")
    console.print(f"Flagged {_plural(len(result.ungrouped), 'command')} for individual review")
    console.print(f"Review file created: {path}")
    console.print(f"Next: corral review {path.name}, then corral apply {path.name}")
    return 0


def cmd_review(config: Config, args: argparse.Namespace) -> int:
    run_review(_review_path(config, args.file), console)
    return 0


def cmd_apply(config: Config, args: argparse.Namespace) -> int:
    queue = load_review(_review_path(config, args.file))
    result = apply_merge(config.settings_file, queue)
    if not result.total:
        console.print("No new commands were approved, or all were already in settings.")
        return 0

    console.print(f"Added {_plural(len(result.added_patterns), 'pattern')}")
    console.print(f"Added {_plural(len(result.added_commands), 'individual command')}")
    append_history(config.history_file, queue, result)
    console.print(f"Updated {config.settings_file}")
    console.print(f"History: {config.history_file}")
    return 0


# === Entry point ===


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="corral",
        description="Review and approve Claude Code permission grants in bulk.",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("list", help="show active sessions grouped by project")
    collect = sub.add_parser("collect", help="collect grants and propose groupings")
    collect.add_argument(
        "-r", "--reset", action="store_true", help="ignore the last run and rescan the lookback window"
    )
    review = sub.add_parser("review", help="review a proposal interactively")
    review.add_argument("file")
    apply = sub.add_parser("apply", help="apply approved items to settings")
    apply.add_argument("file")
    sub.add_parser("help", help="show this message")
    return parser


COMMANDS = {
    "list": cmd_list,
    "collect": cmd_collect,
    "review": cmd_review,
    "apply": cmd_apply,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    try:
        config = load_config(Path.cwd())
        configure_logging(config)
        return COMMANDS[args.command](config, args)
    except (CorralError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
