"""
Terminal front end for a review session.

Keys:

    a        approve (not for server-style groupings)
    1 / 2    server-style: approve whole server / individual commands
    d        deny
    s        skip (back to undecided)
    n / p    next / previous
    q        commit and save
    Ctrl+C   abandon without saving
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from corral.core.models import Disposition, Grouping, ReviewQueue, SafetyCategory
from corral.core.review import Action, ReviewItem, ReviewSession
from corral.core.settings import load_review, save_review

CTRL_C = "\x03"
COMMIT_KEY = "q"

KEYMAP: dict[str, Action] = {
    "a": Action.APPROVE,
    "1": Action.APPROVE_WHOLE_SERVER,
    "2": Action.APPROVE_INDIVIDUAL,
    "d": Action.DENY,
    "s": Action.SKIP,
    "n": Action.NEXT,
    "p": Action.PREVIOUS,
}

_CATEGORY_LABELS = {
    SafetyCategory.SAFE_TO_WILDCARD: "[green]Safe[/green]",
    SafetyCategory.MAYBE_SAFE: "[yellow]Maybe safe[/yellow]",
    SafetyCategory.NEVER_WILDCARD: "[red]Dangerous[/red]",
    SafetyCategory.MCP_SERVER: "[cyan]Tool server[/cyan]",
}

_STATUS_LABELS = {
    Disposition.APPROVED: "[green]APPROVED[/green]",
    Disposition.DENIED: "[red]DENIED[/red]",
    Disposition.UNDECIDED: "[dim]PENDING[/dim]",
}


def read_key() -> str:
    """Read a single keypress from stdin. Raises EOFError when input ends."""
    if not sys.stdin.isatty():
        ch = sys.stdin.read(1)
        if not ch:
            raise EOFError
        return ch

    import termios
    import tty

    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        return sys.stdin.read(1)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


# === Rendering ===


def _status(item: ReviewItem) -> str:
    data = item.data
    if isinstance(data, Grouping) and data.server_choice is not None:
        return f"[green]APPROVED ({data.server_choice.value})[/green]"
    return _STATUS_LABELS[item.disposition]


def render_item(console: Console, session: ReviewSession) -> None:
    item = session.current
    if item is None:
        return
    data = item.data

    console.rule(f"Review ({session.cursor + 1}/{len(session)})")
    console.print(f"Type: {_CATEGORY_LABELS[data.safety_category]}")

    if isinstance(data, Grouping):
        console.print(f"Confidence: {data.confidence.value}")
        if item.is_server_style:
            server = data.pattern.removeprefix("mcp__")
            console.print(f"Server: [bold]{escape(server)}[/bold]")
            console.print(f"\n[bold][1][/bold] Approve entire server: {escape(data.pattern)}")
            console.print(f"[bold][2][/bold] Approve {len(data.matches)} individual command(s)")
        else:
            console.print(f"\nPattern: [bold]{escape(data.pattern)}[/bold]")
        console.print(f"\nReasoning: {escape(data.reasoning)}\n")

        table = Table(title=f"Matches ({len(data.matches)})", show_header=False)
        table.add_column("#", style="dim", justify="right")
        table.add_column("Command")
        for i, match in enumerate(data.matches, 1):
            table.add_row(str(i), escape(match))
        console.print(table)
    else:
        recommended = "[green]yes[/green]" if data.recommended else "[red]no[/red]"
        console.print(f"Recommended: {recommended}")
        console.print(f"\nCommand: [bold]{escape(data.command)}[/bold]")
        console.print(f"\nReasoning: {escape(data.reasoning)}")

    console.print(f"\nStatus: {_status(item)}")
    console.rule()
    if item.is_server_style:
        console.print("\\[1] Server  \\[2] Individual  \\[d] Deny  \\[s] Skip")
    else:
        console.print("\\[a] Approve  \\[d] Deny  \\[s] Skip")
    console.print("\\[n] Next  \\[p] Previous  \\[q] Save & quit  Ctrl+C abandon")


def render_summary(console: Console, queue: ReviewQueue, path: Path) -> None:
    items = [*queue.groupings, *queue.ungrouped]
    table = Table(title="Review saved")
    table.add_column("Decision")
    table.add_column("Count", justify="right")
    for disposition in Disposition:
        count = sum(1 for i in items if i.disposition is disposition)
        table.add_row(_STATUS_LABELS[disposition], str(count))
    console.print(table)
    console.print(f"File: {escape(str(path))}")
    console.print(f"Next step: corral apply {escape(path.name)}")


# === Loop ===


def run_review(
    path: Path,
    console: Console | None = None,
    read_key: Callable[[], str] = read_key,
) -> ReviewQueue | None:
    """Review a file interactively.

    Returns the committed queue (already saved back to `path`), or None if
    the operator abandoned the review.
    """
    console = console or Console()
    session = ReviewSession(load_review(path))

    if not len(session):
        console.print("No items to review.")
        return None

    while True:
        console.clear()
        render_item(console, session)
        try:
            key = read_key()
        except (KeyboardInterrupt, EOFError):
            key = CTRL_C

        if key == CTRL_C:
            console.print("\n[yellow]Review abandoned; nothing saved.[/yellow]")
            return None
        key = key.lower()
        if key == COMMIT_KEY:
            break
        action = KEYMAP.get(key)
        if action is not None:
            session.apply(action)

    queue = session.commit()
    save_review(path, queue)
    console.clear()
    render_summary(console, queue, path)
    return queue
