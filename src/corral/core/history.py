"""Markdown audit trail of applied reviews."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from corral.core.merge import MergeResult
from corral.core.models import Disposition, ReviewQueue

HISTORY_HEADER = "# Corral - Command Approval History\n\n"


def _reasoning_for(queue: ReviewQueue, command: str) -> str | None:
    for ungrouped in queue.ungrouped:
        if ungrouped.command == command:
            return ungrouped.reasoning
    # Per-command approvals of a server grouping
    for grouping in queue.groupings:
        if command in grouping.matches:
            return grouping.reasoning
    return None


def format_entry(queue: ReviewQueue, result: MergeResult, now: datetime | None = None) -> str:
    """Render one history entry for an applied review."""
    now = now or datetime.now()
    lines = [f"## {now:%Y-%m-%d %H:%M:%S}", ""]

    if result.added_patterns:
        lines += ["### Approved Groupings", ""]
        by_pattern = {g.pattern: g for g in queue.groupings}
        for pattern in result.added_patterns:
            grouping = by_pattern.get(pattern)
            if grouping is None:
                continue
            lines.append(f"- `{pattern}` - {grouping.reasoning}")
            if grouping.matches:
                replaced = ", ".join(f"`{m}`" for m in grouping.matches)
                lines.append(f"  - Replaced: {replaced}")
            lines.append("")

    if result.added_commands:
        lines += ["### Approved Individual Commands", ""]
        for command in result.added_commands:
            reasoning = _reasoning_for(queue, command)
            lines.append(f"- `{command}` - {reasoning}" if reasoning else f"- `{command}`")
        lines.append("")

    items = [*queue.groupings, *queue.ungrouped]
    denied = sum(1 for i in items if i.disposition is Disposition.DENIED)
    skipped = sum(1 for i in items if i.disposition is Disposition.UNDECIDED)

    lines += [
        "### Statistics",
        "",
        f"- Total commands reviewed: {queue.statistics.total_commands}",
        f"- Grouped patterns: {len(queue.groupings)}",
        f"- Individual commands: {len(queue.ungrouped)}",
        f"- Approved (patterns): {len(result.added_patterns)}",
        f"- Approved (individual): {len(result.added_commands)}",
        f"- Denied/rejected: {denied}",
        f"- Skipped/not reviewed: {skipped}",
        f"- Projects analyzed: {queue.statistics.total_projects}",
        "",
        "---",
        "",
    ]
    return "\n".join(lines) + "\n"


def append_history(
    history_file: Path, queue: ReviewQueue, result: MergeResult, now: datetime | None = None
) -> None:
    """Append an entry to the history file, creating it with a header if needed."""
    history_file.parent.mkdir(parents=True, exist_ok=True)
    is_new = not history_file.exists()
    with history_file.open("a", encoding="utf-8") as f:
        if is_new:
            f.write(HISTORY_HEADER)
        f.write(format_entry(queue, result, now))
