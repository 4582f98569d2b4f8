"""Project a committed review queue onto an existing allow-list."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Literal

from corral.core.models import Disposition, ReviewQueue, ServerChoice

Contribution = tuple[Literal["pattern", "command"], str]


@dataclass
class MergeResult:
    added_patterns: list[str] = field(default_factory=list)
    added_commands: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.added_patterns) + len(self.added_commands)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "addedPatterns": list(self.added_patterns),
            "addedCommands": list(self.added_commands),
        }


def contributions(queue: ReviewQueue) -> Iterator[Contribution]:
    """Yield what each approved item would add, in queue order.

    Server-style groupings contribute nothing until a server choice is
    recorded: wholeServer adds the pattern, perCommand adds every match.
    """
    for grouping in queue.groupings:
        if grouping.disposition is not Disposition.APPROVED:
            continue
        if not grouping.is_server_style:
            yield "pattern", grouping.pattern
        elif grouping.server_choice is ServerChoice.WHOLE_SERVER:
            yield "pattern", grouping.pattern
        elif grouping.server_choice is ServerChoice.PER_COMMAND:
            for command in grouping.matches:
                yield "command", command

    for ungrouped in queue.ungrouped:
        if ungrouped.disposition is Disposition.APPROVED:
            yield "command", ungrouped.command


def merge_dispositions(queue: ReviewQueue, existing: Iterable[str]) -> MergeResult:
    """Compute which patterns and commands to add to `existing`.

    Anything already granted, or already added earlier in this merge, is
    skipped. Feeding the output back in as `existing` adds nothing.
    """
    seen = set(existing)
    result = MergeResult()
    for kind, value in contributions(queue):
        if value in seen:
            continue
        seen.add(value)
        if kind == "pattern":
            result.added_patterns.append(value)
        else:
            result.added_commands.append(value)
    return result
