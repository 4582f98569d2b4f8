"""
Review state machine.

A ReviewSession walks an operator through a review queue one item at a
time. It works on its own copy of the queue; nothing reaches disk until
commit() hands the result back.

Transitions (applied to the item under the cursor):

    approve               not for server-style groupings; approve, advance
    approve_whole_server  server-style only; approve + wholeServer, advance
    approve_individual    server-style only; approve + perCommand, advance
    deny                  deny, clear server choice, advance
    skip                  undecided, clear server choice, advance
    next / previous       move cursor, clamped to [0, N-1]
    commit                freeze and return the queue

Advancing from the last item stays put. Rejected transitions return False
and change nothing.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Literal

import structlog

from corral.core.errors import ReviewClosedError
from corral.core.models import (
    Disposition,
    Grouping,
    ReviewQueue,
    ServerChoice,
    UngroupedCommand,
)

log = structlog.get_logger()


class Action(str, Enum):
    """Operator actions the state machine understands."""

    APPROVE = "approve"
    APPROVE_WHOLE_SERVER = "approve-whole-server"
    APPROVE_INDIVIDUAL = "approve-individual"
    DENY = "deny"
    SKIP = "skip"
    NEXT = "next"
    PREVIOUS = "previous"
    COMMIT = "commit"


@dataclass
class ReviewItem:
    """One entry in the queue, pointing back at its source list."""

    kind: Literal["grouping", "ungrouped"]
    index: int
    data: Grouping | UngroupedCommand

    @property
    def is_server_style(self) -> bool:
        return isinstance(self.data, Grouping) and self.data.is_server_style

    @property
    def disposition(self) -> Disposition:
        return self.data.disposition


class ReviewSession:
    """Drives the review of a single queue."""

    def __init__(self, queue: ReviewQueue) -> None:
        self._queue = copy.deepcopy(queue)
        self.items: list[ReviewItem] = [
            ReviewItem("grouping", i, g) for i, g in enumerate(self._queue.groupings)
        ] + [
            ReviewItem("ungrouped", i, u) for i, u in enumerate(self._queue.ungrouped)
        ]
        self.cursor = self._clamp(queue.cursor)
        self.committed = False

    def __len__(self) -> int:
        return len(self.items)

    @property
    def current(self) -> ReviewItem | None:
        if not self.items:
            return None
        return self.items[self.cursor]

    def _clamp(self, position: int) -> int:
        return max(0, min(position, len(self.items) - 1))

    def _ensure_open(self) -> None:
        if self.committed:
            raise ReviewClosedError("review has already been committed")

    def _advance(self) -> None:
        self.cursor = self._clamp(self.cursor + 1)

    def _decide(self, disposition: Disposition, choice: ServerChoice | None = None) -> bool:
        self._ensure_open()
        item = self.current
        if item is None:
            return False
        item.data.disposition = disposition
        if isinstance(item.data, Grouping):
            item.data.server_choice = choice
        self._advance()
        return True

    # === Transitions ===

    def approve(self) -> bool:
        self._ensure_open()
        item = self.current
        if item is None or item.is_server_style:
            return False
        return self._decide(Disposition.APPROVED)

    def approve_whole_server(self) -> bool:
        self._ensure_open()
        item = self.current
        if item is None or not item.is_server_style:
            return False
        return self._decide(Disposition.APPROVED, ServerChoice.WHOLE_SERVER)

    def approve_individual(self) -> bool:
        self._ensure_open()
        item = self.current
        if item is None or not item.is_server_style:
            return False
        return self._decide(Disposition.APPROVED, ServerChoice.PER_COMMAND)

    def deny(self) -> bool:
        return self._decide(Disposition.DENIED)

    def skip(self) -> bool:
        return self._decide(Disposition.UNDECIDED)

    def next(self) -> bool:
        self._ensure_open()
        if self.cursor >= len(self.items) - 1:
            return False
        self.cursor += 1
        return True

    def previous(self) -> bool:
        self._ensure_open()
        if self.cursor <= 0:
            return False
        self.cursor -= 1
        return True

    def commit(self) -> ReviewQueue:
        """Freeze the session and return the reviewed queue."""
        self._ensure_open()
        self.committed = True
        self._queue.cursor = self.cursor
        counts = self.counts()
        log.info(
            "review_committed",
            approved=counts[Disposition.APPROVED],
            denied=counts[Disposition.DENIED],
            undecided=counts[Disposition.UNDECIDED],
        )
        return copy.deepcopy(self._queue)

    def apply(self, action: Action) -> bool:
        """Apply an action. COMMIT is not accepted here; call commit()."""
        if action is Action.COMMIT:
            raise ValueError("use commit() to finish a review")
        return _TRANSITIONS[action](self)

    # === Queries ===

    def counts(self) -> dict[Disposition, int]:
        counts = {d: 0 for d in Disposition}
        for item in self.items:
            counts[item.disposition] += 1
        return counts


_TRANSITIONS = {
    Action.APPROVE: ReviewSession.approve,
    Action.APPROVE_WHOLE_SERVER: ReviewSession.approve_whole_server,
    Action.APPROVE_INDIVIDUAL: ReviewSession.approve_individual,
    Action.DENY: ReviewSession.deny,
    Action.SKIP: ReviewSession.skip,
    Action.NEXT: ReviewSession.next,
    Action.PREVIOUS: ReviewSession.previous,
}
