"""
Data model for groupings, ungrouped commands and review documents.

Review documents are plain JSON. Field names are camelCase on disk and
snake_case here. Older documents stored the decision as a nullable
"approved" boolean; those are still read, but decisions are always written
back as an explicit "disposition".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from corral.core.errors import CorralError, ProposalError
from corral.core.grammar import ResourceKind, parse_permission


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SafetyCategory(str, Enum):
    SAFE_TO_WILDCARD = "SAFE_TO_WILDCARD"
    MAYBE_SAFE = "MAYBE_SAFE"
    NEVER_WILDCARD = "NEVER_WILDCARD"
    MCP_SERVER = "MCP_SERVER"


class Disposition(str, Enum):
    """The operator's decision on a review item."""

    APPROVED = "approved"
    DENIED = "denied"
    UNDECIDED = "undecided"


class GroupKind(str, Enum):
    STANDARD = "standard"
    SERVER = "server-style"


class ServerChoice(str, Enum):
    WHOLE_SERVER = "wholeServer"
    PER_COMMAND = "perCommand"


# Values older documents used for the same fields
_LEGACY_GROUP_KINDS = {"mcp-server": GroupKind.SERVER}
_LEGACY_SERVER_CHOICES = {
    "server": ServerChoice.WHOLE_SERVER,
    "individual": ServerChoice.PER_COMMAND,
}
_LEGACY_APPROVED = {
    True: Disposition.APPROVED,
    False: Disposition.DENIED,
    None: Disposition.UNDECIDED,
}


@dataclass
class Grouping:
    """A proposed wildcard pattern and the literal commands it subsumes."""

    pattern: str
    matches: list[str]
    reasoning: str
    confidence: Confidence
    safety_category: SafetyCategory
    disposition: Disposition = Disposition.UNDECIDED
    group_kind: GroupKind = GroupKind.STANDARD
    server_choice: ServerChoice | None = None

    @property
    def is_server_style(self) -> bool:
        return self.group_kind is GroupKind.SERVER

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pattern": self.pattern,
            "matches": list(self.matches),
            "reasoning": self.reasoning,
            "confidence": self.confidence.value,
            "safetyCategory": self.safety_category.value,
            "disposition": self.disposition.value,
            "groupKind": self.group_kind.value,
        }
        if self.server_choice is not None:
            data["serverChoice"] = self.server_choice.value
        return data


@dataclass
class UngroupedCommand:
    """A single command kept out of any grouping."""

    command: str
    reasoning: str
    recommended: bool
    safety_category: SafetyCategory
    disposition: Disposition = Disposition.UNDECIDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "reasoning": self.reasoning,
            "recommended": self.recommended,
            "safetyCategory": self.safety_category.value,
            "disposition": self.disposition.value,
        }


@dataclass
class Statistics:
    """Counts attached to a proposal."""

    total_commands: int = 0
    grouped: int = 0
    ungrouped: int = 0
    category_counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_items(
        cls,
        groupings: list[Grouping],
        ungrouped: list[UngroupedCommand],
        total_commands: int | None = None,
    ) -> Statistics:
        """Recompute statistics from the items actually present."""
        counts = {c.value: 0 for c in SafetyCategory if c is not SafetyCategory.MCP_SERVER}
        for item in [*groupings, *ungrouped]:
            key = item.safety_category.value
            counts[key] = counts.get(key, 0) + 1
        grouped = sum(len(g.matches) for g in groupings)
        if total_commands is None:
            total_commands = grouped + len(ungrouped)
        return cls(total_commands, grouped, len(ungrouped), counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCommands": self.total_commands,
            "grouped": self.grouped,
            "ungrouped": self.ungrouped,
            "categoryCounts": dict(self.category_counts),
        }


@dataclass
class GroupingResult:
    """What the proposal step hands to the rule engine."""

    groupings: list[Grouping]
    ungrouped: list[UngroupedCommand]
    statistics: Statistics = field(default_factory=Statistics)


@dataclass
class ReviewStatistics:
    total_projects: int = 0
    total_commands: int = 0
    grouped: int = 0
    ungrouped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalProjects": self.total_projects,
            "totalCommands": self.total_commands,
            "grouped": self.grouped,
            "ungrouped": self.ungrouped,
        }


@dataclass
class ReviewQueue:
    """A review document: all groupings, then all ungrouped commands."""

    date: str
    groupings: list[Grouping] = field(default_factory=list)
    ungrouped: list[UngroupedCommand] = field(default_factory=list)
    statistics: ReviewStatistics = field(default_factory=ReviewStatistics)
    cursor: int = 0

    def __len__(self) -> int:
        return len(self.groupings) + len(self.ungrouped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "groupings": [g.to_dict() for g in self.groupings],
            "ungrouped": [u.to_dict() for u in self.ungrouped],
            "statistics": self.statistics.to_dict(),
            "cursor": self.cursor,
        }


# === Parsing ===
# Every parser takes the error class to raise, so the same code serves
# proposals (ProposalError) and review files (ReviewFileError).


def _require(data: dict, key: str, kind: type | tuple[type, ...], where: str, error: type[CorralError]) -> Any:
    if key not in data:
        raise error(f"{where}: missing required field '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise error(f"{where}: field '{key}' has the wrong type ({type(value).__name__})")
    return value


def _enum(enum_cls: type[Enum], value: Any, key: str, where: str, error: type[CorralError]) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(str(e.value) for e in enum_cls)
        raise error(f"{where}: field '{key}' must be one of {choices}, got {value!r}") from None


def _disposition(data: dict, where: str, error: type[CorralError]) -> Disposition:
    if "disposition" in data:
        return _enum(Disposition, data["disposition"], "disposition", where, error)
    approved = data.get("approved")
    if approved is not None and not isinstance(approved, bool):
        raise error(f"{where}: field 'approved' must be true, false or null")
    return _LEGACY_APPROVED[approved]


def _group_kind(data: dict, pattern: str, where: str, error: type[CorralError]) -> GroupKind:
    value = data.get("groupKind", data.get("groupType"))
    if value is None:
        # A bare server pattern is a server-style grouping even if unlabeled
        perm = parse_permission(pattern)
        if perm.kind is ResourceKind.TOOL_SERVER and perm.server_command is None:
            return GroupKind.SERVER
        return GroupKind.STANDARD
    if value in _LEGACY_GROUP_KINDS:
        return _LEGACY_GROUP_KINDS[value]
    return _enum(GroupKind, value, "groupKind", where, error)


def _server_choice(data: dict, where: str, error: type[CorralError]) -> ServerChoice | None:
    value = data.get("serverChoice", data.get("mcpChoice"))
    if value is None:
        return None
    if value in _LEGACY_SERVER_CHOICES:
        return _LEGACY_SERVER_CHOICES[value]
    return _enum(ServerChoice, value, "serverChoice", where, error)


def grouping_from_dict(data: Any, where: str = "grouping", error: type[CorralError] = ProposalError) -> Grouping:
    """Build a Grouping from JSON. Raises `error` on any malformed field."""
    if not isinstance(data, dict):
        raise error(f"{where}: expected an object")
    pattern = _require(data, "pattern", str, where, error)
    matches = _require(data, "matches", list, where, error)
    for i, match in enumerate(matches):
        if not isinstance(match, str):
            raise error(f"{where}: matches[{i}] is not a string")
    reasoning = _require(data, "reasoning", str, where, error)
    confidence = _enum(Confidence, _require(data, "confidence", str, where, error), "confidence", where, error)
    category = _enum(
        SafetyCategory, _require(data, "safetyCategory", str, where, error), "safetyCategory", where, error
    )
    disposition = _disposition(data, where, error)
    choice = _server_choice(data, where, error)
    if disposition is not Disposition.APPROVED:
        choice = None
    return Grouping(
        pattern=pattern,
        matches=list(matches),
        reasoning=reasoning,
        confidence=confidence,
        safety_category=category,
        disposition=disposition,
        group_kind=_group_kind(data, pattern, where, error),
        server_choice=choice,
    )


def ungrouped_from_dict(
    data: Any, where: str = "ungrouped", error: type[CorralError] = ProposalError
) -> UngroupedCommand:
    """Build an UngroupedCommand from JSON. Raises `error` on any malformed field."""
    if not isinstance(data, dict):
        raise error(f"{where}: expected an object")
    command = _require(data, "command", str, where, error)
    reasoning = _require(data, "reasoning", str, where, error)
    key = "shouldApprove" if "recommended" not in data and "shouldApprove" in data else "recommended"
    recommended = _require(data, key, bool, where, error)
    category = _enum(
        SafetyCategory, _require(data, "safetyCategory", str, where, error), "safetyCategory", where, error
    )
    return UngroupedCommand(
        command=command,
        reasoning=reasoning,
        recommended=recommended,
        safety_category=category,
        disposition=_disposition(data, where, error),
    )


def _items(data: dict, error: type[CorralError]) -> tuple[list[Grouping], list[UngroupedCommand]]:
    raw_groupings = _require(data, "groupings", list, "document", error)
    raw_ungrouped = _require(data, "ungrouped", list, "document", error)
    groupings = [
        grouping_from_dict(g, f"groupings[{i}]", error) for i, g in enumerate(raw_groupings)
    ]
    ungrouped = [
        ungrouped_from_dict(u, f"ungrouped[{i}]", error) for i, u in enumerate(raw_ungrouped)
    ]
    return groupings, ungrouped


def _int(data: dict, key: str, default: int = 0) -> int:
    value = data.get(key, default)
    return value if isinstance(value, int) and not isinstance(value, bool) else default


def grouping_result_from_dict(data: Any) -> GroupingResult:
    """Parse proposal JSON. Any malformed entry fails the whole batch."""
    if not isinstance(data, dict):
        raise ProposalError("proposal: expected a JSON object")
    groupings, ungrouped = _items(data, ProposalError)
    stats = data.get("statistics")
    total = _int(stats, "totalCommands") if isinstance(stats, dict) else None
    return GroupingResult(groupings, ungrouped, Statistics.from_items(groupings, ungrouped, total))


def review_queue_from_dict(data: Any, error: type[CorralError]) -> ReviewQueue:
    """Parse a review document. Raises `error` if it doesn't match the schema."""
    if not isinstance(data, dict):
        raise error("document: expected a JSON object")
    date = _require(data, "date", str, "document", error)
    groupings, ungrouped = _items(data, error)
    stats = data.get("statistics") or {}
    if not isinstance(stats, dict):
        raise error("document: field 'statistics' must be an object")
    statistics = ReviewStatistics(
        total_projects=_int(stats, "totalProjects"),
        total_commands=_int(stats, "totalCommands"),
        grouped=_int(stats, "grouped"),
        ungrouped=_int(stats, "ungrouped"),
    )
    return ReviewQueue(date, groupings, ungrouped, statistics, cursor=_int(data, "cursor"))
