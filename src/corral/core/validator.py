"""
Safety rule engine for proposed groupings.

Proposals come from a model and are never trusted. Each grouping runs
through two independent checks:

- danger: any literal part of the pattern, on either side of a wildcard,
  hits the denylist. The grouping is broken up and every match must be
  decided by hand (not recommended).
- logic: the grouping is structurally inconsistent. The matches are fine
  on their own, just mis-grouped, so they come back recommended.

A rejected grouping is never dropped; its matches become ungrouped
commands with a reason attached.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

import structlog

from corral.core.grammar import (
    ResourceKind,
    Permission,
    base_token,
    parse_permission,
    token_depth,
)
from corral.core.models import (
    Disposition,
    Grouping,
    GroupingResult,
    SafetyCategory,
    Statistics,
    UngroupedCommand,
)
from corral.core.patterns import find_danger

log = structlog.get_logger()

# Server-style patterns: mcp__server or mcp__server__command, nothing else
SERVER_PATTERN = re.compile(r"^mcp__[a-zA-Z0-9_-]+$")
SERVER_COMMAND_PATTERN = re.compile(r"^mcp__[a-zA-Z0-9_-]+__[a-zA-Z0-9_-]+$")

# Characters that don't narrow a filesystem path on their own
_PATH_NOISE = "/~."


@dataclass(frozen=True)
class Rejection:
    """Why a grouping was turned down and how to treat its matches."""

    reason: str
    recommended: bool
    safety_category: SafetyCategory
    blocked: bool = False
    """True for danger-check rejections."""

    def reasoning(self, pattern: str) -> str:
        if self.blocked:
            return (
                f'Blocked by safety validation: pattern "{pattern}" '
                f"contains dangerous commands ({self.reason})"
            )
        return f"Rejected grouping: {self.reason}"


def _logic(reason: str) -> Rejection:
    return Rejection(reason, True, SafetyCategory.SAFE_TO_WILDCARD)


@dataclass
class ValidationResult:
    """Groupings that passed, plus the ungrouped commands from rejections."""

    accepted: list[Grouping] = field(default_factory=list)
    additional_ungrouped: list[UngroupedCommand] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejected: list[tuple[str, Rejection]] = field(default_factory=list)


# === Danger check ===


def check_danger(
    grouping: Grouping, extra: Iterable[tuple[re.Pattern, str]] = ()
) -> Rejection | None:
    """Reject shell patterns with any literal text on the denylist."""
    perm = parse_permission(grouping.pattern)
    if perm.kind is not ResourceKind.SHELL:
        return None
    description = find_danger(perm.literal_text, extra)
    if description is None:
        return None
    return Rejection(description, False, SafetyCategory.NEVER_WILDCARD, blocked=True)


# === Logic check ===


def check_server_pattern(pattern: str) -> str | None:
    """Return why a server-style pattern is malformed, or None if it's fine."""
    if pattern.startswith("mcp") and pattern.rstrip(":*").rstrip("_") == "mcp":
        return f"{pattern} is too broad - must specify server name"
    if "*" in pattern:
        return (
            f'Server patterns cannot use wildcards, got "{pattern}". '
            'Use an exact pattern like "mcp__servername"'
        )
    if not SERVER_PATTERN.match(pattern) and not SERVER_COMMAND_PATTERN.match(pattern):
        return (
            'Invalid server pattern format. Expected "mcp__servername" or '
            f'"mcp__servername__commandname", got "{pattern}"'
        )
    return None


def _check_server_grouping(grouping: Grouping, perm: Permission) -> Rejection | None:
    reason = check_server_pattern(grouping.pattern)
    if reason:
        return _logic(reason)
    for match in grouping.matches:
        match_perm = parse_permission(match)
        if match_perm.kind is not ResourceKind.TOOL_SERVER or match_perm.server != perm.server:
            return _logic(f'Match "{match}" does not belong to server "{perm.server}"')
        # Only a bare mcp__server spans commands
        if perm.server_command is not None and match != grouping.pattern:
            return _logic(
                f'Match "{match}" is not covered by server command "{grouping.pattern}"'
            )
    return None


def _too_broad(perm: Permission) -> bool:
    """A wildcard with nothing literal in front of it matches everything."""
    if not perm.wildcard:
        return False
    stem = perm.stem
    if perm.kind is ResourceKind.FILESYSTEM_PATH:
        stem = stem.strip(_PATH_NOISE)
    return not stem.strip()


def _check_tokens(grouping: Grouping, perm: Permission) -> Rejection | None:
    """Matches must share the pattern's executable/subcommand token."""
    pattern_words = perm.words
    depth = token_depth(pattern_words)
    pattern_token = base_token(pattern_words, depth)

    tokens: list[str] = []
    for match in grouping.matches:
        token = base_token(parse_permission(match).words, depth)
        if token and token not in tokens:
            tokens.append(token)

    if len(tokens) > 1:
        return _logic(
            f"Mixed different executables: {', '.join(tokens)} - "
            "these should be separate patterns"
        )
    if pattern_token and tokens and tokens[0] != pattern_token:
        return _logic(f'Pattern uses "{pattern_token}" but matches use {tokens[0]}')
    return None


def check_logic(grouping: Grouping) -> Rejection | None:
    """Run the structural checks in order; the first failure wins."""
    pattern = grouping.pattern

    if pattern in grouping.matches:
        return _logic(f'Pattern "{pattern}" appears in its own matches - redundant grouping')

    perm = parse_permission(pattern)

    if grouping.is_server_style or perm.kind is ResourceKind.TOOL_SERVER:
        return _check_server_grouping(grouping, perm)

    if perm.kind is ResourceKind.NETWORK_DOMAIN and perm.wildcard:
        return _logic(
            f'Domain pattern "{pattern}" uses a wildcard - '
            "domains must be listed individually"
        )

    if perm.kind is ResourceKind.OTHER:
        return Rejection(
            f'Pattern "{pattern}" has an unrecognized permission syntax - cannot be grouped',
            False,
            SafetyCategory.MAYBE_SAFE,
        )

    if _too_broad(perm):
        return _logic(f'Pattern "{pattern}" is too broad - the wildcard has no literal base')

    for match in grouping.matches:
        match_kind = parse_permission(match).kind
        if match_kind is not perm.kind:
            return _logic(
                f'Match "{match}" is a {match_kind.value} permission '
                f'but pattern "{pattern}" is {perm.kind.value}'
            )

    if perm.wildcard:
        for match in grouping.matches:
            if not match.startswith(perm.base):
                return _logic(f'Match "{match}" doesn\'t align with pattern "{pattern}"')

    if perm.kind is ResourceKind.SHELL:
        rejection = _check_tokens(grouping, perm)
        if rejection is not None:
            return rejection

    if not perm.wildcard:
        for match in grouping.matches:
            if match != pattern:
                return _logic(f'Match "{match}" is not covered by literal pattern "{pattern}"')

    return None


# === Entry points ===


def _decompose(grouping: Grouping, rejection: Rejection) -> list[UngroupedCommand]:
    reasoning = rejection.reasoning(grouping.pattern)
    return [
        UngroupedCommand(
            command=match,
            reasoning=reasoning,
            recommended=rejection.recommended,
            safety_category=rejection.safety_category,
            disposition=Disposition.UNDECIDED,
        )
        for match in grouping.matches
    ]


def validate(
    groupings: Iterable[Grouping], extra: Iterable[tuple[re.Pattern, str]] = ()
) -> ValidationResult:
    """Validate proposed groupings.

    Accepted groupings are copied with an undecided disposition. Input
    objects are never modified.
    """
    extra = list(extra)
    result = ValidationResult()

    for grouping in groupings:
        rejection = check_danger(grouping, extra) or check_logic(grouping)
        if rejection is not None:
            event = "grouping_blocked" if rejection.blocked else "grouping_rejected"
            log.warning(
                event,
                pattern=grouping.pattern,
                reason=rejection.reason,
                matches=list(grouping.matches),
            )
            result.rejected.append((grouping.pattern, rejection))
            result.additional_ungrouped.extend(_decompose(grouping, rejection))
            continue

        if not grouping.matches:
            message = f'Grouping "{grouping.pattern}" has no matches'
            log.warning("grouping_empty", pattern=grouping.pattern)
            result.warnings.append(message)

        result.accepted.append(
            replace(
                grouping,
                matches=list(grouping.matches),
                disposition=Disposition.UNDECIDED,
                server_choice=None,
            )
        )

    return result


def validate_result(
    proposal: GroupingResult, extra: Iterable[tuple[re.Pattern, str]] = ()
) -> tuple[GroupingResult, ValidationResult]:
    """Validate a whole proposal and rebuild it.

    Rejected matches are appended after the proposal's own ungrouped
    commands. Statistics are recomputed from what survived.
    """
    validation = validate(proposal.groupings, extra)
    ungrouped = [
        replace(u, disposition=Disposition.UNDECIDED) for u in proposal.ungrouped
    ]
    ungrouped.extend(validation.additional_ungrouped)
    statistics = Statistics.from_items(
        validation.accepted, ungrouped, proposal.statistics.total_commands or None
    )
    return GroupingResult(validation.accepted, ungrouped, statistics), validation
