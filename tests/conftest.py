"""
Shared test fixtures for Corral tests.
"""

import json
from pathlib import Path

import pytest

from corral.core.models import (
    Confidence,
    Disposition,
    GroupKind,
    Grouping,
    ReviewQueue,
    ReviewStatistics,
    SafetyCategory,
    ServerChoice,
    UngroupedCommand,
)


def make_grouping(
    pattern: str,
    matches: list[str],
    *,
    disposition: Disposition = Disposition.UNDECIDED,
    server: bool = False,
    choice: ServerChoice | None = None,
    category: SafetyCategory = SafetyCategory.SAFE_TO_WILDCARD,
) -> Grouping:
    return Grouping(
        pattern=pattern,
        matches=list(matches),
        reasoning=f"groups {pattern}",
        confidence=Confidence.HIGH,
        safety_category=category,
        disposition=disposition,
        group_kind=GroupKind.SERVER if server else GroupKind.STANDARD,
        server_choice=choice,
    )


def make_ungrouped(
    command: str,
    *,
    disposition: Disposition = Disposition.UNDECIDED,
    recommended: bool = True,
    category: SafetyCategory = SafetyCategory.MAYBE_SAFE,
) -> UngroupedCommand:
    return UngroupedCommand(
        command=command,
        reasoning=f"keep {command} separate",
        recommended=recommended,
        safety_category=category,
        disposition=disposition,
    )


def make_queue(groupings=(), ungrouped=()) -> ReviewQueue:
    groupings, ungrouped = list(groupings), list(ungrouped)
    return ReviewQueue(
        date="2025-10-23T18:30:45+00:00",
        groupings=groupings,
        ungrouped=ungrouped,
        statistics=ReviewStatistics(
            total_projects=2,
            total_commands=sum(len(g.matches) for g in groupings) + len(ungrouped),
            grouped=sum(len(g.matches) for g in groupings),
            ungrouped=len(ungrouped),
        ),
    )


@pytest.fixture
def sample_queue():
    """A queue with one standard grouping, one server grouping, two commands."""
    return make_queue(
        groupings=[
            make_grouping("Bash(npm run:*)", ["Bash(npm run test)", "Bash(npm run build)"]),
            make_grouping(
                "mcp__playwright",
                ["mcp__playwright__navigate", "mcp__playwright__click"],
                server=True,
                category=SafetyCategory.MCP_SERVER,
            ),
        ],
        ungrouped=[
            make_ungrouped("Bash(git push origin main)"),
            make_ungrouped("Bash(rm -rf build)", recommended=False, category=SafetyCategory.NEVER_WILDCARD),
        ],
    )


@pytest.fixture
def write_json():
    """Write an object as JSON to a path, creating parent directories."""

    def _write(path: Path, data) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))
        return path

    return _write
