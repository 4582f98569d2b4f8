"""Tests for proposal and review document parsing."""

import json

import pytest
from conftest import make_grouping, make_queue

from corral.core.errors import ProposalError, ReviewFileError
from corral.core.models import (
    Disposition,
    GroupKind,
    SafetyCategory,
    ServerChoice,
    grouping_from_dict,
    grouping_result_from_dict,
    review_queue_from_dict,
    ungrouped_from_dict,
)
from corral.core.review import ReviewSession


def grouping_json(**overrides):
    data = {
        "pattern": "Bash(npm run:*)",
        "matches": ["Bash(npm run test)"],
        "reasoning": "project scripts",
        "confidence": "high",
        "safetyCategory": "SAFE_TO_WILDCARD",
    }
    data.update(overrides)
    return data


def ungrouped_json(**overrides):
    data = {
        "command": "Bash(git push)",
        "reasoning": "publishes",
        "recommended": True,
        "safetyCategory": "MAYBE_SAFE",
    }
    data.update(overrides)
    return data


class TestGroupingFromDict:
    def test_minimal(self):
        grouping = grouping_from_dict(grouping_json())
        assert grouping.pattern == "Bash(npm run:*)"
        assert grouping.disposition is Disposition.UNDECIDED
        assert grouping.group_kind is GroupKind.STANDARD
        assert grouping.server_choice is None

    @pytest.mark.parametrize("field", ["pattern", "matches", "reasoning", "confidence", "safetyCategory"])
    def test_missing_field(self, field):
        data = grouping_json()
        del data[field]
        with pytest.raises(ProposalError, match=f"missing required field '{field}'"):
            grouping_from_dict(data)

    def test_wrong_type(self):
        with pytest.raises(ProposalError, match="wrong type"):
            grouping_from_dict(grouping_json(matches="Bash(ls)"))

    def test_non_string_match(self):
        with pytest.raises(ProposalError, match=r"matches\[1\]"):
            grouping_from_dict(grouping_json(matches=["Bash(ls)", 3]))

    def test_bad_enum(self):
        with pytest.raises(ProposalError, match="confidence"):
            grouping_from_dict(grouping_json(confidence="certain"))

    def test_not_an_object(self):
        with pytest.raises(ProposalError, match="expected an object"):
            grouping_from_dict(["pattern"])

    def test_error_class_is_selectable(self):
        with pytest.raises(ReviewFileError):
            grouping_from_dict({}, error=ReviewFileError)

    def test_legacy_fields(self):
        grouping = grouping_from_dict(
            grouping_json(
                pattern="mcp__playwright",
                matches=["mcp__playwright__click"],
                safetyCategory="MCP_SERVER",
                approved=True,
                groupType="mcp-server",
                mcpChoice="server",
            )
        )
        assert grouping.disposition is Disposition.APPROVED
        assert grouping.group_kind is GroupKind.SERVER
        assert grouping.server_choice is ServerChoice.WHOLE_SERVER

    @pytest.mark.parametrize(
        "approved,expected",
        [(True, Disposition.APPROVED), (False, Disposition.DENIED), (None, Disposition.UNDECIDED)],
    )
    def test_legacy_approved(self, approved, expected):
        assert grouping_from_dict(grouping_json(approved=approved)).disposition is expected

    def test_legacy_approved_must_be_bool(self):
        with pytest.raises(ProposalError, match="approved"):
            grouping_from_dict(grouping_json(approved="yes"))

    def test_disposition_wins_over_approved(self):
        grouping = grouping_from_dict(grouping_json(disposition="denied", approved=True))
        assert grouping.disposition is Disposition.DENIED

    def test_server_choice_dropped_unless_approved(self):
        grouping = grouping_from_dict(
            grouping_json(pattern="mcp__x", matches=[], disposition="denied", serverChoice="wholeServer")
        )
        assert grouping.server_choice is None

    def test_bare_server_pattern_inferred_server_style(self):
        grouping = grouping_from_dict(grouping_json(pattern="mcp__github", matches=["mcp__github__search"]))
        assert grouping.group_kind is GroupKind.SERVER

    def test_server_command_pattern_stays_standard(self):
        grouping = grouping_from_dict(grouping_json(pattern="mcp__github__search", matches=[]))
        assert grouping.group_kind is GroupKind.STANDARD


class TestUngroupedFromDict:
    def test_recommended(self):
        ungrouped = ungrouped_from_dict(ungrouped_json())
        assert ungrouped.recommended is True
        assert ungrouped.safety_category is SafetyCategory.MAYBE_SAFE

    def test_legacy_should_approve(self):
        data = ungrouped_json()
        del data["recommended"]
        data["shouldApprove"] = False
        assert ungrouped_from_dict(data).recommended is False

    def test_missing_recommended(self):
        data = ungrouped_json()
        del data["recommended"]
        with pytest.raises(ProposalError, match="recommended"):
            ungrouped_from_dict(data)


class TestGroupingResultFromDict:
    def test_statistics_recomputed(self):
        result = grouping_result_from_dict(
            {
                "groupings": [grouping_json(matches=["Bash(npm run a)", "Bash(npm run b)"])],
                "ungrouped": [ungrouped_json()],
                "statistics": {"totalCommands": 3, "grouped": 99, "ungrouped": 99},
            }
        )
        assert result.statistics.total_commands == 3
        assert result.statistics.grouped == 2
        assert result.statistics.ungrouped == 1

    def test_one_bad_entry_fails_batch(self):
        with pytest.raises(ProposalError, match=r"ungrouped\[1\]"):
            grouping_result_from_dict(
                {"groupings": [grouping_json()], "ungrouped": [ungrouped_json(), {"command": "x"}]}
            )

    def test_missing_lists(self):
        with pytest.raises(ProposalError, match="groupings"):
            grouping_result_from_dict({"ungrouped": []})

    def test_not_an_object(self):
        with pytest.raises(ProposalError):
            grouping_result_from_dict([])


class TestReviewQueueRoundTrip:
    def test_dispositions_and_order_preserved(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.approve()
        session.approve_whole_server()
        session.deny()
        queue = session.commit()

        reloaded = review_queue_from_dict(json.loads(json.dumps(queue.to_dict())), ReviewFileError)

        assert reloaded == queue
        resumed = ReviewSession(reloaded)
        assert resumed.cursor == queue.cursor
        assert [i.disposition for i in resumed.items] == [
            Disposition.APPROVED,
            Disposition.APPROVED,
            Disposition.DENIED,
            Disposition.UNDECIDED,
        ]

    def test_written_with_explicit_disposition(self):
        data = make_queue([make_grouping("Bash(make:*)", ["Bash(make a)"])]).to_dict()
        [grouping] = data["groupings"]
        assert grouping["disposition"] == "undecided"
        assert "approved" not in grouping

    def test_missing_date(self):
        with pytest.raises(ReviewFileError, match="date"):
            review_queue_from_dict({"groupings": [], "ungrouped": []}, ReviewFileError)

    def test_missing_cursor_defaults_to_start(self):
        queue = review_queue_from_dict({"date": "d", "groupings": [], "ungrouped": []}, ReviewFileError)
        assert queue.cursor == 0
        assert queue.statistics.total_projects == 0
