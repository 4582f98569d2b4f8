"""Tests for the review state machine."""

import pytest
from conftest import make_grouping, make_queue, make_ungrouped

from corral.core.errors import ReviewClosedError
from corral.core.models import Disposition, ServerChoice
from corral.core.review import Action, ReviewSession


def item_at(session, index):
    return session.items[index].data


class TestOrdering:
    def test_groupings_then_ungrouped(self, sample_queue):
        session = ReviewSession(sample_queue)
        assert [i.kind for i in session.items] == ["grouping", "grouping", "ungrouped", "ungrouped"]
        assert [i.index for i in session.items] == [0, 1, 0, 1]

    def test_starts_at_saved_cursor(self, sample_queue):
        sample_queue.cursor = 2
        assert ReviewSession(sample_queue).cursor == 2

    def test_saved_cursor_clamped(self, sample_queue):
        sample_queue.cursor = 99
        assert ReviewSession(sample_queue).cursor == 3

    def test_works_on_a_copy(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.approve()
        assert sample_queue.groupings[0].disposition is Disposition.UNDECIDED


class TestCursor:
    def test_next_and_previous(self, sample_queue):
        session = ReviewSession(sample_queue)
        assert session.next()
        assert session.cursor == 1
        assert session.previous()
        assert session.cursor == 0

    def test_previous_at_start_rejected(self, sample_queue):
        session = ReviewSession(sample_queue)
        assert not session.previous()
        assert session.cursor == 0

    def test_next_at_end_rejected(self, sample_queue):
        session = ReviewSession(sample_queue)
        for _ in range(10):
            session.next()
        assert session.cursor == 3
        assert not session.next()

    def test_navigation_keeps_dispositions(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.next()
        session.previous()
        assert all(i.disposition is Disposition.UNDECIDED for i in session.items)

    def test_decision_at_last_item_stays_put(self, sample_queue):
        sample_queue.cursor = 3
        session = ReviewSession(sample_queue)
        assert session.deny()
        assert session.cursor == 3
        assert item_at(session, 3).disposition is Disposition.DENIED

    def test_cursor_in_bounds_for_any_action_sequence(self, sample_queue):
        session = ReviewSession(sample_queue)
        actions = [a for a in Action if a is not Action.COMMIT] * 5
        for action in actions:
            session.apply(action)
            assert 0 <= session.cursor < len(session)


class TestTransitions:
    def test_approve_advances(self, sample_queue):
        session = ReviewSession(sample_queue)
        assert session.approve()
        assert item_at(session, 0).disposition is Disposition.APPROVED
        assert session.cursor == 1

    def test_approve_rejected_for_server_style(self, sample_queue):
        sample_queue.cursor = 1
        session = ReviewSession(sample_queue)
        assert not session.approve()
        assert item_at(session, 1).disposition is Disposition.UNDECIDED
        assert session.cursor == 1

    def test_approve_whole_server(self, sample_queue):
        sample_queue.cursor = 1
        session = ReviewSession(sample_queue)
        assert session.approve_whole_server()
        grouping = item_at(session, 1)
        assert grouping.disposition is Disposition.APPROVED
        assert grouping.server_choice is ServerChoice.WHOLE_SERVER
        assert session.cursor == 2

    def test_approve_individual(self, sample_queue):
        sample_queue.cursor = 1
        session = ReviewSession(sample_queue)
        assert session.approve_individual()
        assert item_at(session, 1).server_choice is ServerChoice.PER_COMMAND

    @pytest.mark.parametrize("action", [Action.APPROVE_WHOLE_SERVER, Action.APPROVE_INDIVIDUAL])
    def test_server_choices_rejected_for_standard_items(self, sample_queue, action):
        session = ReviewSession(sample_queue)
        assert not session.apply(action)
        assert item_at(session, 0).disposition is Disposition.UNDECIDED
        assert session.cursor == 0

    @pytest.mark.parametrize("action", [Action.DENY, Action.SKIP])
    def test_deny_and_skip_clear_server_choice(self, sample_queue, action):
        sample_queue.cursor = 1
        session = ReviewSession(sample_queue)
        session.approve_whole_server()
        session.previous()
        session.apply(action)
        grouping = item_at(session, 1)
        assert grouping.server_choice is None
        expected = Disposition.DENIED if action is Action.DENY else Disposition.UNDECIDED
        assert grouping.disposition is expected

    def test_skip_reverts_decision(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.approve()
        session.previous()
        session.skip()
        assert item_at(session, 0).disposition is Disposition.UNDECIDED

    def test_empty_queue(self):
        session = ReviewSession(make_queue())
        assert session.current is None
        assert not session.approve()
        assert not session.deny()
        assert not session.next()
        assert session.cursor == 0


class TestCommit:
    def test_commit_returns_decisions(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.approve()
        session.approve_individual()
        session.deny()
        queue = session.commit()

        assert queue.groupings[0].disposition is Disposition.APPROVED
        assert queue.groupings[1].server_choice is ServerChoice.PER_COMMAND
        assert queue.ungrouped[0].disposition is Disposition.DENIED
        assert queue.ungrouped[1].disposition is Disposition.UNDECIDED
        assert queue.cursor == 3

    def test_no_transitions_after_commit(self, sample_queue):
        session = ReviewSession(sample_queue)
        session.commit()
        for action in [a for a in Action if a is not Action.COMMIT]:
            with pytest.raises(ReviewClosedError):
                session.apply(action)
        with pytest.raises(ReviewClosedError):
            session.commit()

    def test_committed_queue_detached(self, sample_queue):
        session = ReviewSession(sample_queue)
        queue = session.commit()
        queue.groupings[0].disposition = Disposition.DENIED
        assert session.items[0].disposition is Disposition.UNDECIDED

    def test_apply_refuses_commit(self, sample_queue):
        with pytest.raises(ValueError):
            ReviewSession(sample_queue).apply(Action.COMMIT)

    def test_counts(self):
        queue = make_queue(
            [make_grouping("Bash(make:*)", ["Bash(make test)"], disposition=Disposition.APPROVED)],
            [make_ungrouped("Bash(ls)", disposition=Disposition.DENIED), make_ungrouped("Bash(pwd)")],
        )
        counts = ReviewSession(queue).counts()
        assert counts == {
            Disposition.APPROVED: 1,
            Disposition.DENIED: 1,
            Disposition.UNDECIDED: 1,
        }
