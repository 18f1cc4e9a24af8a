"""Tests for linear_flow.models.session."""

from datetime import UTC, datetime, timedelta

import pytest

from linear_flow.enums import WorkflowKind
from linear_flow.exceptions import InvalidTransitionError
from linear_flow.models.session import (
    ALLOWED_TRANSITIONS,
    SessionState,
    WorkflowSession,
    can_transition,
)


class TestSessionCreation:
    """Tests for WorkflowSession.create."""

    def test_starts_in_branch_ready(self):
        """A new session is BRANCH_READY with one creating history entry."""
        session = WorkflowSession.create("feature/add-login")

        assert session.state == SessionState.BRANCH_READY
        assert session.kind == WorkflowKind.FEATURE
        assert len(session.history) == 1
        assert session.history[0].from_state is None
        assert session.history[0].to_state == SessionState.BRANCH_READY
        assert session.history[0].trigger == "launch"

    def test_expiry_follows_ttl(self):
        """expires_at is created_at plus the TTL."""
        session = WorkflowSession.create("feature/a", ttl_days=3)

        assert session.expires_at - session.created_at == timedelta(days=3)
        assert not session.is_expired()
        assert session.is_expired(session.created_at + timedelta(days=4))

    def test_ids_are_unique(self):
        assert WorkflowSession.create("feature/a").id != WorkflowSession.create("feature/a").id

    def test_blank_branch_rejected(self):
        with pytest.raises(ValueError, match="Branch name is required"):
            WorkflowSession.create("  ")

    def test_branch_name_is_immutable(self):
        session = WorkflowSession.create("feature/a")

        with pytest.raises(AttributeError):
            session.branch_name = "feature/b"


class TestTransitions:
    """Tests for the session state machine."""

    def test_forward_chain(self):
        """The ship path walks every forward state."""
        session = WorkflowSession.create("feature/a")
        for state in (
            SessionState.CHANGES_COMMITTED,
            SessionState.PUSHED,
            SessionState.PR_CREATED,
            SessionState.CHECKS_PASSING,
            SessionState.READY_TO_MERGE,
            SessionState.COMPLETE,
        ):
            session.transition(state, "ship")

        assert session.state == SessionState.COMPLETE
        assert not session.is_active
        assert [r.to_state for r in session.history][-1] == SessionState.COMPLETE
        assert len(session.history) == 7

    def test_rework_edge_back_to_committed(self):
        session = WorkflowSession.create("feature/a")
        session.transition(SessionState.CHANGES_COMMITTED, "commit")
        session.transition(SessionState.PUSHED, "ship")
        session.transition(SessionState.CHANGES_COMMITTED, "commit")

        assert session.state == SessionState.CHANGES_COMMITTED

    def test_invalid_transition_leaves_session_unchanged(self):
        """A rejected transition appends nothing."""
        session = WorkflowSession.create("feature/a")

        with pytest.raises(InvalidTransitionError) as exc_info:
            session.transition(SessionState.COMPLETE, "ship")

        assert exc_info.value.from_state == "BRANCH_READY"
        assert exc_info.value.to_state == "COMPLETE"
        assert session.state == SessionState.BRANCH_READY
        assert len(session.history) == 1

    @pytest.mark.parametrize("state", [SessionState.COMPLETE, SessionState.ABORTED])
    def test_terminal_states_have_no_exits(self, state):
        assert state.is_terminal
        assert not ALLOWED_TRANSITIONS[state]
        assert not can_transition(state, SessionState.BRANCH_READY)

    @pytest.mark.parametrize(
        "state",
        [s for s in SessionState if not s.is_terminal],
    )
    def test_abort_allowed_from_every_active_state(self, state):
        assert can_transition(state, SessionState.ABORTED)

    def test_history_records_trigger_and_metadata(self):
        session = WorkflowSession.create("feature/a")
        record = session.transition(SessionState.CHANGES_COMMITTED, "commit", {"sha": "abc"})

        assert record.from_state == SessionState.BRANCH_READY
        assert record.metadata == {"sha": "abc"}
        assert session.updated_at == record.timestamp
        assert session.history[-1] is record


class TestSerialization:
    """Tests for to_dict/from_dict."""

    def test_round_trip_preserves_every_field(self):
        session = WorkflowSession.create(
            "hotfix/high-login",
            kind=WorkflowKind.HOTFIX,
            trigger="hotfix",
            metadata={"issue": "login"},
        )
        session.transition(SessionState.CHANGES_COMMITTED, "commit", {"sha": "abc"})

        restored = WorkflowSession.from_dict(session.to_dict())

        assert restored == session

    def test_timestamps_are_utc_iso(self):
        data = WorkflowSession.create("feature/a").to_dict()

        created = datetime.fromisoformat(data["created_at"])
        assert created.tzinfo is not None
        assert created.utcoffset() == UTC.utcoffset(created)
