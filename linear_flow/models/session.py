"""Workflow session entity and its state machine.

A session is the unit of work: one branch, walked from ``BRANCH_READY`` to
``COMPLETE`` (or ``ABORTED``) by the workflow operations. State only ever
changes through :meth:`WorkflowSession.transition`, which appends to the
history; history entries are never rewritten.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from linear_flow.engine.types import SessionRecord, TransitionDict
from linear_flow.enums import WorkflowKind
from linear_flow.exceptions import InvalidTransitionError

DEFAULT_SESSION_TTL_DAYS = 30


class SessionState(str, Enum):
    """States a workflow session moves through."""

    BRANCH_READY = "BRANCH_READY"
    CHANGES_COMMITTED = "CHANGES_COMMITTED"
    PUSHED = "PUSHED"
    PR_CREATED = "PR_CREATED"
    CHECKS_PASSING = "CHECKS_PASSING"
    READY_TO_MERGE = "READY_TO_MERGE"
    COMPLETE = "COMPLETE"
    ABORTED = "ABORTED"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if no transition is defined out of this state."""
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({SessionState.COMPLETE, SessionState.ABORTED})

# Forward chain plus rework edges back to CHANGES_COMMITTED. BRANCH_READY may
# jump to PUSHED when commits were made outside linear-flow.
ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.BRANCH_READY: frozenset(
        {SessionState.CHANGES_COMMITTED, SessionState.PUSHED, SessionState.ABORTED}
    ),
    SessionState.CHANGES_COMMITTED: frozenset(
        {SessionState.CHANGES_COMMITTED, SessionState.PUSHED, SessionState.ABORTED}
    ),
    SessionState.PUSHED: frozenset(
        {SessionState.CHANGES_COMMITTED, SessionState.PR_CREATED, SessionState.ABORTED}
    ),
    SessionState.PR_CREATED: frozenset(
        {SessionState.CHANGES_COMMITTED, SessionState.CHECKS_PASSING, SessionState.ABORTED}
    ),
    SessionState.CHECKS_PASSING: frozenset(
        {SessionState.CHANGES_COMMITTED, SessionState.READY_TO_MERGE, SessionState.ABORTED}
    ),
    SessionState.READY_TO_MERGE: frozenset({SessionState.COMPLETE, SessionState.ABORTED}),
    SessionState.COMPLETE: frozenset(),
    SessionState.ABORTED: frozenset(),
}


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check whether ``from_state -> to_state`` is a defined transition."""
    return to_state in ALLOWED_TRANSITIONS[from_state]


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TransitionRecord:
    """One appended entry of a session's history."""

    from_state: SessionState | None
    """State before the transition; ``None`` for the entry that created the session."""

    to_state: SessionState
    """State after the transition."""

    trigger: str
    """Label of the operation or event that caused the transition."""

    timestamp: datetime
    """When the transition happened (UTC)."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Optional detail recorded with the transition."""

    def to_dict(self) -> TransitionDict:
        data: TransitionDict = {
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "trigger": self.trigger,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: TransitionDict) -> "TransitionRecord":
        from_state = data.get("from_state")
        return cls(
            from_state=SessionState(from_state) if from_state else None,
            to_state=SessionState(data["to_state"]),
            trigger=data["trigger"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class WorkflowSession:
    """A single feature or hotfix workflow bound to one branch.

    Use :meth:`create` to start a session and :meth:`transition` to move it;
    assigning ``state`` directly bypasses the state machine and is reserved
    for deserialization.

    Example:
        >>> session = WorkflowSession.create("feature/add-login")
        >>> session.transition(SessionState.CHANGES_COMMITTED, trigger="commit")
        >>> session.state
        <SessionState.CHANGES_COMMITTED: 'CHANGES_COMMITTED'>
    """

    id: str
    """Opaque identifier, stable for the session's lifetime (uuid4)."""

    branch_name: str
    """Branch the session works on. Immutable once set."""

    kind: WorkflowKind
    """Ordinary feature or emergency hotfix."""

    state: SessionState
    """Current state; always the ``to_state`` of the last history entry."""

    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    metadata: dict[str, Any] = field(default_factory=dict)
    """Free-form details: description, linked PR, stash ref, hotfix data."""

    history: list[TransitionRecord] = field(default_factory=list)
    """Append-only record of every transition, oldest first."""

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "branch_name" and "branch_name" in self.__dict__:
            raise AttributeError("branch_name is immutable once the session is created")
        super().__setattr__(name, value)

    @classmethod
    def create(
        cls,
        branch_name: str,
        kind: WorkflowKind = WorkflowKind.FEATURE,
        trigger: str = "launch",
        metadata: dict[str, Any] | None = None,
        ttl_days: int = DEFAULT_SESSION_TTL_DAYS,
    ) -> "WorkflowSession":
        """Start a new session in ``BRANCH_READY``.

        The creating history entry has no ``from_state`` so that the current
        state always matches the last history entry.

        Args:
            branch_name: Branch the session will own
            kind: Feature or hotfix workflow
            trigger: Label recorded on the creating history entry
            metadata: Initial metadata
            ttl_days: Days until the session counts as expired

        Returns:
            New, unsaved session
        """
        if not branch_name or not branch_name.strip():
            raise ValueError("Branch name is required")

        now = _now()
        initial = TransitionRecord(
            from_state=None,
            to_state=SessionState.BRANCH_READY,
            trigger=trigger,
            timestamp=now,
        )
        return cls(
            id=str(uuid.uuid4()),
            branch_name=branch_name,
            kind=kind,
            state=SessionState.BRANCH_READY,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(days=ttl_days),
            metadata=dict(metadata or {}),
            history=[initial],
        )

    @property
    def is_active(self) -> bool:
        """A session is active until it reaches a terminal state."""
        return not self.state.is_terminal

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session has passed its expiry time."""
        return self.expires_at < (now or _now())

    def can_transition_to(self, to_state: SessionState) -> bool:
        return can_transition(self.state, to_state)

    def transition(
        self,
        to_state: SessionState,
        trigger: str,
        metadata: dict[str, Any] | None = None,
    ) -> TransitionRecord:
        """Move to ``to_state``, appending a history entry.

        Args:
            to_state: Target state
            trigger: Label of the operation causing the transition
            metadata: Optional detail stored on the history entry

        Returns:
            The appended history entry

        Raises:
            InvalidTransitionError: If the transition is not defined. The
                session and its history are left unchanged.
        """
        if not can_transition(self.state, to_state):
            raise InvalidTransitionError(self.state.value, to_state.value)

        record = TransitionRecord(
            from_state=self.state,
            to_state=to_state,
            trigger=trigger,
            timestamp=_now(),
            metadata=dict(metadata or {}),
        )
        self.history.append(record)
        self.state = to_state
        self.updated_at = record.timestamp
        return record

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> SessionRecord:
        return {
            "id": self.id,
            "branch_name": self.branch_name,
            "kind": self.kind.value,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "metadata": dict(self.metadata),
            "history": [record.to_dict() for record in self.history],
        }

    @classmethod
    def from_dict(cls, data: SessionRecord) -> "WorkflowSession":
        return cls(
            id=data["id"],
            branch_name=data["branch_name"],
            kind=WorkflowKind(data["kind"]),
            state=SessionState(data["state"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            metadata=dict(data.get("metadata", {})),
            history=[TransitionRecord.from_dict(entry) for entry in data.get("history", [])],
        )
