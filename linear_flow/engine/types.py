"""Type definitions for persisted session records.

These TypedDicts describe the JSON written to ``<state_dir>/<id>.json`` and
``<state_dir>/index.json``. Timestamps are ISO 8601 strings and enum values
are stored by value so the files stay readable without linear-flow.

Example:
    A freshly launched session::

        record: SessionRecord = {
            "id": "8c1f0a3e-...",
            "branch_name": "feature/add-login",
            "kind": "feature",
            "state": "BRANCH_READY",
            "created_at": "2026-10-19T09:30:00+00:00",
            "updated_at": "2026-10-19T09:30:00+00:00",
            "expires_at": "2026-11-18T09:30:00+00:00",
            "metadata": {"description": "Add login form"},
            "history": [
                {
                    "from_state": None,
                    "to_state": "BRANCH_READY",
                    "trigger": "launch",
                    "timestamp": "2026-10-19T09:30:00+00:00",
                }
            ],
        }
"""

from typing import Any, NotRequired, TypedDict


class TransitionDict(TypedDict):
    """One entry of a session's transition history."""

    from_state: str | None
    """State before the transition; ``None`` for the creating entry."""

    to_state: str
    """State after the transition."""

    trigger: str
    """Name of the operation or event that caused the transition."""

    timestamp: str
    """ISO 8601 timestamp of the transition."""

    metadata: NotRequired[dict[str, Any]]
    """Optional detail recorded with the transition."""


class PullRequestMetadata(TypedDict, total=False):
    """Pull request details linked to a session by ``ship``."""

    number: int
    url: str
    merged: bool
    merged_at: str


class BranchMetadata(TypedDict, total=False):
    """Branch cleanup details recorded by ``ship`` and ``abort``."""

    deleted_at: str
    remote_deleted: bool


class SessionRecord(TypedDict):
    """Complete persisted form of a workflow session."""

    id: str
    branch_name: str
    kind: str
    state: str
    created_at: str
    updated_at: str
    expires_at: str
    metadata: dict[str, Any]
    history: list[TransitionDict]


class SessionIndex(TypedDict):
    """Branch lookup index stored alongside the session records.

    ``branches`` maps a branch name to the ids of every session ever
    created for it, oldest first.
    """

    version: int
    branches: dict[str, list[str]]
