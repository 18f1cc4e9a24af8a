"""Data models: workflow sessions, check results and collaborator records."""

from linear_flow.models.checks import CheckResult, ResolutionOption, VerificationResult
from linear_flow.models.domain import (
    BranchSync,
    CheckRun,
    CheckRunSummary,
    GitStatus,
    PullRequest,
    PullRequestState,
)
from linear_flow.models.session import SessionState, TransitionRecord, WorkflowSession

__all__ = [
    "BranchSync",
    "CheckResult",
    "CheckRun",
    "CheckRunSummary",
    "GitStatus",
    "PullRequest",
    "PullRequestState",
    "ResolutionOption",
    "SessionState",
    "TransitionRecord",
    "VerificationResult",
    "WorkflowSession",
]
