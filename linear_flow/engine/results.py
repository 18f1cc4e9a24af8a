"""Tagged results returned by every workflow operation.

An operation call returns exactly one of:

- :class:`Done`: the mutation ran and no post-condition failed at error level
- :class:`NeedsInput`: a required parameter is missing; resubmit with it
- :class:`NeedsChoice`: recoverable pre-conditions need a resolution choice
- :class:`Failed`: the operation was rejected or its mutation failed

Callers dispatch on the type (or on ``status`` in serialized form) instead
of inspecting a boolean success flag.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar

from linear_flow.enums import Phase, Severity
from linear_flow.models.checks import CheckResult, VerificationResult
from linear_flow.models.session import WorkflowSession


def _checks_dict(result: VerificationResult | None, verbose: bool) -> dict[str, Any] | None:
    if result is None:
        return None
    if verbose:
        return result.to_dict()
    # Compact form keeps only results worth a human's attention
    return {
        "all_passed": result.all_passed,
        "checks": [check.to_dict() for check in result.checks if not check.passed or check.severity == Severity.WARNING],
        "counts": {"passed": result.passed_count, "failed": result.failed_count},
    }


def _session_dict(session: WorkflowSession | None, verbose: bool) -> dict[str, Any] | None:
    if session is None:
        return None
    if verbose:
        return dict(session.to_dict())
    return {
        "id": session.id,
        "branch_name": session.branch_name,
        "kind": session.kind.value,
        "state": session.state.value,
    }


@dataclass(frozen=True)
class Done:
    """The operation's mutation completed."""

    operation: str
    payload: dict[str, Any] = field(default_factory=dict)
    pre_checks: VerificationResult = field(default_factory=VerificationResult)
    post_checks: VerificationResult = field(default_factory=VerificationResult)
    warnings: list[str] = field(default_factory=list)
    session: WorkflowSession | None = None

    status: ClassVar[str] = "done"
    exit_code: ClassVar[int] = 0

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "operation": self.operation,
            "payload": self.payload,
            "warnings": self.warnings,
            "pre_checks": _checks_dict(self.pre_checks, verbose),
            "post_checks": _checks_dict(self.post_checks, verbose),
        }
        if self.session is not None:
            data["session"] = _session_dict(self.session, verbose)
        return data


@dataclass(frozen=True)
class NeedsInput:
    """A required parameter is missing.

    Attributes:
        missing: Name of the parameter to supply on the follow-up call
        prompt: What the caller is being asked for
        context: Data that helps the caller compute the value (diff, files)
        next_steps: Human-readable hints for the follow-up call
    """

    operation: str
    missing: str
    prompt: str
    context: dict[str, Any] = field(default_factory=dict)
    next_steps: list[str] = field(default_factory=list)

    status: ClassVar[str] = "needs_input"
    exit_code: ClassVar[int] = 2

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        return {
            "status": self.status,
            "operation": self.operation,
            "missing": self.missing,
            "prompt": self.prompt,
            "context": self.context,
            "next_steps": self.next_steps,
        }


@dataclass(frozen=True)
class NeedsChoice:
    """Recoverable pre-conditions were found and nothing was changed."""

    operation: str
    message: str
    choices: tuple[CheckResult, ...]
    pre_checks: VerificationResult = field(default_factory=VerificationResult)

    status: ClassVar[str] = "needs_choice"
    exit_code: ClassVar[int] = 2

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        return {
            "status": self.status,
            "operation": self.operation,
            "message": self.message,
            "choices": [
                {
                    "check": check.name,
                    "message": check.display_message,
                    "options": [option.to_dict() for option in check.options],
                    "recommended": check.recommended_option.id if check.recommended_option else None,
                }
                for check in self.choices
            ],
            "pre_checks": _checks_dict(self.pre_checks, verbose),
        }


@dataclass(frozen=True)
class Failed:
    """The operation was rejected, or its mutation did not complete.

    Attributes:
        phase: Pipeline phase that produced the failure
        errors: Human-readable messages, never empty
        suggestions: Concrete remedies (commands or actions)
        completed_steps: Mutation steps that finished before the failure;
            they are left in place
    """

    operation: str
    phase: Phase
    errors: list[str]
    suggestions: list[str] = field(default_factory=list)
    pre_checks: VerificationResult | None = None
    post_checks: VerificationResult | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    completed_steps: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    status: ClassVar[str] = "failed"
    exit_code: ClassVar[int] = 1

    def __post_init__(self) -> None:
        if not self.errors:
            raise ValueError("Failed results need at least one error message")

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "operation": self.operation,
            "phase": self.phase.value,
            "errors": self.errors,
            "suggestions": self.suggestions,
            "warnings": self.warnings,
        }
        if self.completed_steps:
            data["completed_steps"] = self.completed_steps
        if self.payload:
            data["payload"] = self.payload
        if self.pre_checks is not None:
            data["pre_checks"] = _checks_dict(self.pre_checks, verbose)
        if self.post_checks is not None:
            data["post_checks"] = _checks_dict(self.post_checks, verbose)
        return data


OperationResult = Done | NeedsInput | NeedsChoice | Failed
