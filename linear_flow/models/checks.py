"""Check results, resolution options and their aggregation.

Both the pre-condition and the post-condition engines produce
:class:`CheckResult` values; :class:`VerificationResult` is derived from a
list of them and holds no state of its own.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from linear_flow.enums import RiskTier, Severity


@dataclass(frozen=True)
class ResolutionOption:
    """One way to resolve a recoverable check.

    Example:
        >>> ResolutionOption(
        ...     id="stash",
        ...     label="Stash changes",
        ...     description="Stash uncommitted changes and restore them on the new branch",
        ...     action="git stash push --include-untracked",
        ...     risk=RiskTier.LOW,
        ... )
    """

    id: str
    """Machine id the caller sends back to choose this option."""

    label: str
    """Short human label."""

    description: str
    """What applying the option will do."""

    action: str
    """Concrete action (usually the equivalent git command)."""

    risk: RiskTier = RiskTier.LOW
    """Coarse risk of applying the option."""

    discards_work: bool = False
    """True if applying the option loses uncommitted or unpushed work."""

    recommended: bool = False
    """Set on at most one option per check by :func:`with_recommendation`."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "action": self.action,
            "risk": self.risk.value,
            "discards_work": self.discards_work,
            "recommended": self.recommended,
        }


def pick_recommended(options: Sequence[ResolutionOption]) -> ResolutionOption | None:
    """Select the option to recommend.

    The lowest risk tier among options that do not discard work wins; ties
    go to the option listed first. Returns None when every option discards
    work.
    """
    candidates = [option for option in options if not option.discards_work]
    if not candidates:
        return None
    # min() is stable, so declaration order breaks ties
    return min(candidates, key=lambda option: option.risk.rank)


def with_recommendation(options: Sequence[ResolutionOption]) -> list[ResolutionOption]:
    """Return copies of ``options`` with exactly the recommended one flagged."""
    chosen = pick_recommended(options)
    return [
        ResolutionOption(
            id=option.id,
            label=option.label,
            description=option.description,
            action=option.action,
            risk=option.risk,
            discards_work=option.discards_work,
            recommended=option is chosen,
        )
        for option in options
    ]


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single pre- or post-condition check."""

    name: str
    passed: bool
    message: str = ""
    severity: Severity = Severity.INFO
    details: dict[str, Any] | None = None
    options: tuple[ResolutionOption, ...] = ()
    suggestion: str | None = None
    """Concrete remedy (command or action) for a failed check."""

    def __post_init__(self) -> None:
        if self.severity.is_blocking and self.passed:
            raise ValueError(f"Check '{self.name}': {self.severity} results cannot pass")
        if self.severity == Severity.RECOVERABLE and not self.options:
            raise ValueError(f"Check '{self.name}': recoverable results need at least one option")
        if sum(1 for option in self.options if option.recommended) > 1:
            raise ValueError(f"Check '{self.name}': at most one option may be recommended")

    @classmethod
    def ok(cls, name: str, message: str = "", **details: Any) -> "CheckResult":
        return cls(name=name, passed=True, message=message, details=details or None)

    @classmethod
    def error(cls, name: str, message: str, suggestion: str | None = None, **details: Any) -> "CheckResult":
        return cls(
            name=name,
            passed=False,
            message=message,
            severity=Severity.ERROR,
            suggestion=suggestion,
            details=details or None,
        )

    @classmethod
    def warning(
        cls,
        name: str,
        message: str,
        passed: bool = True,
        suggestion: str | None = None,
        **details: Any,
    ) -> "CheckResult":
        return cls(
            name=name,
            passed=passed,
            message=message,
            severity=Severity.WARNING,
            suggestion=suggestion,
            details=details or None,
        )

    @classmethod
    def recoverable(
        cls,
        name: str,
        message: str,
        options: Sequence[ResolutionOption],
        **details: Any,
    ) -> "CheckResult":
        """Build a recoverable failure, flagging the recommended option."""
        return cls(
            name=name,
            passed=False,
            message=message,
            severity=Severity.RECOVERABLE,
            options=tuple(with_recommendation(options)),
            details=details or None,
        )

    @property
    def display_message(self) -> str:
        """Message, falling back to the check name."""
        return self.message or self.name

    @property
    def recommended_option(self) -> ResolutionOption | None:
        return next((option for option in self.options if option.recommended), None)

    def option(self, option_id: str) -> ResolutionOption | None:
        return next((option for option in self.options if option.id == option_id), None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "passed": self.passed,
            "message": self.display_message,
            "severity": self.severity.value,
        }
        if self.details:
            data["details"] = self.details
        if self.suggestion:
            data["suggestion"] = self.suggestion
        if self.options:
            data["options"] = [option.to_dict() for option in self.options]
        return data


@dataclass(frozen=True)
class VerificationResult:
    """Aggregate of one engine run, derived purely from its check results."""

    checks: tuple[CheckResult, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, checks: Sequence[CheckResult]) -> "VerificationResult":
        return cls(checks=tuple(checks))

    @property
    def all_passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failed(self) -> list[CheckResult]:
        return [check for check in self.checks if not check.passed]

    @property
    def errors(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed and c.severity == Severity.ERROR]

    @property
    def recoverable(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed and c.severity == Severity.RECOVERABLE]

    @property
    def warnings(self) -> list[CheckResult]:
        return [c for c in self.checks if c.severity == Severity.WARNING and c.message]

    @property
    def failures(self) -> list[str]:
        """Messages of failed ``error`` checks."""
        return [check.display_message for check in self.errors]

    @property
    def warning_messages(self) -> list[str]:
        return [check.display_message for check in self.warnings]

    @property
    def recoverable_messages(self) -> list[str]:
        return [check.display_message for check in self.recoverable]

    @property
    def passed_count(self) -> int:
        return sum(1 for check in self.checks if check.passed)

    @property
    def failed_count(self) -> int:
        return len(self.checks) - self.passed_count

    def count(self, severity: Severity) -> int:
        """Number of results reported at ``severity``, passed or not."""
        return sum(1 for check in self.checks if check.severity == severity)

    def get(self, name: str) -> CheckResult | None:
        return next((check for check in self.checks if check.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "all_passed": self.all_passed,
            "checks": [check.to_dict() for check in self.checks],
            "failures": self.failures,
            "warnings": self.warning_messages,
            "recoverable": self.recoverable_messages,
            "counts": {
                "passed": self.passed_count,
                "failed": self.failed_count,
                **{severity.value: self.count(severity) for severity in Severity},
            },
        }
