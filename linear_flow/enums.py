"""Enumerations shared across the linear-flow engine."""

from enum import Enum


class WorkflowKind(str, Enum):
    """Kind of workflow a session belongs to."""

    FEATURE = "feature"
    HOTFIX = "hotfix"

    def __str__(self) -> str:
        return self.value


class Severity(str, Enum):
    """Severity of a check result.

    ``ERROR`` blocks the mutation, ``RECOVERABLE`` halts it until the caller
    picks a resolution, ``WARNING`` and ``INFO`` are advisory only.
    """

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    RECOVERABLE = "recoverable"

    def __str__(self) -> str:
        return self.value

    @property
    def is_blocking(self) -> bool:
        """Check if a failed result at this severity prevents the mutation."""
        return self in (Severity.ERROR, Severity.RECOVERABLE)


class RiskTier(str, Enum):
    """Coarse risk of applying a resolution option."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        """Numeric ordering, lowest risk first."""
        return _RISK_RANK[self]


_RISK_RANK = {RiskTier.LOW: 0, RiskTier.MEDIUM: 1, RiskTier.HIGH: 2}


class HotfixSeverity(str, Enum):
    """Urgency of a hotfix, encoded in its branch name."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"

    def __str__(self) -> str:
        return self.value


class Phase(str, Enum):
    """Pipeline phase in which a result was produced."""

    INITIALIZATION = "initialization"
    PARAMETERS = "parameters"
    CONTEXT = "context"
    PRE_CHECKS = "pre_checks"
    RESOLUTION = "resolution"
    MUTATION = "mutation"
    POST_CHECKS = "post_checks"

    def __str__(self) -> str:
        return self.value
