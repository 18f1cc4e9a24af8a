"""Operation context passed through the pipeline.

One OperationContext is created per pipeline invocation. Parameter
collection and context construction fill it in; checks read it; the
mutation hook reads it and records what it did in a MutationOutcome.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from linear_flow.config.settings import LinearFlowSettings
from linear_flow.engine.session_store import SessionStore
from linear_flow.git.operations import GitOperations
from linear_flow.models.checks import ResolutionOption
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.providers.base import CodeHost


@dataclass
class OperationContext:
    """Context passed through the phases of one operation.

    Attributes:
        operation: Name of the running operation
        settings: Explicit configuration for this invocation
        git: Working-copy collaborator
        store: Session store
        host: Code host client, when one is configured
        params: Caller-supplied parameter bag
        current_branch: Branch checked out when the operation started
        target_branch: Branch the operation acts on (new, current or swapped-to)
        session: Session the operation acts on
        offered_resolutions: Option ids the operation can apply, per check name
        resolutions: Options selected in phase 5, per check name
        data: Operation-specific values computed during context construction
    """

    operation: str
    settings: LinearFlowSettings
    git: GitOperations
    store: SessionStore
    host: CodeHost | None = None
    params: dict[str, Any] = field(default_factory=dict)

    current_branch: str | None = None
    target_branch: str | None = None
    session: WorkflowSession | None = None

    offered_resolutions: Mapping[str, Sequence[str]] = field(default_factory=dict)
    resolutions: dict[str, ResolutionOption] = field(default_factory=dict)

    data: dict[str, Any] = field(default_factory=dict)

    @property
    def base_branch(self) -> str:
        return self.settings.workflow.base_branch

    @property
    def auto(self) -> bool:
        """Caller's auto-resolution choice, defaulting to the configured preference."""
        value = self.params.get("auto")
        return self.settings.workflow.auto_mode if value is None else bool(value)

    def param(self, name: str, default: Any = None) -> Any:
        """Get a parameter, treating None and blank strings as missing."""
        value = self.params.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        return value

    def flag(self, name: str) -> bool:
        return bool(self.params.get(name, False))

    def resolution(self, check: str) -> str | None:
        """Id of the option chosen for ``check``, if any."""
        option = self.resolutions.get(check)
        return option.id if option else None


@dataclass
class MutationOutcome:
    """What a mutation hook did, for post-condition checks and the result.

    Attributes:
        payload: Operation-specific output returned to the caller
        session: Session after the mutation, as persisted
        warnings: Non-fatal problems met while mutating
        expected_state: State the session should now be in
        facts: Values the verifications compare against (branch, commit sha, ...)
        steps: Names of the mutation steps that completed, in order
    """

    payload: dict[str, Any] = field(default_factory=dict)
    session: WorkflowSession | None = None
    warnings: list[str] = field(default_factory=list)
    expected_state: SessionState | None = None
    facts: dict[str, Any] = field(default_factory=dict)
    steps: list[str] = field(default_factory=list)

    def step(self, name: str) -> None:
        self.steps.append(name)
