"""Custom exception hierarchy for linear-flow.

Collaborators (git, code host, session store, configuration) raise these
typed errors. The pipeline is the only layer that converts them into
structured results, so nothing below it needs to know about result shapes.

Exception Hierarchy:
    LinearFlowError (base)
    ├── ConfigurationError
    ├── NotInitializedError
    ├── GitOperationError
    │   ├── NotGitRepositoryError
    │   ├── NoRemotesError
    │   └── InvalidGitUrlError
    ├── SessionError
    │   ├── SessionNotFoundError
    │   ├── InvalidTransitionError
    │   └── DuplicateActiveSessionError
    ├── ExternalServiceError
    │   ├── CITimeoutError
    │   └── CIFailedError
    └── WorkflowError
        └── StepFailedError

Example Usage:
    >>> from linear_flow.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""

from typing import Any


class LinearFlowError(Exception):
    """Base exception for all linear-flow errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(LinearFlowError):
    """Configuration-related errors.

    Examples:
        - Configuration file unreadable
        - Invalid YAML syntax
        - Unset environment variable referenced without a default
        - Invalid configuration values
    """

    pass


class NotInitializedError(LinearFlowError):
    """The project has not been initialized with ``linear-flow init``."""

    def __init__(self, message: str = "linear-flow is not initialized. Run `linear-flow init` first.") -> None:
        super().__init__(message)


# =============================================================================
# Git Errors
# =============================================================================


class GitOperationError(LinearFlowError):
    """A git command failed or the repository is in an unusable state.

    Attributes:
        command: The git arguments that failed (without the leading ``git``)
        stderr: Captured standard error of the failing command
        hint: Optional remedy shown to the user
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        stderr: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.command = command or []
        self.stderr = stderr
        self.hint = hint

        full_message = message
        if hint:
            full_message = f"{message}\n\nHint: {hint}"

        super().__init__(full_message)
        self.message = message


class NotGitRepositoryError(GitOperationError):
    """Directory is not inside a git repository."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Not a git repository: {path}",
            hint="Run this command from inside a git checkout, or run `git init` first.",
        )


class NoRemotesError(GitOperationError):
    """The repository has no remotes configured."""

    def __init__(self) -> None:
        super().__init__(
            "No git remotes configured",
            hint="Add one with: git remote add origin <url>",
        )


class InvalidGitUrlError(GitOperationError):
    """A remote URL could not be parsed into owner and repository."""

    def __init__(self, url: str, reason: str | None = None) -> None:
        self.url = url
        message = f"Invalid git URL: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(LinearFlowError):
    """Base class for workflow session errors."""

    pass


class SessionNotFoundError(SessionError):
    """No session record exists for the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class InvalidTransitionError(SessionError):
    """The requested state transition is not allowed from the current state.

    Attributes:
        from_state: State the session is currently in
        to_state: State that was requested
    """

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")


class DuplicateActiveSessionError(SessionError):
    """An active session already exists for the branch."""

    def __init__(self, branch: str, session_id: str) -> None:
        self.branch = branch
        self.session_id = session_id
        super().__init__(f"Branch '{branch}' already has an active session ({session_id})")


# =============================================================================
# External Service Errors
# =============================================================================


class ExternalServiceError(LinearFlowError):
    """Code-host communication errors.

    Examples:
        - API returned an error status
        - Authentication failed
        - Network connectivity issue
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class CITimeoutError(ExternalServiceError):
    """CI checks did not reach a conclusion before the wait timed out."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        minutes = round(timeout_seconds / 60)
        super().__init__(f"Timed out waiting for CI checks ({minutes} minutes)")


class CIFailedError(ExternalServiceError):
    """One or more CI checks concluded with failure or cancellation."""

    def __init__(self, failed_checks: list[str]) -> None:
        self.failed_checks = failed_checks
        super().__init__(f"CI checks failed: {', '.join(failed_checks)}")


# =============================================================================
# Workflow Errors
# =============================================================================


class WorkflowError(LinearFlowError):
    """Workflow execution errors."""

    pass


class StepFailedError(WorkflowError):
    """A step of a multi-step mutation failed.

    Steps that already completed are left in place; this error records how
    far the mutation got so the caller can decide how to continue.

    Attributes:
        step: Name of the step that failed
        completed_steps: Steps that finished before the failure, in order
        payload: Partial operation output (e.g. the PR that was created)
        suggestion: Concrete remedy for the user
    """

    def __init__(
        self,
        message: str,
        step: str,
        completed_steps: list[str] | None = None,
        payload: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.step = step
        self.completed_steps = list(completed_steps or [])
        self.payload = dict(payload or {})
        self.suggestion = suggestion
        super().__init__(message)
