"""Post-condition verification run after a mutation.

Each verification confirms that a side effect the mutation claims to have
made actually took hold. Verifications never return recoverable results:
the mutation already happened, so there is nothing left to negotiate. A
failed verification is reported but does not undo the mutation.
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from pathlib import Path

import structlog

from linear_flow.config.settings import LinearFlowSettings
from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.preflight import validate_registry
from linear_flow.enums import Severity
from linear_flow.exceptions import ConfigurationError
from linear_flow.models.checks import CheckResult, VerificationResult
from linear_flow.models.session import SessionState, WorkflowSession

log = structlog.get_logger(__name__)


class VerificationName(str, Enum):
    """Every post-condition verification an operation can request."""

    CONFIGURATION_WRITTEN = "configuration_written"
    STATE_DIRECTORY_READY = "state_directory_ready"
    SESSION_CREATED = "session_created"
    FEATURE_BRANCH_CREATED = "feature_branch_created"
    BRANCH_CHECKED_OUT = "branch_checked_out"
    SESSION_STATE_CORRECT = "session_state_correct"
    NO_UNCOMMITTED_CHANGES = "no_uncommitted_changes"
    COMMIT_CREATED = "commit_created"
    BRANCH_PUSHED = "branch_pushed"
    PULL_REQUEST_LINKED = "pull_request_linked"
    BRANCH_MERGED = "branch_merged"
    FEATURE_BRANCH_DELETED = "feature_branch_deleted"
    SESSION_CLOSED = "session_closed"
    SESSION_ABORTED = "session_aborted"
    STASH_RESTORED = "stash_restored"

    def __str__(self) -> str:
        return self.value


Verification = Callable[[OperationContext, MutationOutcome], Awaitable[CheckResult]]


async def _stored_session(ctx: OperationContext, outcome: MutationOutcome) -> WorkflowSession | None:
    if outcome.session is None:
        return None
    return await ctx.store.get(outcome.session.id)


async def configuration_written(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.CONFIGURATION_WRITTEN.value
    path = Path(outcome.facts["config_path"])
    if not path.exists():
        return CheckResult.error(name, f"Configuration file {path} was not written")
    try:
        written = LinearFlowSettings.from_yaml(str(path))
    except ConfigurationError as e:
        return CheckResult.error(name, f"Configuration file is invalid: {e.message}")
    if not written.initialized:
        return CheckResult.error(name, f"{path} does not mark the project as initialized")
    return CheckResult.ok(name, f"Configuration written to {path}")


async def state_directory_ready(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.STATE_DIRECTORY_READY.value
    state_dir = Path(outcome.facts["state_dir"])
    if state_dir.is_dir():
        return CheckResult.ok(name, f"Session directory {state_dir} exists")
    return CheckResult.error(name, f"Session directory {state_dir} is missing")


async def session_created(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.SESSION_CREATED.value
    if outcome.session is None:
        return CheckResult.error(name, "No session was created")
    stored = await _stored_session(ctx, outcome)
    if stored is None:
        return CheckResult.error(name, f"Session {outcome.session.id} was not persisted")
    if stored.branch_name != outcome.session.branch_name:
        return CheckResult.error(
            name,
            f"Session {stored.id} is recorded for '{stored.branch_name}', "
            f"expected '{outcome.session.branch_name}'",
        )
    return CheckResult.ok(name, f"Session {stored.id} recorded", session_id=stored.id)


async def feature_branch_created(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.FEATURE_BRANCH_CREATED.value
    branch = outcome.facts["branch"]
    if await ctx.git.branch_exists(branch):
        return CheckResult.ok(name, f"Branch '{branch}' exists")
    return CheckResult.error(name, f"Branch '{branch}' does not exist")


async def branch_checked_out(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.BRANCH_CHECKED_OUT.value
    expected = outcome.facts["branch"]
    current = await ctx.git.current_branch()
    if current == expected:
        return CheckResult.ok(name, f"On '{expected}'")
    return CheckResult.error(
        name,
        f"Checked out '{current}', expected '{expected}'",
        suggestion=f"git checkout {expected}",
    )


async def session_state_correct(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.SESSION_STATE_CORRECT.value
    stored = await _stored_session(ctx, outcome)
    if stored is None:
        return CheckResult.error(name, "Session record not found")
    if outcome.expected_state is None or stored.state == outcome.expected_state:
        return CheckResult.ok(name, f"Session is {stored.state}")
    return CheckResult.error(name, f"Session is {stored.state}, expected {outcome.expected_state}")


async def no_uncommitted_changes(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.NO_UNCOMMITTED_CHANGES.value
    status = await ctx.git.status()
    if status.is_clean:
        return CheckResult.ok(name, "Working directory clean")
    return CheckResult.warning(name, f"Working directory not clean: {status.summary()}", passed=False)


async def commit_created(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.COMMIT_CREATED.value
    expected = outcome.facts["commit_sha"]
    head = await ctx.git.head_sha()
    if head == expected:
        return CheckResult.ok(name, f"Commit {expected[:8]} is HEAD", sha=expected)
    return CheckResult.error(name, f"HEAD is {head[:8]}, expected commit {expected[:8]}")


async def branch_pushed(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.BRANCH_PUSHED.value
    branch = outcome.facts["branch"]
    if outcome.facts.get("remote_deleted"):
        return CheckResult.ok(name, f"'{branch}' was pushed and removed from the remote after merge")
    if await ctx.git.remote_branch_exists(branch):
        return CheckResult.ok(name, f"'{branch}' exists on {ctx.settings.workflow.remote}")
    return CheckResult.error(name, f"'{branch}' not found on {ctx.settings.workflow.remote}")


async def pull_request_linked(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.PULL_REQUEST_LINKED.value
    number = outcome.facts.get("pr_number")
    stored = await _stored_session(ctx, outcome)
    linked = (stored.metadata.get("pr") or {}).get("number") if stored else None
    if number is not None and linked == number:
        return CheckResult.ok(name, f"Session linked to PR #{number}")
    return CheckResult.error(name, f"Session is linked to PR {linked!r}, expected #{number}")


async def branch_merged(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.BRANCH_MERGED.value
    number = outcome.facts.get("pr_number")
    if ctx.host is None or number is None:
        return CheckResult.error(name, "No pull request to check")
    pr = await ctx.host.get_pull_request(number)
    if pr.merged:
        return CheckResult.ok(name, f"PR #{number} is merged")
    return CheckResult.error(name, f"PR #{number} is {pr.status}, not merged", suggestion=pr.url or None)


async def feature_branch_deleted(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.FEATURE_BRANCH_DELETED.value
    branch = outcome.facts["branch"]
    if not await ctx.git.branch_exists(branch):
        return CheckResult.ok(name, f"Local branch '{branch}' deleted")
    return CheckResult.warning(
        name,
        f"Local branch '{branch}' still exists",
        passed=False,
        suggestion=f"git branch -D {branch}",
    )


async def _session_in(ctx: OperationContext, outcome: MutationOutcome, name: str, state: SessionState) -> CheckResult:
    stored = await _stored_session(ctx, outcome)
    if stored is None:
        return CheckResult.error(name, "Session record not found")
    if stored.state == state:
        return CheckResult.ok(name, f"Session {stored.id[:8]} is {state}")
    return CheckResult.error(name, f"Session {stored.id[:8]} is {stored.state}, expected {state}")


async def session_closed(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    return await _session_in(ctx, outcome, VerificationName.SESSION_CLOSED.value, SessionState.COMPLETE)


async def session_aborted(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    return await _session_in(ctx, outcome, VerificationName.SESSION_ABORTED.value, SessionState.ABORTED)


async def stash_restored(ctx: OperationContext, outcome: MutationOutcome) -> CheckResult:
    name = VerificationName.STASH_RESTORED.value
    ref = outcome.facts.get("stash_ref")
    if not ref:
        return CheckResult.ok(name, "No stash to restore")
    if outcome.facts.get("stash_conflict"):
        return CheckResult.warning(
            name,
            f"Stash {ref} did not apply cleanly and was kept",
            passed=False,
            suggestion="Resolve the conflicts, then run: git stash drop",
        )
    if outcome.facts.get("stash_restored"):
        return CheckResult.ok(name, f"Stash {ref} restored")
    return CheckResult.warning(
        name,
        f"Stash {ref} was not restored",
        passed=False,
        suggestion=f"git stash pop {ref}",
    )


VERIFICATIONS: dict[VerificationName, Verification] = {
    VerificationName.CONFIGURATION_WRITTEN: configuration_written,
    VerificationName.STATE_DIRECTORY_READY: state_directory_ready,
    VerificationName.SESSION_CREATED: session_created,
    VerificationName.FEATURE_BRANCH_CREATED: feature_branch_created,
    VerificationName.BRANCH_CHECKED_OUT: branch_checked_out,
    VerificationName.SESSION_STATE_CORRECT: session_state_correct,
    VerificationName.NO_UNCOMMITTED_CHANGES: no_uncommitted_changes,
    VerificationName.COMMIT_CREATED: commit_created,
    VerificationName.BRANCH_PUSHED: branch_pushed,
    VerificationName.PULL_REQUEST_LINKED: pull_request_linked,
    VerificationName.BRANCH_MERGED: branch_merged,
    VerificationName.FEATURE_BRANCH_DELETED: feature_branch_deleted,
    VerificationName.SESSION_CLOSED: session_closed,
    VerificationName.SESSION_ABORTED: session_aborted,
    VerificationName.STASH_RESTORED: stash_restored,
}

validate_registry(VERIFICATIONS, VerificationName)


class PostflightEngine:
    """Runs named post-condition verifications in order."""

    def __init__(self, registry: Mapping[VerificationName, Verification] | None = None) -> None:
        self.registry = dict(VERIFICATIONS if registry is None else registry)

    async def run(
        self,
        names: Iterable[VerificationName],
        ctx: OperationContext,
        outcome: MutationOutcome,
    ) -> VerificationResult:
        """Run ``names`` against the mutation's outcome.

        Any exception inside a verification becomes an error result for that
        verification; the rest still run.
        """
        results = []
        for name in names:
            verification = self.registry[name]
            try:
                result = await verification(ctx, outcome)
            except Exception as e:
                log.error("verification_raised", check=name.value, error=str(e), exc_info=True)
                result = CheckResult.error(name.value, f"Could not verify: {e}")
            if result.severity == Severity.RECOVERABLE:
                result = CheckResult.error(result.name, result.display_message, **(result.details or {}))
            log.debug("post_check", check=name.value, passed=result.passed, severity=result.severity.value)
            results.append(result)
        return VerificationResult.of(results)
