"""``abort``: end a session without shipping it, optionally deleting its branch."""

from datetime import UTC, datetime

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.exceptions import GitOperationError
from linear_flow.models.session import SessionState
from linear_flow.operations.common import save_transition

log = structlog.get_logger(__name__)


async def _build_context(ctx: OperationContext) -> None:
    ctx.current_branch = await ctx.git.current_branch()
    ctx.target_branch = (ctx.param("branch_name") or ctx.current_branch).strip()
    ctx.session = await ctx.store.get_by_branch(ctx.target_branch)


async def _delete_branch(ctx: OperationContext, outcome: MutationOutcome, branch: str) -> None:
    """Delete ``branch`` locally and remotely. Failures become warnings."""
    git = ctx.git
    try:
        if await git.current_branch() == branch:
            await git.checkout(ctx.base_branch)
        if await git.branch_exists(branch):
            await git.delete_branch(branch, force=True)
        outcome.step("delete_branch")
    except GitOperationError as e:
        outcome.warnings.append(f"Could not delete local branch '{branch}': {e.message}")

    remote_deleted = False
    try:
        if await git.remote_branch_exists(branch):
            await git.delete_remote_branch(branch)
            remote_deleted = True
    except GitOperationError as e:
        outcome.warnings.append(f"Could not delete remote branch '{branch}': {e.message}")

    if outcome.session is not None:
        outcome.session.metadata["branch"] = {
            "deleted_at": datetime.now(UTC).isoformat(),
            "remote_deleted": remote_deleted,
        }
        await ctx.store.update(outcome.session.id, outcome.session)


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    session = ctx.session
    assert session is not None
    branch = session.branch_name
    outcome = MutationOutcome(session=session, expected_state=SessionState.ABORTED, facts={"branch": branch})

    if session.is_active:
        await save_transition(ctx, session, SessionState.ABORTED, "abort", {"reason": ctx.param("reason", "aborted")})
        outcome.step("abort")
        log.info("session_aborted", session_id=session.id, branch=branch)
    else:
        outcome.expected_state = session.state
        outcome.warnings.append(f"Session on '{branch}' is already {session.state}; nothing to abort")

    if ctx.flag("delete_branch"):
        await _delete_branch(ctx, outcome, branch)

    outcome.payload = {
        "branch": branch,
        "session_id": session.id,
        "state": session.state.value,
        "branch_deleted": "delete_branch" in outcome.steps,
    }
    return outcome


def _post_checks(ctx: OperationContext, outcome: MutationOutcome) -> list[VerificationName]:
    names = [VerificationName.SESSION_STATE_CORRECT]
    if "abort" in outcome.steps:
        names.append(VerificationName.SESSION_ABORTED)
    if ctx.flag("delete_branch"):
        names.append(VerificationName.FEATURE_BRANCH_DELETED)
    return names


OPERATION = Operation(
    name="abort",
    build_context=_build_context,
    mutate=_mutate,
    pre_checks=(CheckName.IS_GIT_REPOSITORY, CheckName.SESSION_RECORDED),
    post_checks=_post_checks,
)
