"""``commit``: record work on the session's branch."""

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.results import NeedsInput
from linear_flow.exceptions import InvalidTransitionError
from linear_flow.models.session import SessionState
from linear_flow.operations.common import MAX_LISTED_FILES, resolve_current_session, save_transition


async def _collect(ctx: OperationContext) -> NeedsInput | None:
    if ctx.param("message"):
        return None

    status = await ctx.git.status()
    if status.is_clean:
        # Nothing to describe; the pre-checks report it
        return None
    return NeedsInput(
        operation="commit",
        missing="message",
        prompt="Write a commit message describing these changes",
        context={
            "summary": status.summary(),
            "changed_files": status.changed_files[:MAX_LISTED_FILES],
            "diff_stat": await ctx.git.diff_stat(cached=ctx.flag("staged_only")),
        },
        next_steps=['linear-flow commit -m "<message>"'],
    )


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    session = ctx.session
    assert session is not None
    if not session.can_transition_to(SessionState.CHANGES_COMMITTED):
        raise InvalidTransitionError(session.state.value, SessionState.CHANGES_COMMITTED.value)

    outcome = MutationOutcome(session=session, expected_state=SessionState.CHANGES_COMMITTED)
    staged_only = ctx.flag("staged_only")
    files = (await ctx.git.status()).changed_files

    if not staged_only:
        await ctx.git.stage_all()
        outcome.step("stage")

    message = ctx.param("message")
    sha = await ctx.git.commit(message, no_verify=ctx.flag("no_verify"))
    outcome.step("commit")
    outcome.facts["commit_sha"] = sha

    await save_transition(ctx, session, SessionState.CHANGES_COMMITTED, "commit", {"sha": sha})
    outcome.step("transition")

    outcome.payload = {
        "sha": sha,
        "message": message,
        "branch": session.branch_name,
        "session_id": session.id,
        "files": files,
    }
    return outcome


def _post_checks(ctx: OperationContext, outcome: MutationOutcome) -> list[VerificationName]:
    names = [VerificationName.COMMIT_CREATED, VerificationName.SESSION_STATE_CORRECT]
    if not ctx.flag("staged_only"):
        names.append(VerificationName.NO_UNCOMMITTED_CHANGES)
    return names


OPERATION = Operation(
    name="commit",
    collect_parameters=_collect,
    build_context=resolve_current_session,
    mutate=_mutate,
    pre_checks=(
        CheckName.ACTIVE_SESSION_EXISTS,
        CheckName.ON_NON_BASE_BRANCH,
        CheckName.HAS_UNCOMMITTED_CHANGES,
    ),
    post_checks=_post_checks,
)
