"""``launch``: start a feature session on a new branch cut from the base branch."""

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.results import NeedsInput
from linear_flow.engine.stash import StashManager
from linear_flow.enums import WorkflowKind
from linear_flow.exceptions import SessionNotFoundError
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.operations.common import (
    BRANCH_TYPES,
    MAX_LISTED_FILES,
    NAMING_RULE,
    clear_working_tree,
    save_transition,
)

log = structlog.get_logger(__name__)


async def _collect(ctx: OperationContext) -> NeedsInput | None:
    if ctx.param("branch_name"):
        return None

    status = await ctx.git.status()
    return NeedsInput(
        operation="launch",
        missing="branch_name",
        prompt="Choose a branch name for the new work",
        context={
            "description": ctx.param("description"),
            "has_uncommitted_changes": not status.is_clean,
            "changed_files": status.changed_files[:MAX_LISTED_FILES],
            "naming_rule": NAMING_RULE,
            "allowed_types": list(BRANCH_TYPES),
        },
        next_steps=["linear-flow launch feature/<short-description>"],
    )


async def _build_context(ctx: OperationContext) -> None:
    ctx.current_branch = await ctx.git.current_branch()
    ctx.target_branch = ctx.param("branch_name").strip()


async def _resume(ctx: OperationContext, outcome: MutationOutcome, stash_label: str | None) -> MutationOutcome:
    branch = ctx.target_branch
    session = await ctx.store.get_by_branch(branch)
    if session is None:
        raise SessionNotFoundError(branch)

    await ctx.git.checkout(branch)
    outcome.step("checkout")
    if stash_label:
        outcome.facts.update(await StashManager(ctx.git).restore(stash_label))
        outcome.step("restore_stash")

    outcome.session = session
    outcome.expected_state = session.state
    outcome.payload = {"branch": branch, "session_id": session.id, "resumed": True, "state": session.state.value}
    log.info("session_resumed", session_id=session.id, branch=branch)
    return outcome


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    branch = ctx.target_branch
    base = ctx.base_branch
    outcome = MutationOutcome(expected_state=SessionState.BRANCH_READY, facts={"branch": branch})

    stashed = await clear_working_tree(ctx, "launch")
    stash_label = stashed[1] if stashed else None
    if ctx.resolution(CheckName.WORKING_TREE_CLEAN):
        outcome.step("working_tree")
    outcome.facts["carried_over"] = ctx.resolution(CheckName.WORKING_TREE_CLEAN) == "carry_over"

    existing_choice = ctx.resolution(CheckName.NO_ACTIVE_SESSION_ON_BRANCH)
    if existing_choice == "resume_existing":
        return await _resume(ctx, outcome, stash_label)
    if existing_choice == "abort_existing":
        existing = await ctx.store.get_by_branch(branch)
        if existing is not None and existing.is_active:
            await save_transition(ctx, existing, SessionState.ABORTED, "launch", {"reason": "relaunched"})
            outcome.step("abort_existing")

    start_point = base
    if ctx.resolution(CheckName.ON_BASE_BRANCH) == "switch_to_base":
        await ctx.git.checkout(base)
        outcome.step("switch_to_base")
    elif ctx.resolution(CheckName.ON_BASE_BRANCH) == "branch_from_current":
        start_point = ctx.current_branch

    if ctx.resolution(CheckName.BASE_BRANCH_SYNCED) == "pull_base":
        await ctx.git.pull(base)
        outcome.step("pull_base")

    # A relaunch over an aborted session reuses its branch
    if await ctx.git.branch_exists(branch):
        await ctx.git.checkout(branch)
    else:
        await ctx.git.create_branch(branch, start_point)
    outcome.step("create_branch")

    description = ctx.param("description")
    session = WorkflowSession.create(
        branch,
        kind=WorkflowKind.FEATURE,
        trigger="launch",
        metadata={"description": description, "base_branch": base, "start_point": start_point},
        ttl_days=ctx.settings.workflow.session_ttl_days,
    )
    await ctx.store.create(session)
    outcome.step("create_session")
    outcome.session = session

    if stash_label:
        outcome.facts.update(await StashManager(ctx.git).restore(stash_label))
        outcome.step("restore_stash")

    outcome.payload = {
        "branch": branch,
        "session_id": session.id,
        "base_branch": base,
        "start_point": start_point,
        "description": description,
        "stashed": stash_label is not None,
    }
    return outcome


def _post_checks(ctx: OperationContext, outcome: MutationOutcome) -> list[VerificationName]:
    names = [
        VerificationName.SESSION_CREATED,
        VerificationName.FEATURE_BRANCH_CREATED,
        VerificationName.BRANCH_CHECKED_OUT,
        VerificationName.SESSION_STATE_CORRECT,
    ]
    if outcome.facts.get("stash_ref"):
        names.append(VerificationName.STASH_RESTORED)
    elif not outcome.facts.get("carried_over"):
        names.append(VerificationName.NO_UNCOMMITTED_CHANGES)
    return names


OPERATION = Operation(
    name="launch",
    collect_parameters=_collect,
    build_context=_build_context,
    mutate=_mutate,
    pre_checks=(
        CheckName.ON_BASE_BRANCH,
        CheckName.WORKING_TREE_CLEAN,
        CheckName.BASE_BRANCH_SYNCED,
        CheckName.NO_ACTIVE_SESSION_ON_BRANCH,
        CheckName.BRANCH_NAME_AVAILABLE,
        CheckName.BRANCH_NAME_VALID,
    ),
    resolutions={
        CheckName.ON_BASE_BRANCH: ("switch_to_base", "branch_from_current"),
        CheckName.WORKING_TREE_CLEAN: ("stash", "carry_over", "discard"),
        CheckName.BASE_BRANCH_SYNCED: ("pull_base",),
        CheckName.NO_ACTIVE_SESSION_ON_BRANCH: ("resume_existing", "abort_existing"),
    },
    post_checks=_post_checks,
)
