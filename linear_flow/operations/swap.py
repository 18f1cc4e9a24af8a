"""``swap``: switch to another active session's branch.

Uncommitted changes on the branch being left are stashed (recorded on that
branch's session so a later swap back restores them), carried over, or
discarded, per the chosen resolution.
"""

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.results import NeedsInput
from linear_flow.engine.stash import StashManager
from linear_flow.operations.common import clear_working_tree

log = structlog.get_logger(__name__)


async def _collect(ctx: OperationContext) -> NeedsInput | None:
    if ctx.param("branch_name"):
        return None

    sessions = await ctx.store.list()
    return NeedsInput(
        operation="swap",
        missing="branch_name",
        prompt="Choose the session branch to switch to",
        context={
            "sessions": [{"branch": s.branch_name, "state": s.state.value, "kind": s.kind.value} for s in sessions],
        },
        next_steps=["linear-flow swap <branch>"],
    )


async def _build_context(ctx: OperationContext) -> None:
    ctx.current_branch = await ctx.git.current_branch()
    ctx.target_branch = ctx.param("branch_name").strip()
    ctx.session = await ctx.store.get_by_branch(ctx.target_branch)

    # --stash / --force preselect the working-tree resolution
    preset = "stash" if ctx.flag("stash") else "carry_over" if ctx.flag("force") else None
    if preset:
        ctx.params["resolutions"] = {CheckName.WORKING_TREE_CLEAN.value: preset, **(ctx.params.get("resolutions") or {})}


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    session = ctx.session
    assert session is not None
    target = ctx.target_branch
    origin = ctx.current_branch
    stash = StashManager(ctx.git)
    outcome = MutationOutcome(session=session, expected_state=session.state, facts={"branch": target})

    stashed = await clear_working_tree(ctx, "swap")
    if stashed:
        outcome.step("stash")
        origin_session = await ctx.store.get_by_branch(origin)
        if origin_session is not None and origin_session.is_active:
            ref, label = stashed
            origin_session.metadata["stash"] = {"ref": ref, "label": label}
            await ctx.store.update(origin_session.id, origin_session)

    await ctx.git.checkout(target)
    outcome.step("checkout")

    # Restore what was stashed when this branch was last left
    pending = session.metadata.pop("stash", None)
    if pending:
        outcome.facts.update(await stash.restore(pending["label"]))
        outcome.step("restore_stash")
        if outcome.facts.get("stash_conflict"):
            session.metadata["stash"] = pending
    await ctx.store.update(session.id, session)

    log.info("session_swapped", from_branch=origin, to_branch=target, session_id=session.id)
    outcome.payload = {
        "from_branch": origin,
        "to_branch": target,
        "session_id": session.id,
        "state": session.state.value,
        "stashed": stashed is not None,
        "stash_restored": bool(outcome.facts.get("stash_restored")),
    }
    return outcome


def _post_checks(ctx: OperationContext, outcome: MutationOutcome) -> list[VerificationName]:
    names = [VerificationName.BRANCH_CHECKED_OUT, VerificationName.SESSION_STATE_CORRECT]
    if outcome.facts.get("stash_ref"):
        names.append(VerificationName.STASH_RESTORED)
    return names


OPERATION = Operation(
    name="swap",
    collect_parameters=_collect,
    build_context=_build_context,
    mutate=_mutate,
    pre_checks=(CheckName.TARGET_SESSION_EXISTS, CheckName.WORKING_TREE_CLEAN),
    resolutions={CheckName.WORKING_TREE_CLEAN: ("stash", "carry_over", "discard")},
    post_checks=_post_checks,
)
