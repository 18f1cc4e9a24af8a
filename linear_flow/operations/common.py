"""Hooks and helpers shared by several operations."""

from typing import Any

from linear_flow.engine.context import OperationContext
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.stash import StashManager
from linear_flow.models.session import SessionState, WorkflowSession

BRANCH_TYPES = ("feature", "bugfix", "hotfix", "release", "chore", "docs", "test", "refactor")
NAMING_RULE = "type/kebab-description"
MAX_LISTED_FILES = 5


async def resolve_current_session(ctx: OperationContext) -> None:
    """Context hook: the session owning the checked-out branch."""
    ctx.current_branch = await ctx.git.current_branch()
    ctx.target_branch = ctx.current_branch
    ctx.session = await ctx.store.get_by_branch(ctx.current_branch)


async def save_transition(
    ctx: OperationContext,
    session: WorkflowSession,
    to_state: SessionState,
    trigger: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Transition ``session`` and persist it."""
    session.transition(to_state, trigger, metadata)
    await ctx.store.update(session.id, session)


async def clear_working_tree(ctx: OperationContext, reason: str) -> tuple[str, str] | None:
    """Apply the working-tree resolution chosen for this run.

    Returns:
        ``(ref, label)`` of the auto-stash taken, if the ``stash`` option was
        chosen and there was something to stash
    """
    choice = ctx.resolution(CheckName.WORKING_TREE_CLEAN)
    if choice == "stash":
        return await StashManager(ctx.git).stash(reason, ctx.current_branch or "HEAD")
    if choice == "discard":
        await ctx.git.discard_changes()
    return None
