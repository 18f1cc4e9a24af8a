"""``cleanup``: purge stale sessions and, optionally, their local branches."""

from datetime import UTC, datetime, timedelta

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.preflight import CheckName
from linear_flow.exceptions import GitOperationError
from linear_flow.models.session import WorkflowSession

log = structlog.get_logger(__name__)


def is_stale(session: WorkflowSession, ttl: timedelta, now: datetime) -> bool:
    """Expired, or terminal and untouched for longer than ``ttl``."""
    if session.is_expired(now):
        return True
    return not session.is_active and session.updated_at < now - ttl


async def _removable_branches(ctx: OperationContext, sessions: list[WorkflowSession]) -> list[str]:
    current = await ctx.git.current_branch()
    branches = []
    for session in sessions:
        branch = session.branch_name
        if session.is_active or branch in (ctx.base_branch, current) or branch in branches:
            continue
        owner = await ctx.store.get_by_branch(branch)
        if owner is not None and owner.is_active:
            continue
        if await ctx.git.branch_exists(branch):
            branches.append(branch)
    return branches


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    dry_run = ctx.flag("dry_run")
    now = datetime.now(UTC)
    ttl = timedelta(days=ctx.settings.workflow.session_ttl_days)
    outcome = MutationOutcome()

    sessions = await ctx.store.list(include_terminal=True)
    stale = [s for s in sessions if is_stale(s, ttl, now)]
    branches = await _removable_branches(ctx, sessions) if ctx.flag("delete_branches") else []

    deleted_branches = []
    if not dry_run:
        for session in stale:
            await ctx.store.delete(session.id)
        if stale:
            outcome.step("purge_sessions")

        for branch in branches:
            try:
                await ctx.git.delete_branch(branch, force=True)
                deleted_branches.append(branch)
            except GitOperationError as e:
                outcome.warnings.append(f"Could not delete branch '{branch}': {e.message}")

        try:
            await ctx.git.prune_remote()
            outcome.step("prune_remote")
        except GitOperationError as e:
            outcome.warnings.append(f"Could not prune remote-tracking branches: {e.message}")

    log.info("cleanup_finished", dry_run=dry_run, sessions=len(stale), branches=len(branches))
    outcome.payload = {
        "dry_run": dry_run,
        "purged_sessions": [{"id": s.id, "branch": s.branch_name, "state": s.state.value} for s in stale],
        "deleted_branches": branches if dry_run else deleted_branches,
    }
    return outcome


OPERATION = Operation(
    name="cleanup",
    mutate=_mutate,
    pre_checks=(CheckName.IS_GIT_REPOSITORY,),
)
