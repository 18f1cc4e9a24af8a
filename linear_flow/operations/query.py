"""Read-only operations: ``sessions`` and ``status``.

Both run through the pipeline like any other operation, with no checks and
a mutation hook that only reads.
"""

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.exceptions import GitOperationError
from linear_flow.models.session import WorkflowSession


def _summary(session: WorkflowSession) -> dict[str, object]:
    return {
        "id": session.id,
        "branch": session.branch_name,
        "kind": session.kind.value,
        "state": session.state.value,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "expired": session.is_expired(),
        "pr": session.metadata.get("pr"),
    }


async def _list_sessions(ctx: OperationContext) -> MutationOutcome:
    sessions = await ctx.store.list(include_terminal=ctx.flag("include_terminal"))
    return MutationOutcome(payload={"count": len(sessions), "sessions": [_summary(s) for s in sessions]})


async def _status(ctx: OperationContext) -> MutationOutcome:
    git = ctx.git
    branch = await git.current_branch()
    status = await git.status()
    session = await ctx.store.get_by_branch(branch)
    outcome = MutationOutcome(session=session)

    payload: dict[str, object] = {
        "branch": branch,
        "on_base_branch": branch == ctx.base_branch,
        "session": _summary(session) if session else None,
        "working_tree": {
            "clean": status.is_clean,
            "staged": len(status.staged),
            "unstaged": len(status.unstaged),
            "untracked": len(status.created),
            "conflicted": len(status.conflicted),
        },
    }
    if branch != ctx.base_branch:
        try:
            sync = await git.ahead_behind(branch, ctx.base_branch)
            payload["base"] = {"ahead": sync.ahead, "behind": sync.behind}
        except GitOperationError as e:
            outcome.warnings.append(f"Could not compare with {ctx.base_branch}: {e.message}")

    outcome.payload = payload
    return outcome


SESSIONS = Operation(name="sessions", mutate=_list_sessions)
STATUS = Operation(name="status", mutate=_status)
