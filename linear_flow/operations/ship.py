"""``ship``: push, open or reuse a pull request, wait for CI, merge and clean up.

Steps run in a fixed order and the session is saved after each one. A failure
in push, pull request, CI or merge stops the run with a StepFailedError naming
the step and everything completed before it; nothing already done is undone.
Re-running ``ship`` picks up from the session's recorded state.
"""

from datetime import UTC, datetime
from typing import Any

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.results import NeedsInput
from linear_flow.enums import WorkflowKind
from linear_flow.exceptions import (
    CIFailedError,
    CITimeoutError,
    GitOperationError,
    LinearFlowError,
    StepFailedError,
)
from linear_flow.models.domain import PullRequest, PullRequestState
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.operations.common import resolve_current_session
from linear_flow.providers.base import CodeHost
from linear_flow.rendering import PullRequestRenderer

log = structlog.get_logger(__name__)

SHIP_ORDER = (
    SessionState.BRANCH_READY,
    SessionState.CHANGES_COMMITTED,
    SessionState.PUSHED,
    SessionState.PR_CREATED,
    SessionState.CHECKS_PASSING,
    SessionState.READY_TO_MERGE,
    SessionState.COMPLETE,
)


async def _collect(ctx: OperationContext) -> NeedsInput | None:
    if ctx.param("pr_description") or ctx.host is None:
        return None

    branch = await ctx.git.current_branch()
    pr = await ctx.host.find_pull_request(branch, PullRequestState.ALL)
    if pr is not None:
        # An open PR is reused; a finalized one is rejected by the pre-checks
        return None

    return NeedsInput(
        operation="ship",
        missing="pr_description",
        prompt="Describe the change for the pull request body",
        context={"branch": branch, "commits": await ctx.git.commits_since(ctx.base_branch)},
        next_steps=['linear-flow ship --description "<what and why>"'],
    )


class _Shipment:
    """State shared by the steps of one ship run."""

    def __init__(self, ctx: OperationContext, session: WorkflowSession) -> None:
        self.ctx = ctx
        self.session = session
        self.branch = session.branch_name
        self.outcome = MutationOutcome(
            session=session,
            expected_state=SessionState.COMPLETE,
            facts={"branch": self.branch},
            payload={"branch": self.branch, "session_id": session.id},
        )

    @property
    def host(self) -> CodeHost:
        assert self.ctx.host is not None
        return self.ctx.host

    def fail(self, step: str, message: str, suggestion: str | None = None) -> StepFailedError:
        payload: dict[str, Any] = {**self.outcome.payload, "state": self.session.state.value}
        return StepFailedError(
            message,
            step=step,
            completed_steps=self.outcome.steps,
            payload=payload,
            suggestion=suggestion,
        )

    async def advance(self, to_state: SessionState) -> None:
        """Move forward to ``to_state`` unless a previous run already got there."""
        if SHIP_ORDER.index(self.session.state) >= SHIP_ORDER.index(to_state):
            return
        self.session.transition(to_state, "ship")
        await self.ctx.store.update(self.session.id, self.session)

    async def push(self) -> None:
        remote = self.ctx.settings.workflow.remote
        try:
            await self.ctx.git.push(self.branch)
        except LinearFlowError as e:
            raise self.fail("push", e.message, f"git push --set-upstream {remote} {self.branch}") from e
        except Exception as e:
            raise self.fail("push", str(e), f"git push --set-upstream {remote} {self.branch}") from e
        await self.advance(SessionState.PUSHED)
        self.outcome.step("push")

    async def pull_request(self) -> PullRequest:
        try:
            pr = await self.host.find_pull_request(self.branch, PullRequestState.OPEN)
            reused = pr is not None
            if pr is None:
                pr = await self.host.create_pull_request(
                    title=self._title(),
                    body=await self._body(),
                    head=self.branch,
                    base=self.ctx.base_branch,
                )
        except LinearFlowError as e:
            raise self.fail("pull_request", e.message, "Check the code host token and repository settings") from e
        except Exception as e:
            raise self.fail("pull_request", str(e), "Check the code host token and repository settings") from e

        self.session.metadata["pr"] = {"number": pr.number, "url": pr.url, "merged": False}
        await self.advance(SessionState.PR_CREATED)
        await self.ctx.store.update(self.session.id, self.session)
        self.outcome.step("pull_request")
        self.outcome.facts["pr_number"] = pr.number
        self.outcome.payload.update({"pr_number": pr.number, "pr_url": pr.url, "pr_reused": reused})
        log.info("pull_request_ready", number=pr.number, reused=reused)
        return pr

    async def wait_for_ci(self, pr: PullRequest) -> None:
        ci = self.ctx.settings.ci
        try:
            summary = await self.host.wait_for_checks(
                pr.number,
                timeout=ci.timeout_seconds,
                interval=ci.poll_interval_seconds,
                require_checks=ci.required,
            )
        except CITimeoutError as e:
            raise self.fail("ci", e.message, f"Run linear-flow ship again once CI finishes: {pr.url}") from e
        except CIFailedError as e:
            raise self.fail("ci", e.message, "Fix the failing checks, commit, and ship again") from e
        except LinearFlowError as e:
            raise self.fail("ci", e.message) from e
        except Exception as e:
            raise self.fail("ci", str(e), f"Run linear-flow ship again to resume: {pr.url}") from e

        await self.advance(SessionState.CHECKS_PASSING)
        self.outcome.step("ci")
        self.outcome.payload["checks"] = [run.name for run in summary.runs]

    async def merge(self, pr: PullRequest) -> None:
        await self.advance(SessionState.READY_TO_MERGE)
        method = self.ctx.settings.pull_request.merge_method
        try:
            merged = await self.host.merge_pull_request(pr.number, method=method)
        except LinearFlowError as e:
            raise self.fail("merge", e.message, f"Merge PR #{pr.number} manually: {pr.url}") from e
        except Exception as e:
            raise self.fail("merge", str(e), f"Merge PR #{pr.number} manually: {pr.url}") from e
        if not merged:
            raise self.fail("merge", f"PR #{pr.number} was not merged", f"Merge it manually: {pr.url}")

        self.session.metadata["pr"].update({"merged": True, "merged_at": datetime.now(UTC).isoformat()})
        await self.ctx.store.update(self.session.id, self.session)
        self.outcome.step("merge")
        self.outcome.payload["merged"] = True

    async def cleanup(self) -> None:
        """Return to the base branch and delete the merged branch.

        The merge already happened, so problems here are warnings.
        """
        git = self.ctx.git
        base = self.ctx.base_branch
        remote_deleted = False

        try:
            await git.checkout(base)
            await git.pull(base)
            await git.delete_branch(self.branch, force=True)
        except GitOperationError as e:
            self.outcome.warnings.append(f"Local cleanup incomplete: {e.message}")

        if self.ctx.settings.pull_request.delete_remote_branch:
            try:
                await git.delete_remote_branch(self.branch)
                remote_deleted = True
            except GitOperationError as e:
                self.outcome.warnings.append(f"Remote branch not deleted: {e.message}")

        self.session.metadata["branch"] = {
            "deleted_at": datetime.now(UTC).isoformat(),
            "remote_deleted": remote_deleted,
        }
        self.outcome.facts["remote_deleted"] = remote_deleted
        self.outcome.step("cleanup")

    async def complete(self) -> None:
        self.session.transition(SessionState.COMPLETE, "ship")
        await self.ctx.store.update(self.session.id, self.session)
        self.outcome.step("complete")
        self.outcome.payload["state"] = self.session.state.value

    def _title(self) -> str:
        prefix = "hotfix" if self.session.kind == WorkflowKind.HOTFIX else "ship"
        return f"[{prefix}] {self.branch}"

    async def _body(self) -> str:
        metadata = self.session.metadata
        description = self.ctx.param("pr_description") or metadata.get("description") or self.branch
        renderer = PullRequestRenderer(self.ctx.settings.pull_request.template_path)
        return renderer.render(
            description=description,
            branch=self.branch,
            base_branch=self.ctx.base_branch,
            commits=await self.ctx.git.commits_since(self.ctx.base_branch),
            kind=self.session.kind.value,
            issue=metadata.get("issue"),
            severity=metadata.get("severity"),
        )


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    session = ctx.session
    assert session is not None
    shipment = _Shipment(ctx, session)

    await shipment.push()
    pr = await shipment.pull_request()
    await shipment.wait_for_ci(pr)
    await shipment.merge(pr)
    await shipment.cleanup()
    await shipment.complete()

    log.info("shipped", branch=shipment.branch, pr=pr.number)
    return shipment.outcome


OPERATION = Operation(
    name="ship",
    collect_parameters=_collect,
    build_context=resolve_current_session,
    mutate=_mutate,
    pre_checks=(
        CheckName.ACTIVE_SESSION_EXISTS,
        CheckName.ON_NON_BASE_BRANCH,
        CheckName.WORKING_TREE_CLEAN,
        CheckName.HAS_UNSHIPPED_COMMITS,
        CheckName.NO_MERGE_CONFLICTS,
        CheckName.PULL_REQUEST_NOT_FINALIZED,
    ),
    requires_code_host=True,
    post_checks=(
        VerificationName.BRANCH_PUSHED,
        VerificationName.PULL_REQUEST_LINKED,
        VerificationName.BRANCH_MERGED,
        VerificationName.FEATURE_BRANCH_DELETED,
        VerificationName.SESSION_CLOSED,
    ),
)
