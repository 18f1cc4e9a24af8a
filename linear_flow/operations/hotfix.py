"""``hotfix``: start an emergency session on ``hotfix/<severity>-<slug>``."""

import re

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.pipeline import Operation
from linear_flow.engine.postflight import VerificationName
from linear_flow.engine.preflight import CheckName
from linear_flow.engine.results import NeedsInput
from linear_flow.engine.stash import StashManager
from linear_flow.enums import HotfixSeverity, WorkflowKind
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.operations.common import clear_working_tree

log = structlog.get_logger(__name__)


def slugify(text: str) -> str:
    """Lowercase ``text`` and collapse everything but letters and digits to '-'.

    Example:
        >>> slugify("Login fails on Safari!")
        'login-fails-on-safari'
    """
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def hotfix_branch(issue: str, severity: HotfixSeverity) -> str:
    return f"hotfix/{severity.value}-{slugify(issue)}"


async def _collect(ctx: OperationContext) -> NeedsInput | None:
    if ctx.param("issue") and slugify(ctx.param("issue")):
        return None
    return NeedsInput(
        operation="hotfix",
        missing="issue",
        prompt="Describe the issue the hotfix addresses",
        context={"severities": [s.value for s in HotfixSeverity], "default_severity": HotfixSeverity.HIGH.value},
        next_steps=['linear-flow hotfix "<issue>" --severity high'],
    )


async def _build_context(ctx: OperationContext) -> None:
    severity = HotfixSeverity(ctx.param("severity", HotfixSeverity.HIGH.value))
    ctx.data["severity"] = severity
    ctx.current_branch = await ctx.git.current_branch()
    ctx.target_branch = hotfix_branch(ctx.param("issue"), severity)


async def _mutate(ctx: OperationContext) -> MutationOutcome:
    branch = ctx.target_branch
    base = ctx.base_branch
    severity: HotfixSeverity = ctx.data["severity"]
    outcome = MutationOutcome(expected_state=SessionState.BRANCH_READY, facts={"branch": branch})

    stashed = await clear_working_tree(ctx, "hotfix")
    if ctx.resolution(CheckName.ON_BASE_BRANCH) == "switch_to_base":
        await ctx.git.checkout(base)
        outcome.step("switch_to_base")

    await ctx.git.create_branch(branch, base)
    outcome.step("create_branch")

    metadata = {
        "issue": ctx.param("issue"),
        "severity": severity.value,
        "skip_tests": ctx.flag("skip_tests"),
        "skip_review": ctx.flag("skip_review"),
        "auto_merge": ctx.flag("auto_merge"),
        "base_branch": base,
    }
    session = WorkflowSession.create(
        branch,
        kind=WorkflowKind.HOTFIX,
        trigger="hotfix",
        metadata=metadata,
        ttl_days=ctx.settings.workflow.session_ttl_days,
    )
    await ctx.store.create(session)
    outcome.step("create_session")
    outcome.session = session
    log.info("hotfix_started", branch=branch, severity=severity.value)

    if stashed:
        outcome.facts.update(await StashManager(ctx.git).restore(stashed[1]))
        outcome.step("restore_stash")

    outcome.payload = {"branch": branch, "session_id": session.id, **metadata}
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
    return names


OPERATION = Operation(
    name="hotfix",
    collect_parameters=_collect,
    build_context=_build_context,
    mutate=_mutate,
    pre_checks=(
        CheckName.ON_BASE_BRANCH,
        CheckName.WORKING_TREE_CLEAN,
        CheckName.NO_ACTIVE_SESSION_ON_BRANCH,
        CheckName.BRANCH_NAME_AVAILABLE,
    ),
    resolutions={
        CheckName.ON_BASE_BRANCH: ("switch_to_base",),
        CheckName.WORKING_TREE_CLEAN: ("stash", "carry_over", "discard"),
    },
    post_checks=_post_checks,
)
