"""Pre-condition checks run before an operation mutates anything.

Checks are plain async functions registered by :class:`CheckName`. The
registry is validated against the enum when this module is imported, so a
name without a function (or a function without a name) fails fast instead
of surfacing mid-operation.

A check that finds a problem the running operation knows how to fix reports
it as *recoverable* with the operation's resolution options attached. The
same problem in an operation that offers no fix is a plain error.
"""

import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from typing import Any

import structlog

from linear_flow.engine.context import OperationContext
from linear_flow.enums import RiskTier
from linear_flow.exceptions import LinearFlowError
from linear_flow.models.checks import CheckResult, ResolutionOption, VerificationResult
from linear_flow.models.domain import PullRequestState

log = structlog.get_logger(__name__)


class CheckName(str, Enum):
    """Every pre-condition check an operation can request."""

    IS_GIT_REPOSITORY = "is_git_repository"
    ON_BASE_BRANCH = "on_base_branch"
    WORKING_TREE_CLEAN = "working_tree_clean"
    BASE_BRANCH_SYNCED = "base_branch_synced"
    NO_ACTIVE_SESSION_ON_BRANCH = "no_active_session_on_branch"
    BRANCH_NAME_AVAILABLE = "branch_name_available"
    BRANCH_NAME_VALID = "branch_name_valid"
    ACTIVE_SESSION_EXISTS = "active_session_exists"
    ON_NON_BASE_BRANCH = "on_non_base_branch"
    HAS_UNCOMMITTED_CHANGES = "has_uncommitted_changes"
    HAS_UNSHIPPED_COMMITS = "has_unshipped_commits"
    NO_MERGE_CONFLICTS = "no_merge_conflicts"
    PULL_REQUEST_NOT_FINALIZED = "pull_request_not_finalized"
    TARGET_SESSION_EXISTS = "target_session_exists"
    SESSION_RECORDED = "session_recorded"

    def __str__(self) -> str:
        return self.value


PreCheck = Callable[[OperationContext], Awaitable[CheckResult]]

BRANCH_CONVENTION = re.compile(
    r"^(feature|bugfix|hotfix|release|chore|docs|test|refactor)/([a-z0-9]+(?:-[a-z0-9]+)*)$"
)
# Names git itself refuses (see git-check-ref-format)
_INVALID_REF = re.compile(r"(^[./-])|(\.\.)|([\s~^:?*\[\\])|(@\{)|(/$)|(\.lock$)|(//)|(\.$)")
RESERVED_BRANCHES = frozenset({"main", "master", "develop", "HEAD"})

MAX_LISTED_FILES = 5


# -----------------------------------------------------------------------------
# Resolution options
# -----------------------------------------------------------------------------


def _stash(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="stash",
        label="Stash changes",
        description="Stash uncommitted changes and restore them after switching branches",
        action="git stash push --include-untracked",
        risk=RiskTier.LOW,
    )


def _carry_over(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="carry_over",
        label="Carry changes over",
        description="Leave changes in the working tree and let git carry them across the checkout",
        action="git checkout (working tree kept)",
        risk=RiskTier.MEDIUM,
    )


def _discard(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="discard",
        label="Discard changes",
        description="Permanently drop all uncommitted changes, including untracked files",
        action="git reset --hard HEAD && git clean -fd",
        risk=RiskTier.HIGH,
        discards_work=True,
    )


def _switch_to_base(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="switch_to_base",
        label=f"Switch to {ctx.base_branch}",
        description=f"Check out {ctx.base_branch} and branch from there",
        action=f"git checkout {ctx.base_branch}",
        risk=RiskTier.LOW,
    )


def _branch_from_current(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="branch_from_current",
        label="Branch from current",
        description=f"Create the new branch from '{ctx.current_branch}' instead of {ctx.base_branch}",
        action=f"git checkout -b <branch> {ctx.current_branch}",
        risk=RiskTier.MEDIUM,
    )


def _pull_base(ctx: OperationContext) -> ResolutionOption:
    remote = ctx.settings.workflow.remote
    return ResolutionOption(
        id="pull_base",
        label=f"Update {ctx.base_branch}",
        description=f"Fast-forward {ctx.base_branch} from {remote}/{ctx.base_branch}",
        action=f"git pull --ff-only {remote} {ctx.base_branch}",
        risk=RiskTier.LOW,
    )


def _resume_existing(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="resume_existing",
        label="Resume existing session",
        description=f"Switch to the existing session on '{ctx.target_branch}' instead of starting a new one",
        action=f"linear-flow swap {ctx.target_branch}",
        risk=RiskTier.LOW,
    )


def _abort_existing(ctx: OperationContext) -> ResolutionOption:
    return ResolutionOption(
        id="abort_existing",
        label="Abort existing session",
        description=f"Abort the existing session on '{ctx.target_branch}' and start over",
        action=f"linear-flow abort {ctx.target_branch}",
        risk=RiskTier.MEDIUM,
    )


RESOLUTION_OPTIONS: dict[str, Callable[[OperationContext], ResolutionOption]] = {
    "stash": _stash,
    "carry_over": _carry_over,
    "discard": _discard,
    "switch_to_base": _switch_to_base,
    "branch_from_current": _branch_from_current,
    "pull_base": _pull_base,
    "resume_existing": _resume_existing,
    "abort_existing": _abort_existing,
}


def _recoverable_or_error(
    ctx: OperationContext,
    name: CheckName,
    message: str,
    suggestion: str | None = None,
    **details: Any,
) -> CheckResult:
    """Recoverable when the running operation offers options for ``name``."""
    offered = ctx.offered_resolutions.get(name.value, ())
    if not offered:
        return CheckResult.error(name.value, message, suggestion=suggestion, **details)
    options = [RESOLUTION_OPTIONS[option_id](ctx) for option_id in offered]
    return CheckResult.recoverable(name.value, message, options, **details)


async def _branch(ctx: OperationContext) -> str:
    return ctx.current_branch or await ctx.git.current_branch()


# -----------------------------------------------------------------------------
# Checks
# -----------------------------------------------------------------------------


async def is_git_repository(ctx: OperationContext) -> CheckResult:
    name = CheckName.IS_GIT_REPOSITORY.value
    if await ctx.git.is_repository():
        return CheckResult.ok(name, "Inside a git repository")
    return CheckResult.error(name, "Not a git repository", suggestion="git init")


async def on_base_branch(ctx: OperationContext) -> CheckResult:
    branch = await _branch(ctx)
    if branch == ctx.base_branch:
        return CheckResult.ok(CheckName.ON_BASE_BRANCH.value, f"On {ctx.base_branch}")
    return _recoverable_or_error(
        ctx,
        CheckName.ON_BASE_BRANCH,
        f"On branch '{branch}', expected '{ctx.base_branch}'",
        suggestion=f"git checkout {ctx.base_branch}",
        current_branch=branch,
    )


async def working_tree_clean(ctx: OperationContext) -> CheckResult:
    status = await ctx.git.status()
    if status.is_clean:
        return CheckResult.ok(CheckName.WORKING_TREE_CLEAN.value, "Working directory clean")
    return _recoverable_or_error(
        ctx,
        CheckName.WORKING_TREE_CLEAN,
        status.summary(),
        suggestion="Commit or stash your changes",
        files=status.changed_files[:MAX_LISTED_FILES],
    )


async def base_branch_synced(ctx: OperationContext) -> CheckResult:
    name = CheckName.BASE_BRANCH_SYNCED.value
    base = ctx.base_branch
    remote = ctx.settings.workflow.remote

    if await _branch(ctx) != base:
        return CheckResult.ok(name, f"Skipped: not on {base}")

    try:
        await ctx.git.fetch(base)
    except LinearFlowError as e:
        return CheckResult.warning(name, f"Could not fetch {remote}/{base}: {e.message}")

    sync = await ctx.git.ahead_behind(base, f"{remote}/{base}")
    if sync.behind:
        return _recoverable_or_error(
            ctx,
            CheckName.BASE_BRANCH_SYNCED,
            f"{base} is {sync.behind} commit(s) behind {remote}/{base}",
            suggestion=f"git pull {remote} {base}",
            behind=sync.behind,
        )
    if sync.ahead:
        return CheckResult.warning(
            name,
            f"{base} is {sync.ahead} commit(s) ahead of {remote}/{base}",
            suggestion=f"Push or reset local {base}",
            ahead=sync.ahead,
        )
    return CheckResult.ok(name, f"{base} is up to date with {remote}/{base}")


async def no_active_session_on_branch(ctx: OperationContext) -> CheckResult:
    branch = ctx.target_branch
    if not branch:
        return CheckResult.ok(CheckName.NO_ACTIVE_SESSION_ON_BRANCH.value, "No branch name given")

    existing = await ctx.store.get_by_branch(branch)
    if existing is None or not existing.is_active:
        return CheckResult.ok(CheckName.NO_ACTIVE_SESSION_ON_BRANCH.value, f"No active session on '{branch}'")
    return _recoverable_or_error(
        ctx,
        CheckName.NO_ACTIVE_SESSION_ON_BRANCH,
        f"Branch '{branch}' already has an active session ({existing.state})",
        suggestion=f"linear-flow swap {branch}",
        session_id=existing.id,
    )


async def branch_name_available(ctx: OperationContext) -> CheckResult:
    name = CheckName.BRANCH_NAME_AVAILABLE.value
    branch = ctx.target_branch
    if not branch:
        return CheckResult.ok(name, "No branch name given")
    if not await ctx.git.branch_exists(branch):
        return CheckResult.ok(name, f"Branch '{branch}' is available")

    # An active session owning the branch is reported by its own check
    existing = await ctx.store.get_by_branch(branch)
    if existing is not None and existing.is_active:
        return CheckResult.ok(name, f"Branch '{branch}' belongs to session {existing.id[:8]}")
    return CheckResult.error(
        name,
        f"Branch '{branch}' already exists",
        suggestion="Choose a different branch name",
    )


async def branch_name_valid(ctx: OperationContext) -> CheckResult:
    name = CheckName.BRANCH_NAME_VALID.value
    branch = ctx.target_branch
    if not branch:
        return CheckResult.ok(name, "No branch name given")
    if branch in RESERVED_BRANCHES or branch == ctx.base_branch:
        return CheckResult.error(name, f"'{branch}' is reserved and cannot be a feature branch")
    if _INVALID_REF.search(branch):
        return CheckResult.error(
            name,
            f"'{branch}' is not a valid git branch name",
            suggestion="Use lowercase letters, digits, '-' and a single '/' prefix",
        )
    if not BRANCH_CONVENTION.match(branch):
        return CheckResult.warning(
            name,
            f"'{branch}' does not follow the <type>/<kebab-case> naming convention",
            passed=False,
            suggestion="e.g. feature/add-login",
        )
    return CheckResult.ok(name, f"'{branch}' follows the naming convention")


async def active_session_exists(ctx: OperationContext) -> CheckResult:
    name = CheckName.ACTIVE_SESSION_EXISTS.value
    branch = ctx.target_branch or await _branch(ctx)
    session = ctx.session
    if session is None:
        return CheckResult.error(
            name,
            f"No session found for branch '{branch}'",
            suggestion="linear-flow launch <branch>",
        )
    if not session.is_active:
        return CheckResult.error(
            name,
            f"Session {session.id[:8]} on '{branch}' is {session.state}",
            suggestion="linear-flow launch <branch> to start a new session",
        )
    return CheckResult.ok(name, f"Session {session.id[:8]} is {session.state}")


async def on_non_base_branch(ctx: OperationContext) -> CheckResult:
    name = CheckName.ON_NON_BASE_BRANCH.value
    branch = await _branch(ctx)
    if branch != ctx.base_branch:
        return CheckResult.ok(name, f"On feature branch '{branch}'")
    return CheckResult.error(
        name,
        f"Cannot {ctx.operation} on {ctx.base_branch}",
        suggestion="linear-flow launch <branch> or linear-flow swap <branch>",
    )


async def has_uncommitted_changes(ctx: OperationContext) -> CheckResult:
    name = CheckName.HAS_UNCOMMITTED_CHANGES.value
    status = await ctx.git.status()
    if status.is_clean:
        return CheckResult.error(name, "No changes to commit")
    return CheckResult.ok(name, status.summary())


async def has_unshipped_commits(ctx: OperationContext) -> CheckResult:
    name = CheckName.HAS_UNSHIPPED_COMMITS.value
    commits = await ctx.git.commits_since(ctx.base_branch)
    if commits:
        return CheckResult.ok(name, f"{len(commits)} commit(s) ahead of {ctx.base_branch}", count=len(commits))
    branch = await _branch(ctx)
    return CheckResult.error(
        name,
        f"No commits to ship on '{branch}'",
        suggestion="linear-flow commit",
    )


async def no_merge_conflicts(ctx: OperationContext) -> CheckResult:
    name = CheckName.NO_MERGE_CONFLICTS.value
    try:
        status = await ctx.git.status()
    except LinearFlowError as e:
        return CheckResult.warning(name, f"Could not check for conflicts: {e.message}")
    if status.conflicted:
        return CheckResult.error(
            name,
            f"Unresolved conflicts in {len(status.conflicted)} file(s)",
            suggestion="Resolve the conflicts and stage the files",
            files=status.conflicted[:MAX_LISTED_FILES],
        )
    return CheckResult.ok(name, "No merge conflicts")


async def pull_request_not_finalized(ctx: OperationContext) -> CheckResult:
    name = CheckName.PULL_REQUEST_NOT_FINALIZED.value
    branch = ctx.target_branch or await _branch(ctx)
    if ctx.host is None:
        return CheckResult.error(
            name,
            ctx.data.get("code_host_error") or "No code host configured",
            suggestion="Set code_host.token in the config or export GITHUB_TOKEN",
        )

    pr = await ctx.host.find_pull_request(branch, PullRequestState.ALL)
    if pr is None:
        return CheckResult.ok(name, f"No pull request yet for '{branch}'")
    if pr.is_finalized:
        return CheckResult.error(
            name,
            f'Branch "{branch}" has a {pr.status} PR (#{pr.number}). '
            "Branches cannot be reused after PR merge/close.",
            suggestion="Please abort this session and launch a new one with a fresh branch name.",
            pr_number=pr.number,
            pr_url=pr.url,
        )
    return CheckResult.ok(name, f"Pull request #{pr.number} is open", pr_number=pr.number)


async def target_session_exists(ctx: OperationContext) -> CheckResult:
    name = CheckName.TARGET_SESSION_EXISTS.value
    branch = ctx.target_branch
    session = ctx.session
    if not branch:
        return CheckResult.error(name, "No target branch given")
    if session is None:
        return CheckResult.error(
            name,
            f"No session found for branch '{branch}'",
            suggestion="linear-flow sessions",
        )
    if not session.is_active:
        return CheckResult.error(name, f"Session on '{branch}' is {session.state}")
    if await _branch(ctx) == branch:
        return CheckResult.error(name, f"Already on '{branch}'")
    return CheckResult.ok(name, f"Session {session.id[:8]} on '{branch}' is {session.state}")


async def session_recorded(ctx: OperationContext) -> CheckResult:
    """Any session, active or terminal, exists for the target branch."""
    name = CheckName.SESSION_RECORDED.value
    branch = ctx.target_branch or await _branch(ctx)
    if ctx.session is None:
        return CheckResult.error(name, f"No session found for branch '{branch}'", suggestion="linear-flow sessions --all")
    return CheckResult.ok(name, f"Session {ctx.session.id[:8]} is {ctx.session.state}")


PRE_CHECKS: dict[CheckName, PreCheck] = {
    CheckName.IS_GIT_REPOSITORY: is_git_repository,
    CheckName.ON_BASE_BRANCH: on_base_branch,
    CheckName.WORKING_TREE_CLEAN: working_tree_clean,
    CheckName.BASE_BRANCH_SYNCED: base_branch_synced,
    CheckName.NO_ACTIVE_SESSION_ON_BRANCH: no_active_session_on_branch,
    CheckName.BRANCH_NAME_AVAILABLE: branch_name_available,
    CheckName.BRANCH_NAME_VALID: branch_name_valid,
    CheckName.ACTIVE_SESSION_EXISTS: active_session_exists,
    CheckName.ON_NON_BASE_BRANCH: on_non_base_branch,
    CheckName.HAS_UNCOMMITTED_CHANGES: has_uncommitted_changes,
    CheckName.HAS_UNSHIPPED_COMMITS: has_unshipped_commits,
    CheckName.NO_MERGE_CONFLICTS: no_merge_conflicts,
    CheckName.PULL_REQUEST_NOT_FINALIZED: pull_request_not_finalized,
    CheckName.TARGET_SESSION_EXISTS: target_session_exists,
    CheckName.SESSION_RECORDED: session_recorded,
}


def validate_registry(registry: Mapping[Any, Any], names: type[Enum]) -> None:
    """Ensure ``registry`` has exactly one entry per member of ``names``.

    Raises:
        ValueError: Listing the missing and unknown entries
    """
    expected = set(names)
    actual = set(registry)
    missing = sorted(str(name) for name in expected - actual)
    unknown = sorted(str(name) for name in actual - expected)
    if missing or unknown:
        raise ValueError(f"{names.__name__} registry mismatch: missing={missing} unknown={unknown}")


validate_registry(PRE_CHECKS, CheckName)


class PreflightEngine:
    """Runs named pre-condition checks in order."""

    def __init__(self, registry: Mapping[CheckName, PreCheck] | None = None) -> None:
        self.registry = dict(PRE_CHECKS if registry is None else registry)

    async def run(self, names: Iterable[CheckName], ctx: OperationContext) -> VerificationResult:
        """Run ``names`` against ``ctx``.

        A check that raises a LinearFlowError is reported as an error result
        rather than aborting the remaining checks.
        """
        results = []
        for name in names:
            check = self.registry[name]
            try:
                result = await check(ctx)
            except LinearFlowError as e:
                log.warning("pre_check_raised", check=name.value, error=str(e))
                result = CheckResult.error(name.value, e.message)
            log.debug(
                "pre_check",
                check=name.value,
                passed=result.passed,
                severity=result.severity.value,
            )
            results.append(result)
        return VerificationResult.of(results)
