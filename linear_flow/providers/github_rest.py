"""GitHub code host implementation using PyGithub and the REST API."""

import asyncio
from collections.abc import Callable
from typing import TypeVar

import structlog
from github import Github, GithubException  # type: ignore[import-not-found]
from github.PullRequest import PullRequest as GHPullRequest  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from linear_flow.exceptions import ExternalServiceError
from linear_flow.models.domain import CheckRun, CheckRunSummary, PullRequest, PullRequestState
from linear_flow.providers.base import CodeHost
from linear_flow.utils.retry import async_retry

log = structlog.get_logger(__name__)

T = TypeVar("T")

# Legacy commit statuses map onto check-run vocabulary
_STATUS_CONCLUSIONS = {"success": "success", "failure": "failure", "error": "failure"}


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


def _is_transient(e: Exception) -> bool:
    """Retry only GitHub failures without a status or with a 5xx status."""
    if not isinstance(e.__cause__, GithubException):
        return False
    status = getattr(e, "status_code", None)
    return status is None or status >= 500


def _service_error(action: str, e: GithubException) -> ExternalServiceError:
    message = e.data.get("message") if isinstance(e.data, dict) else None
    return ExternalServiceError(
        f"GitHub {action} failed: {message or e}",
        status_code=e.status,
        response_text=str(e.data) if e.data else None,
    )


class GitHubRestProvider(CodeHost):
    """GitHub implementation using PyGithub library."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
    ):
        """Initialize GitHub provider.

        Args:
            token: GitHub personal access token or App token
            owner: Repository owner (user or organization)
            repo: Repository name
            base_url: GitHub API base URL (for GitHub Enterprise)
        """
        self.token = token.strip() if token else token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self._client: Github | None = None
        self._repo: GHRepository | None = None

    async def connect(self) -> None:
        """Initialize GitHub client."""

        def _connect() -> tuple[Github, GHRepository]:
            client = Github(self.token, base_url=self.base_url)
            repo = client.get_repo(f"{self.owner}/{self.repo}")
            return client, repo

        try:
            self._client, self._repo = await _run_sync(_connect)
        except GithubException as e:
            log.error("github_connect_failed", owner=self.owner, repo=self.repo, error=str(e))
            raise _service_error("connect", e) from e

        log.info("github_connected", base_url=self.base_url, owner=self.owner, repo=self.repo)

    async def disconnect(self) -> None:
        """Close GitHub client."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repo = None

    @property
    def _gh_repo(self) -> GHRepository:
        if self._repo is None:
            raise ExternalServiceError("GitHub client is not connected")
        return self._repo

    @async_retry(max_attempts=3, exceptions=(ExternalServiceError,), should_retry=_is_transient)
    async def find_pull_request(
        self,
        branch: str,
        state: PullRequestState = PullRequestState.ALL,
    ) -> PullRequest | None:
        """Find the newest pull request for a head branch."""
        log.info("find_pull_request", branch=branch, state=str(state))

        def _find() -> GHPullRequest | None:
            pulls = self._gh_repo.get_pulls(
                state=state.value,
                head=f"{self.owner}:{branch}",
                sort="created",
                direction="desc",
            )
            for gh_pr in pulls:
                return gh_pr
            return None

        try:
            gh_pr = await _run_sync(_find)
        except GithubException as e:
            log.error("github_find_pr_failed", branch=branch, error=str(e))
            raise _service_error("pull request lookup", e) from e

        return self._convert_pull_request(gh_pr) if gh_pr is not None else None

    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        """Create a pull request."""
        log.info("create_pull_request", title=title, head=head, base=base)

        try:
            gh_pr = await _run_sync(
                lambda: self._gh_repo.create_pull(title=title, body=body, head=head, base=base)
            )
        except GithubException as e:
            log.error("github_create_pr_failed", head=head, error=str(e))
            raise _service_error("pull request creation", e) from e

        return self._convert_pull_request(gh_pr)

    async def get_pull_request(self, number: int) -> PullRequest:
        """Get pull request by number."""
        try:
            gh_pr = await _run_sync(lambda: self._gh_repo.get_pull(number))
        except GithubException as e:
            log.error("github_get_pr_failed", number=number, error=str(e))
            raise _service_error("pull request fetch", e) from e

        return self._convert_pull_request(gh_pr)

    async def merge_pull_request(self, number: int, method: str = "squash") -> bool:
        """Merge a pull request with the given method."""
        log.info("merge_pull_request", number=number, method=method)

        def _merge() -> bool:
            gh_pr = self._gh_repo.get_pull(number)
            status = gh_pr.merge(merge_method=method)
            return bool(status.merged)

        try:
            return await _run_sync(_merge)
        except GithubException as e:
            log.error("github_merge_pr_failed", number=number, error=str(e))
            raise _service_error("merge", e) from e

    @async_retry(max_attempts=3, exceptions=(ExternalServiceError,), should_retry=_is_transient)
    async def get_check_runs(self, number: int) -> CheckRunSummary:
        """Collect check runs and legacy commit statuses for the PR head."""

        def _collect() -> list[CheckRun]:
            gh_pr = self._gh_repo.get_pull(number)
            commit = self._gh_repo.get_commit(gh_pr.head.sha)

            runs = [
                CheckRun(name=run.name, status=run.status, conclusion=run.conclusion)
                for run in commit.get_check_runs()
            ]
            for status in commit.get_combined_status().statuses:
                if status.state == "pending":
                    runs.append(CheckRun(name=status.context, status="in_progress"))
                else:
                    conclusion = _STATUS_CONCLUSIONS.get(status.state, status.state)
                    runs.append(CheckRun(name=status.context, status="completed", conclusion=conclusion))
            return runs

        try:
            return CheckRunSummary(runs=await _run_sync(_collect))
        except GithubException as e:
            log.error("github_check_runs_failed", number=number, error=str(e))
            raise _service_error("check status", e) from e

    def _convert_pull_request(self, gh_pr: GHPullRequest) -> PullRequest:
        """Convert GitHub PullRequest to our PullRequest model."""
        return PullRequest(
            number=gh_pr.number,
            title=gh_pr.title,
            body=gh_pr.body or "",
            state=gh_pr.state,
            head=gh_pr.head.ref,
            base=gh_pr.base.ref,
            url=gh_pr.html_url,
            merged=bool(gh_pr.merged),
            merged_at=gh_pr.merged_at,
            created_at=gh_pr.created_at,
        )
