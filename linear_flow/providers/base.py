"""
Abstract base class for code-host providers.

The pipeline only needs four things from a code host: find a pull request
for a branch, create one, merge one, and report CI status. Implementations
normalize provider objects into :mod:`linear_flow.models.domain` records.
"""

import asyncio
from abc import ABC, abstractmethod

import structlog

from linear_flow.exceptions import CIFailedError, CITimeoutError
from linear_flow.models.domain import CheckRunSummary, PullRequest, PullRequestState

log = structlog.get_logger(__name__)


class CodeHost(ABC):
    """Interface to a remote code host's pull request and CI APIs.

    All methods are async so the pipeline can suspend on them like any
    other I/O boundary.
    """

    async def connect(self) -> None:
        """Open the client. Providers without setup can rely on this no-op."""

    async def disconnect(self) -> None:
        """Release the client."""

    @abstractmethod
    async def find_pull_request(
        self,
        branch: str,
        state: PullRequestState = PullRequestState.ALL,
    ) -> PullRequest | None:
        """Find the most recent pull request whose head is ``branch``.

        Args:
            branch: Head branch name
            state: Restrict to open, closed (including merged) or any PRs

        Returns:
            The newest matching PullRequest, or None
        """
        pass

    @abstractmethod
    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        """Open a pull request from ``head`` into ``base``."""
        pass

    @abstractmethod
    async def get_pull_request(self, number: int) -> PullRequest:
        pass

    @abstractmethod
    async def merge_pull_request(self, number: int, method: str = "squash") -> bool:
        """Merge a pull request.

        Returns:
            True if the host reports the PR as merged
        """
        pass

    @abstractmethod
    async def get_check_runs(self, number: int) -> CheckRunSummary:
        """Snapshot of CI checks on the pull request's head commit."""
        pass

    async def wait_for_checks(
        self,
        number: int,
        timeout: float,
        interval: float,
        require_checks: bool = True,
    ) -> CheckRunSummary:
        """Poll CI until every check succeeds, one fails, or ``timeout`` passes.

        The wait stops only on a conclusion or the timeout. To abandon it
        early, cancel the awaiting task; ``asyncio.CancelledError`` is
        propagated unchanged.

        Args:
            number: Pull request number
            timeout: Seconds to wait in total
            interval: Seconds between polls
            require_checks: If False, a PR with no checks at all passes

        Returns:
            The final, all-successful summary

        Raises:
            CIFailedError: If any check concluded with failure or cancellation
            CITimeoutError: If checks were still pending at the timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        polls = 0

        while True:
            polls += 1
            summary = await self.get_check_runs(number)
            log.debug(
                "ci_poll",
                pr=number,
                poll=polls,
                total=len(summary.runs),
                pending=len(summary.pending),
                failed=len(summary.failed),
            )

            if summary.failed:
                log.warning("ci_failed", pr=number, failed=summary.failed)
                raise CIFailedError(summary.failed)
            if summary.all_successful or (not summary.runs and not require_checks):
                log.info("ci_passed", pr=number, polls=polls)
                return summary

            remaining = deadline - loop.time()
            if remaining <= 0:
                log.warning("ci_timeout", pr=number, timeout=timeout, pending=summary.pending)
                raise CITimeoutError(timeout)
            await asyncio.sleep(min(interval, remaining))
