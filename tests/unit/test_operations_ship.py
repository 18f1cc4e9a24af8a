"""Tests for the ship operation."""

import pytest

from linear_flow.engine.controller import WorkflowController
from linear_flow.engine.results import Done, Failed, NeedsInput
from linear_flow.enums import Phase, WorkflowKind
from linear_flow.exceptions import CIFailedError, ConfigurationError, GitOperationError
from linear_flow.models.session import SessionState


class TestShipHappyPath:
    """A committed branch ships all the way to COMPLETE."""

    @pytest.mark.asyncio
    async def test_ship_merges_and_cleans_up(self, controller, repo, git, code_host, session_store, start_session):
        session = await start_session(states=(SessionState.CHANGES_COMMITTED,))

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Done)
        assert result.payload["merged"] is True
        assert result.payload["pr_number"] == 7
        assert result.payload["state"] == "COMPLETE"
        assert result.payload["checks"] == ["build"]

        stored = await session_store.get(session.id)
        assert stored.state == SessionState.COMPLETE
        assert stored.metadata["pr"]["merged"] is True
        assert stored.metadata["branch"]["remote_deleted"] is True
        assert [r.to_state for r in stored.history][2:] == [
            SessionState.PUSHED,
            SessionState.PR_CREATED,
            SessionState.CHECKS_PASSING,
            SessionState.READY_TO_MERGE,
            SessionState.COMPLETE,
        ]

        assert repo.branch == "main"
        assert "feature/x" not in repo.branches
        assert "feature/x" not in repo.remote_branches
        code_host.merge_pull_request.assert_awaited_once_with(7, method="squash")
        assert result.post_checks.all_passed

    @pytest.mark.asyncio
    async def test_pull_request_body_rendered(self, controller, code_host, start_session):
        await start_session()

        await controller.ship(pr_description="Adds x")

        kwargs = code_host.create_pull_request.await_args.kwargs
        assert kwargs["title"] == "[ship] feature/x"
        assert kwargs["head"] == "feature/x"
        assert kwargs["base"] == "main"
        assert "Adds x" in kwargs["body"]
        assert "- Add x" in kwargs["body"]

    @pytest.mark.asyncio
    async def test_hotfix_title_prefix(self, controller, code_host, start_session):
        await start_session(
            "hotfix/critical-login",
            kind=WorkflowKind.HOTFIX,
            metadata={"issue": "login", "severity": "critical"},
        )

        await controller.ship(pr_description="Fix login")

        kwargs = code_host.create_pull_request.await_args.kwargs
        assert kwargs["title"] == "[hotfix] hotfix/critical-login"
        assert "**Hotfix** (critical): login" in kwargs["body"]

    @pytest.mark.asyncio
    async def test_remote_delete_failure_is_warning(self, controller, git, start_session):
        await start_session()
        git.delete_remote_branch.side_effect = GitOperationError("git push origin --delete failed")

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Done)
        assert "Remote branch not deleted: git push origin --delete failed" in result.warnings


class TestShipParameters:
    """The PR description is only needed when a new PR will be opened."""

    @pytest.mark.asyncio
    async def test_asks_for_description(self, controller, git, start_session):
        await start_session()

        result = await controller.ship()

        assert isinstance(result, NeedsInput)
        assert result.missing == "pr_description"
        assert result.context == {"branch": "feature/x", "commits": ["Add x"]}
        git.push.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_pull_request_reused(self, controller, code_host, start_session, make_pr):
        await start_session()
        code_host.find_pull_request.return_value = make_pr(11, "feature/x")

        result = await controller.ship()

        assert isinstance(result, Done)
        assert result.payload["pr_reused"] is True
        assert result.payload["pr_number"] == 11
        code_host.create_pull_request.assert_not_awaited()


class TestShipFailures:
    """Failures stop the run and leave completed steps in place."""

    @pytest.mark.asyncio
    async def test_push_rejected(self, controller, git, code_host, session_store, start_session):
        session = await start_session()
        git.push.side_effect = GitOperationError("git push failed: rejected")

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Failed)
        assert result.phase == Phase.MUTATION
        assert result.errors == ["Ship failed: git push failed: rejected"]
        assert result.completed_steps == []
        assert result.suggestions == ["git push --set-upstream origin feature/x"]
        code_host.create_pull_request.assert_not_awaited()
        assert (await session_store.get(session.id)).state == SessionState.BRANCH_READY

    @pytest.mark.asyncio
    async def test_ci_failure(self, controller, code_host, session_store, start_session):
        session = await start_session()
        code_host.wait_for_checks.side_effect = CIFailedError(["build", "lint"])

        result = await controller.ship(pr_description="Adds x")

        assert result.errors == ["Ship failed: CI checks failed: build, lint"]
        assert result.suggestions == ["Fix the failing checks, commit, and ship again"]
        assert (await session_store.get(session.id)).state == SessionState.PR_CREATED

    @pytest.mark.asyncio
    async def test_merge_refused(self, controller, repo, code_host, session_store, start_session):
        session = await start_session()
        code_host.merge_pull_request.return_value = False

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Failed)
        assert result.errors == ["Ship failed: PR #7 was not merged"]
        assert result.completed_steps == ["push", "pull_request", "ci"]
        assert (await session_store.get(session.id)).state == SessionState.READY_TO_MERGE
        assert "feature/x" in repo.branches

    @pytest.mark.asyncio
    async def test_no_commits(self, controller, git, start_session):
        await start_session(commits=())

        result = await controller.ship(pr_description="Adds x")

        assert result.phase == Phase.PRE_CHECKS
        assert result.errors == ["No commits to ship on 'feature/x'"]
        git.push.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_code_host_unavailable(self, settings, git, session_store, start_session):
        def factory():
            raise ConfigurationError("No code host token configured")

        controller = WorkflowController(settings, git, session_store, host_factory=factory)
        await start_session()

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Failed)
        assert result.errors == ["No code host token configured"]
        git.push.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_code_host_connection_error(self, settings, git, session_store, start_session):
        def factory():
            raise ConnectionError("Name or service not known")

        controller = WorkflowController(settings, git, session_store, host_factory=factory)
        await start_session()

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Failed)
        assert result.phase == Phase.PRE_CHECKS
        assert result.errors == ["Code host connection failed: Name or service not known"]
        git.push.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_network_error_during_ci_keeps_completed_steps(
        self, controller, code_host, session_store, start_session
    ):
        session = await start_session()
        code_host.wait_for_checks.side_effect = ConnectionError("connection reset")

        result = await controller.ship(pr_description="Adds x")

        assert isinstance(result, Failed)
        assert result.phase == Phase.MUTATION
        assert result.errors == ["Ship failed: connection reset"]
        assert result.completed_steps == ["push", "pull_request"]
        assert result.payload["pr_number"] == 7
        assert (await session_store.get(session.id)).state == SessionState.PR_CREATED


class TestShipResume:
    """Re-running ship continues from the recorded state."""

    @pytest.mark.asyncio
    async def test_resume_after_ci_timeout(self, controller, code_host, session_store, start_session, make_pr):
        session = await start_session(
            states=(SessionState.PUSHED, SessionState.PR_CREATED),
            metadata={"pr": {"number": 7, "url": "https://github.com/acme/app/pull/7", "merged": False}},
        )
        code_host.find_pull_request.return_value = make_pr(7, "feature/x")

        result = await controller.ship()

        assert isinstance(result, Done)
        code_host.create_pull_request.assert_not_awaited()
        stored = await session_store.get(session.id)
        assert stored.state == SessionState.COMPLETE
        assert [r.to_state for r in stored.history].count(SessionState.PUSHED) == 1
