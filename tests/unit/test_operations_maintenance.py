"""Tests for init, cleanup and the read-only operations."""

from datetime import UTC, datetime, timedelta

import pytest
import yaml

from linear_flow.engine.results import Done, Failed
from linear_flow.enums import Phase
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.operations.cleanup import is_stale


class TestInit:
    """Tests for the init operation."""

    @pytest.fixture
    def config_path(self, tmp_path):
        return tmp_path / ".linear-flow" / "config.yaml"

    @pytest.mark.asyncio
    async def test_init_writes_config(self, controller, settings, config_path):
        settings.workflow.initialized = False

        result = await controller.init(config_path=str(config_path), base_branch="develop")

        assert isinstance(result, Done)
        written = yaml.safe_load(config_path.read_text())
        assert written["workflow"]["initialized"] is True
        assert written["workflow"]["base_branch"] == "develop"
        assert "token" not in written["code_host"]
        assert settings.state_dir.is_dir()
        assert result.payload["already_initialized"] is False

    @pytest.mark.asyncio
    async def test_init_twice_leaves_config_alone(self, controller, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("workflow:\n  initialized: true\n  remote: upstream\n")

        result = await controller.init(config_path=str(config_path))

        assert isinstance(result, Done)
        assert result.payload["already_initialized"] is True
        assert any("--force" in w for w in result.warnings)
        assert config_path.read_text() == "workflow:\n  initialized: true\n  remote: upstream\n"

    @pytest.mark.asyncio
    async def test_force_keeps_env_references(self, controller, config_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        config_path.parent.mkdir(parents=True)
        config_path.write_text("workflow:\n  initialized: true\ncode_host:\n  token: ${GITHUB_TOKEN}\n")

        result = await controller.init(force=True, config_path=str(config_path), remote="upstream")

        assert isinstance(result, Done)
        text = config_path.read_text()
        assert "${GITHUB_TOKEN}" in text
        assert "ghp_test" not in text
        assert yaml.safe_load(text)["workflow"]["remote"] == "upstream"

    @pytest.mark.asyncio
    async def test_outside_git_repository(self, controller, git, settings, config_path):
        settings.workflow.initialized = False
        git.is_repository.return_value = False

        result = await controller.init(config_path=str(config_path))

        assert isinstance(result, Failed)
        assert result.phase == Phase.PRE_CHECKS
        assert not config_path.exists()


def _aged(branch: str, days: int, state: SessionState | None = SessionState.ABORTED) -> WorkflowSession:
    session = WorkflowSession.create(branch)
    if state is not None:
        session.transition(state, "test")
    session.updated_at = datetime.now(UTC) - timedelta(days=days)
    return session


class TestCleanup:
    """Tests for the cleanup operation."""

    def test_is_stale(self):
        now = datetime.now(UTC)
        ttl = timedelta(days=30)

        assert is_stale(_aged("feature/a", 40), ttl, now)
        assert not is_stale(_aged("feature/b", 5), ttl, now)
        assert not is_stale(_aged("feature/c", 40, state=None), ttl, now)

    def test_expired_active_session_is_stale(self):
        session = WorkflowSession.create("feature/a", ttl_days=1)

        assert is_stale(session, timedelta(days=30), datetime.now(UTC) + timedelta(days=2))

    @pytest.mark.asyncio
    async def test_purges_old_terminal_sessions(self, controller, git, session_store):
        old = await session_store.create(_aged("feature/old", 40))
        recent = await session_store.create(_aged("feature/recent", 2))
        active = await session_store.create(WorkflowSession.create("feature/live"))

        result = await controller.cleanup()

        assert isinstance(result, Done)
        assert [s["id"] for s in result.payload["purged_sessions"]] == [old.id]
        assert await session_store.get(old.id) is None
        assert await session_store.get(recent.id) is not None
        assert await session_store.get(active.id) is not None
        git.prune_remote.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deletes_branches_of_finished_sessions(self, controller, repo, session_store):
        await session_store.create(_aged("feature/done", 2, state=SessionState.ABORTED))
        await session_store.create(WorkflowSession.create("feature/live"))
        repo.branches.update({"feature/done", "feature/live"})

        result = await controller.cleanup(delete_branches=True)

        assert result.payload["deleted_branches"] == ["feature/done"]
        assert repo.branches == {"main", "feature/live"}

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, controller, repo, git, session_store):
        old = await session_store.create(_aged("feature/old", 40))
        repo.branches.add("feature/old")

        result = await controller.cleanup(delete_branches=True, dry_run=True)

        assert result.payload["dry_run"] is True
        assert result.payload["deleted_branches"] == ["feature/old"]
        assert await session_store.get(old.id) is not None
        assert "feature/old" in repo.branches
        git.delete_branch.assert_not_awaited()
        git.prune_remote.assert_not_awaited()


class TestQueries:
    """Tests for sessions and status."""

    @pytest.mark.asyncio
    async def test_sessions_lists_active_by_default(self, controller, session_store):
        active = await session_store.create(WorkflowSession.create("feature/a"))
        await session_store.create(_aged("feature/b", 1))

        result = await controller.sessions()

        assert result.payload["count"] == 1
        assert result.payload["sessions"][0]["id"] == active.id
        assert result.payload["sessions"][0]["state"] == "BRANCH_READY"

    @pytest.mark.asyncio
    async def test_sessions_include_terminal(self, controller, session_store):
        await session_store.create(WorkflowSession.create("feature/a"))
        await session_store.create(_aged("feature/b", 1))

        result = await controller.sessions(include_terminal=True)

        assert result.payload["count"] == 2

    @pytest.mark.asyncio
    async def test_status_on_feature_branch(self, controller, repo, start_session):
        session = await start_session()
        repo.changes = ["a.py"]
        repo.staged = ["b.py"]
        repo.behind = 1

        result = await controller.status()

        assert isinstance(result, Done)
        assert result.payload["branch"] == "feature/x"
        assert result.payload["on_base_branch"] is False
        assert result.payload["session"]["id"] == session.id
        assert result.payload["working_tree"] == {
            "clean": False,
            "staged": 1,
            "unstaged": 1,
            "untracked": 0,
            "conflicted": 0,
        }
        assert result.payload["base"] == {"ahead": 0, "behind": 1}

    @pytest.mark.asyncio
    async def test_status_on_base_branch(self, controller):
        result = await controller.status()

        assert result.payload["on_base_branch"] is True
        assert result.payload["session"] is None
        assert "base" not in result.payload

    @pytest.mark.asyncio
    async def test_queries_require_initialization(self, controller, settings):
        settings.workflow.initialized = False

        result = await controller.sessions()

        assert isinstance(result, Failed)
        assert result.phase == Phase.INITIALIZATION
