"""Pytest configuration and shared fixtures."""

from dataclasses import dataclass, field
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from linear_flow.config.settings import LinearFlowSettings
from linear_flow.engine.context import OperationContext
from linear_flow.engine.controller import WorkflowController
from linear_flow.engine.session_store import SessionStore
from linear_flow.enums import WorkflowKind
from linear_flow.exceptions import GitOperationError
from linear_flow.git.operations import GitOperations
from linear_flow.models.domain import (
    BranchSync,
    CheckRun,
    CheckRunSummary,
    GitStatus,
    PullRequest,
)
from linear_flow.models.session import SessionState, WorkflowSession
from linear_flow.providers.base import CodeHost


@dataclass
class RepoState:
    """In-memory stand-in for a checkout, driven by the ``git`` mock."""

    branch: str = "main"
    branches: set[str] = field(default_factory=lambda: {"main"})
    remote_branches: set[str] = field(default_factory=lambda: {"main"})
    changes: list[str] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    stashes: list[tuple[str, str, list[str]]] = field(default_factory=list)
    """(branch, label, files), newest first."""
    commits: dict[str, list[str]] = field(default_factory=dict)
    head: str = "0" * 40
    behind: int = 0
    stash_conflict: bool = False


def wire_git(git: AsyncMock, repo: RepoState) -> AsyncMock:
    """Make ``git`` read and change ``repo`` the way the git CLI would."""

    def status() -> GitStatus:
        return GitStatus(
            branch=repo.branch,
            staged=list(repo.staged),
            modified=list(repo.changes),
            conflicted=list(repo.conflicted),
        )

    def checkout(name: str, force: bool = False) -> None:
        if name not in repo.branches:
            raise GitOperationError(f"git checkout {name} failed: pathspec did not match", command=["checkout", name])
        repo.branch = name

    def create_branch(name: str, start_point: str | None = None) -> None:
        if name in repo.branches:
            raise GitOperationError(f"git checkout -b {name} failed: already exists")
        repo.branches.add(name)
        repo.commits[name] = []
        repo.branch = name

    def delete_branch(name: str, force: bool = False) -> None:
        repo.branches.discard(name)

    def stage_all() -> None:
        repo.staged.extend(repo.changes)
        repo.changes.clear()

    def commit(message: str, no_verify: bool = False) -> str:
        if not repo.staged:
            raise GitOperationError("git commit failed: nothing to commit")
        repo.commits.setdefault(repo.branch, []).insert(0, message)
        repo.staged.clear()
        repo.head = f"{int(repo.head, 16) + 1:040x}"
        return repo.head

    def discard_changes() -> None:
        repo.changes.clear()
        repo.staged.clear()

    def stash_list() -> list[tuple[str, str]]:
        return [(f"stash@{{{i}}}", f"On {branch}: {label}") for i, (branch, label, _) in enumerate(repo.stashes)]

    def stash_push(message: str) -> str | None:
        files = [*repo.staged, *repo.changes]
        if not files:
            return None
        repo.stashes.insert(0, (repo.branch, message, files))
        discard_changes()
        return "stash@{0}"

    def stash_pop(ref: str | None = None) -> None:
        index = int(ref[len("stash@{") : -1]) if ref else 0
        if repo.stash_conflict:
            raise GitOperationError("git stash pop failed: conflict")
        _, _, files = repo.stashes.pop(index)
        repo.changes.extend(files)

    git.is_repository.return_value = True
    git.current_branch.side_effect = lambda: repo.branch
    git.status.side_effect = status
    git.has_uncommitted_changes.side_effect = lambda: bool(repo.changes or repo.staged)
    git.branch_exists.side_effect = lambda name: name in repo.branches
    git.remote_branch_exists.side_effect = lambda name: name in repo.remote_branches
    git.head_sha.side_effect = lambda ref="HEAD": repo.head
    git.ahead_behind.side_effect = lambda local, upstream: BranchSync(behind=repo.behind)
    git.commits_since.side_effect = lambda base: list(repo.commits.get(repo.branch, []))
    git.diff_stat.side_effect = lambda cached=False: f" {len(repo.changes)} files changed"
    git.create_branch.side_effect = create_branch
    git.checkout.side_effect = checkout
    git.delete_branch.side_effect = delete_branch
    git.delete_remote_branch.side_effect = lambda name: repo.remote_branches.discard(name)
    git.stage_all.side_effect = stage_all
    git.commit.side_effect = commit
    git.push.side_effect = lambda branch, set_upstream=True: repo.remote_branches.add(branch)
    git.pull.side_effect = lambda branch: setattr(repo, "behind", 0)
    git.fetch.return_value = None
    git.prune_remote.return_value = None
    git.discard_changes.side_effect = discard_changes
    git.stash_list.side_effect = stash_list
    git.stash_push.side_effect = stash_push
    git.stash_pop.side_effect = stash_pop
    return git


def build_pr(number: int = 7, branch: str = "feature/x", state: str = "open", merged: bool = False) -> PullRequest:
    return PullRequest(
        number=number,
        title=f"[ship] {branch}",
        head=branch,
        base="main",
        state=state,
        url=f"https://github.com/acme/app/pull/{number}",
        merged=merged,
    )


@pytest.fixture
def make_pr():
    """Factory for PullRequest records."""
    return build_pr


@pytest.fixture
def settings(tmp_path: Path) -> LinearFlowSettings:
    """Initialized settings with state kept under tmp_path."""
    return LinearFlowSettings(
        workflow={"initialized": True, "state_directory": str(tmp_path / "sessions")},
        ci={"timeout_seconds": 5, "poll_interval_seconds": 0.01},
    )


@pytest.fixture
def session_store(settings: LinearFlowSettings) -> SessionStore:
    """SessionStore instance with temp directory."""
    return SessionStore(settings.state_dir)


@pytest.fixture
def repo() -> RepoState:
    """A clean checkout on main."""
    return RepoState()


@pytest.fixture
def git(repo: RepoState) -> AsyncMock:
    """GitOperations mock backed by ``repo``."""
    return wire_git(AsyncMock(spec=GitOperations), repo)


@pytest.fixture
def code_host() -> AsyncMock:
    """CodeHost mock: no PR yet, CI green, merges succeed."""
    host = AsyncMock(spec=CodeHost)
    host.find_pull_request.return_value = None
    host.create_pull_request.side_effect = lambda title, body, head, base: build_pr(branch=head)
    host.get_pull_request.side_effect = lambda number: build_pr(number, state="closed", merged=True)
    host.merge_pull_request.return_value = True
    host.wait_for_checks.return_value = CheckRunSummary(
        runs=[CheckRun(name="build", status="completed", conclusion="success")]
    )
    return host


@pytest.fixture
def controller(
    settings: LinearFlowSettings,
    git: AsyncMock,
    session_store: SessionStore,
    code_host: AsyncMock,
) -> WorkflowController:
    """Controller wired to the fakes above."""
    return WorkflowController(settings=settings, git=git, store=session_store, host=code_host)


@pytest.fixture
def start_session(session_store: SessionStore, repo: RepoState):
    """Factory: persist a session on ``branch`` and check the branch out."""

    async def _start(
        branch: str = "feature/x",
        states: tuple[SessionState, ...] = (),
        kind: WorkflowKind = WorkflowKind.FEATURE,
        metadata: dict | None = None,
        commits: tuple[str, ...] = ("Add x",),
        checkout: bool = True,
    ) -> WorkflowSession:
        session = WorkflowSession.create(branch, kind=kind, metadata=metadata)
        for state in states:
            session.transition(state, "test")
        await session_store.create(session)
        repo.branches.add(branch)
        repo.commits[branch] = list(commits)
        if checkout:
            repo.branch = branch
        return session

    return _start


@pytest.fixture
def make_context(settings: LinearFlowSettings, git: AsyncMock, session_store: SessionStore, code_host: AsyncMock):
    """Factory for OperationContext objects over the shared fakes."""

    def _make(operation: str = "launch", **kwargs) -> OperationContext:
        kwargs.setdefault("host", code_host)
        return OperationContext(operation=operation, settings=settings, git=git, store=session_store, **kwargs)

    return _make
