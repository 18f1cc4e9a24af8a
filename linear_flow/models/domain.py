"""
Domain models for the git and code-host collaborators.

These dataclasses are the normalized internal representation that the git
wrapper and the code-host client return, so checks and operations never
touch subprocess output or PyGithub objects directly.

Example:
    Inspecting a pull request found for the current branch::

        pr = await host.find_pull_request("feature/add-login", state=PullRequestState.ALL)
        if pr is not None and pr.is_finalized:
            print(f"#{pr.number} is already {pr.status}")
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PullRequestState(str, Enum):
    """State filter used when looking up pull requests."""

    OPEN = "open"
    CLOSED = "closed"
    ALL = "all"

    def __str__(self) -> str:
        return self.value


@dataclass
class PullRequest:
    """A pull request on the code host.

    Example:
        Checking whether a branch may still be shipped::

            if pr.merged or pr.state == "closed":
                # branch cannot be reused
                pass
    """

    number: int
    """Human-readable PR number (e.g., #123)."""

    title: str
    """Pull request title."""

    head: str
    """Source branch containing the changes."""

    base: str
    """Target branch to merge into."""

    state: str
    """Provider state: "open" or "closed"."""

    url: str
    """Web URL of the pull request."""

    body: str = ""
    """Pull request description in markdown."""

    merged: bool = False
    """Whether the PR has been merged. A merged PR also reports state "closed"."""

    merged_at: datetime | None = None
    """When the PR was merged, if it was."""

    created_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.state == "open" and not self.merged

    @property
    def is_finalized(self) -> bool:
        """Merged or closed PRs block reuse of their branch."""
        return self.merged or self.state == "closed"

    @property
    def status(self) -> str:
        """Single word status: "merged", "closed" or "open"."""
        if self.merged:
            return "merged"
        return "closed" if self.state == "closed" else "open"


@dataclass
class CheckRun:
    """A single CI check reported for a commit."""

    name: str
    status: str
    """One of "queued", "in_progress" or "completed"."""

    conclusion: str | None = None
    """Set once completed: "success", "failure", "cancelled", "skipped", ..."""

    @property
    def is_failed(self) -> bool:
        return self.conclusion in ("failure", "cancelled", "timed_out", "action_required")

    @property
    def is_successful(self) -> bool:
        return self.conclusion in ("success", "neutral", "skipped")


@dataclass
class CheckRunSummary:
    """All CI checks for a pull request's head commit at one point in time."""

    runs: list[CheckRun] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [run.name for run in self.runs if run.is_failed]

    @property
    def pending(self) -> list[str]:
        return [run.name for run in self.runs if run.status != "completed"]

    @property
    def all_successful(self) -> bool:
        return bool(self.runs) and all(run.is_successful for run in self.runs)


@dataclass
class GitStatus:
    """Working tree status of a checkout.

    File lists hold paths relative to the repository root.
    """

    branch: str
    staged: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)

    @property
    def unstaged(self) -> list[str]:
        """Modified, deleted and untracked paths not yet in the index."""
        return [*self.modified, *self.deleted, *self.created]

    @property
    def changed_files(self) -> list[str]:
        seen: dict[str, None] = {}
        for path in [*self.staged, *self.unstaged, *self.conflicted]:
            seen.setdefault(path, None)
        return list(seen)

    @property
    def is_clean(self) -> bool:
        return not self.changed_files

    def summary(self) -> str:
        """Human summary, e.g. "2 staged, 3 unstaged changes"."""
        return f"{len(self.staged)} staged, {len(self.unstaged)} unstaged changes"


@dataclass
class BranchSync:
    """Ahead/behind counts of a local branch against its remote counterpart."""

    ahead: int = 0
    behind: int = 0
