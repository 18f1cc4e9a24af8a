"""Tests for the tagged operation results."""

import pytest

from linear_flow.enums import Phase, RiskTier
from linear_flow.engine.results import Done, Failed, NeedsChoice, NeedsInput
from linear_flow.models.checks import CheckResult, ResolutionOption, VerificationResult
from linear_flow.models.session import WorkflowSession


def _checks() -> VerificationResult:
    return VerificationResult.of(
        [
            CheckResult.ok("git_repository", "Inside a git repository"),
            CheckResult.warning("remote_sync", "main is 2 commits behind origin/main"),
        ]
    )


def _dirty_tree() -> CheckResult:
    return CheckResult.recoverable(
        "clean_working_tree",
        "Working tree has 1 staged, 2 unstaged changes",
        options=[
            ResolutionOption("discard", "Discard", "Throw changes away", "git reset --hard", RiskTier.HIGH, True),
            ResolutionOption("stash", "Stash", "Stash changes", "git stash push", RiskTier.LOW),
        ],
    )


class TestExitCodes:
    """Each result type maps to a fixed process exit code."""

    def test_exit_codes(self):
        assert Done("launch").exit_code == 0
        assert NeedsInput("commit", "message", "Commit message").exit_code == 2
        assert NeedsChoice("launch", "choose", (_dirty_tree(),)).exit_code == 2
        assert Failed("ship", Phase.MUTATION, ["boom"]).exit_code == 1

    def test_status_tags(self):
        assert Done("launch").status == "done"
        assert NeedsInput("commit", "message", "Commit message").status == "needs_input"
        assert NeedsChoice("launch", "choose", (_dirty_tree(),)).status == "needs_choice"
        assert Failed("ship", Phase.MUTATION, ["boom"]).status == "failed"


class TestDone:
    """Tests for Done serialization."""

    def test_compact_checks_keep_only_noteworthy_results(self):
        data = Done("launch", payload={"branch": "feature/x"}, pre_checks=_checks()).to_dict()

        assert data["status"] == "done"
        assert data["payload"] == {"branch": "feature/x"}
        assert [check["name"] for check in data["pre_checks"]["checks"]] == ["remote_sync"]
        assert data["pre_checks"]["counts"] == {"passed": 2, "failed": 0}
        assert "session" not in data

    def test_verbose_checks_include_everything(self):
        data = Done("launch", pre_checks=_checks()).to_dict(verbose=True)

        assert [check["name"] for check in data["pre_checks"]["checks"]] == ["git_repository", "remote_sync"]
        assert data["pre_checks"]["warnings"] == ["main is 2 commits behind origin/main"]

    def test_session_summary(self):
        session = WorkflowSession.create("feature/x")

        compact = Done("launch", session=session).to_dict()["session"]
        verbose = Done("launch", session=session).to_dict(verbose=True)["session"]

        assert compact == {"id": session.id, "branch_name": "feature/x", "kind": "feature", "state": "BRANCH_READY"}
        assert verbose["history"] == session.to_dict()["history"]


class TestNeedsChoice:
    """Tests for NeedsChoice serialization."""

    def test_choices_carry_options_and_recommendation(self):
        data = NeedsChoice("launch", "Resolve 1 check", (_dirty_tree(),)).to_dict()

        (choice,) = data["choices"]
        assert choice["check"] == "clean_working_tree"
        assert [option["id"] for option in choice["options"]] == ["discard", "stash"]
        assert choice["recommended"] == "stash"

    def test_no_recommendation_when_all_options_discard_work(self):
        check = CheckResult.recoverable(
            "stale",
            "Stale branch",
            options=[ResolutionOption("delete", "Delete", "Delete it", "git branch -D", RiskTier.LOW, True)],
        )

        data = NeedsChoice("cleanup", "Resolve", (check,)).to_dict()

        assert data["choices"][0]["recommended"] is None


class TestFailed:
    """Tests for Failed."""

    def test_requires_an_error(self):
        with pytest.raises(ValueError):
            Failed("ship", Phase.MUTATION, [])

    def test_optional_fields_omitted_when_empty(self):
        data = Failed("ship", Phase.PRE_CHECKS, ["Not on a feature branch"]).to_dict()

        assert data == {
            "status": "failed",
            "operation": "ship",
            "phase": "pre_checks",
            "errors": ["Not on a feature branch"],
            "suggestions": [],
            "warnings": [],
        }

    def test_partial_progress_reported(self):
        data = Failed(
            "ship",
            Phase.MUTATION,
            ["Wait for CI failed: CI checks failed: lint"],
            payload={"pr_number": 7},
            completed_steps=["push", "create_pr"],
        ).to_dict()

        assert data["completed_steps"] == ["push", "create_pr"]
        assert data["payload"] == {"pr_number": 7}


def test_needs_input_to_dict():
    result = NeedsInput(
        "commit",
        "message",
        "Commit message describing the staged changes",
        context={"files": ["a.py"]},
        next_steps=["linear-flow commit --message '<message>'"],
    )

    assert result.to_dict() == {
        "status": "needs_input",
        "operation": "commit",
        "missing": "message",
        "prompt": "Commit message describing the staged changes",
        "context": {"files": ["a.py"]},
        "next_steps": ["linear-flow commit --message '<message>'"],
    }
