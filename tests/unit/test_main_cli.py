"""Unit tests for the linear_flow.main CLI module.

This module tests:
- Option parsing and the parameters handed to the controller
- JSON output on stdout
- Exit codes for each result type and for errors
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from linear_flow.enums import Phase
from linear_flow.engine.results import Done, Failed, NeedsInput
from linear_flow.exceptions import GitOperationError
from linear_flow.main import cli
from linear_flow.models.checks import CheckResult, VerificationResult

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_path(tmp_path) -> str:
    return str(tmp_path / "config.yaml")


@pytest.fixture
def controller():
    """Patch the controller class; yields the instance the CLI will use."""
    instance = MagicMock()
    instance.run = AsyncMock(return_value=Done("status", payload={"branch": "main"}))
    instance.close = AsyncMock()
    with (
        patch("linear_flow.main.configure_logging"),
        patch("linear_flow.main.WorkflowController") as mock_class,
    ):
        mock_class.for_repository.return_value = instance
        instance.for_repository = mock_class.for_repository
        yield instance


def _invoke(runner: CliRunner, config_path: str, *args: str):
    return runner.invoke(cli, ["--config", config_path, *args])


# =============================================================================
# Output and exit codes
# =============================================================================


class TestExitCodes:
    """Result types map onto process exit codes."""

    def test_done(self, cli_runner, config_path, controller):
        result = _invoke(cli_runner, config_path, "status")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "done"
        assert data["payload"] == {"branch": "main"}
        controller.close.assert_awaited_once()

    def test_needs_input(self, cli_runner, config_path, controller):
        controller.run.return_value = NeedsInput("commit", "message", "Commit message")

        result = _invoke(cli_runner, config_path, "commit")

        assert result.exit_code == 2
        assert json.loads(result.stdout)["missing"] == "message"

    def test_failed(self, cli_runner, config_path, controller):
        controller.run.return_value = Failed("ship", Phase.PRE_CHECKS, ["No active session"])

        result = _invoke(cli_runner, config_path, "ship")

        assert result.exit_code == 1
        assert json.loads(result.stdout)["errors"] == ["No active session"]

    def test_linear_flow_error(self, cli_runner, config_path, controller):
        controller.run.side_effect = GitOperationError("git status failed")

        result = _invoke(cli_runner, config_path, "status")

        assert result.exit_code == 1
        assert "Error: git status failed" in result.output
        controller.close.assert_awaited_once()

    def test_unexpected_error(self, cli_runner, config_path, controller):
        controller.run.side_effect = RuntimeError("boom")

        result = _invoke(cli_runner, config_path, "status")

        assert result.exit_code == 1
        assert "Unexpected error: boom" in result.output

    def test_keyboard_interrupt(self, cli_runner, config_path, controller):
        controller.run.side_effect = KeyboardInterrupt

        result = _invoke(cli_runner, config_path, "status")

        assert result.exit_code == 130
        assert "Interrupted by user" in result.output

    def test_invalid_config(self, cli_runner, config_path, controller):
        Path(config_path).write_text("workflow: [unclosed\n")

        result = _invoke(cli_runner, config_path, "status")

        assert result.exit_code == 1
        assert "Invalid YAML syntax" in result.output
        controller.run.assert_not_awaited()

    def test_verbose_includes_passed_checks(self, cli_runner, config_path, controller):
        checks = VerificationResult.of([CheckResult.ok("git_repository", "Inside a git repository")])
        controller.run.return_value = Done("status", pre_checks=checks)

        compact = json.loads(_invoke(cli_runner, config_path, "status").stdout)
        verbose = json.loads(_invoke(cli_runner, config_path, "--verbose", "status").stdout)

        assert compact["pre_checks"]["checks"] == []
        assert verbose["pre_checks"]["checks"][0]["name"] == "git_repository"


# =============================================================================
# Parameters
# =============================================================================


class TestParameters:
    """Options are handed to the controller unchanged."""

    def test_launch_with_resolutions(self, cli_runner, config_path, controller):
        result = _invoke(
            cli_runner,
            config_path,
            "launch",
            "feature/add-login",
            "-d",
            "Login form",
            "--auto",
            "--resolve",
            "clean_working_tree=stash",
            "--resolve",
            "existing_session = resume",
        )

        assert result.exit_code == 0
        controller.run.assert_awaited_once_with(
            "launch",
            branch_name="feature/add-login",
            description="Login form",
            auto=True,
            resolutions={"clean_working_tree": "stash", "existing_session": "resume"},
        )

    def test_launch_without_branch(self, cli_runner, config_path, controller):
        _invoke(cli_runner, config_path, "launch")

        controller.run.assert_awaited_once_with(
            "launch", branch_name=None, description=None, auto=None, resolutions=None
        )

    def test_bad_resolution_rejected(self, cli_runner, config_path, controller):
        result = _invoke(cli_runner, config_path, "ship", "--resolve", "stash")

        assert result.exit_code == 2
        assert "expected CHECK=OPTION" in result.output
        controller.run.assert_not_awaited()

    def test_commit_flags(self, cli_runner, config_path, controller):
        _invoke(cli_runner, config_path, "commit", "-m", "Add x", "--staged-only", "--no-verify")

        controller.run.assert_awaited_once_with("commit", message="Add x", staged_only=True, no_verify=True)

    def test_hotfix(self, cli_runner, config_path, controller):
        _invoke(cli_runner, config_path, "hotfix", "Checkout 500s", "--severity", "critical", "--skip-tests")

        controller.run.assert_awaited_once_with(
            "hotfix",
            issue="Checkout 500s",
            severity="critical",
            skip_tests=True,
            skip_review=False,
            auto_merge=False,
            auto=None,
            resolutions=None,
        )

    def test_hotfix_rejects_unknown_severity(self, cli_runner, config_path, controller):
        result = _invoke(cli_runner, config_path, "hotfix", "x", "--severity", "low")

        assert result.exit_code == 2

    def test_swap(self, cli_runner, config_path, controller):
        _invoke(cli_runner, config_path, "swap", "feature/b", "--stash")

        controller.run.assert_awaited_once_with(
            "swap", branch_name="feature/b", stash=True, force=False, auto=None, resolutions=None
        )

    def test_init_passes_config_path(self, cli_runner, config_path, controller):
        _invoke(cli_runner, config_path, "init", "--base-branch", "develop")

        controller.run.assert_awaited_once_with(
            "init", force=False, base_branch="develop", remote=None, config_path=config_path
        )

    def test_repository_path(self, cli_runner, config_path, controller, tmp_path):
        _invoke(cli_runner, config_path, "--repo", str(tmp_path), "sessions", "--all")

        settings, repo_path = controller.for_repository.call_args.args
        assert repo_path == tmp_path
        assert settings.initialized is False
        controller.run.assert_awaited_once_with("sessions", include_terminal=True)
