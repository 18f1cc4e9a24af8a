"""CLI entry point for linear-flow.

Every command runs one workflow operation and prints its result as JSON on
stdout, so an orchestrating agent can parse it. Logs go to stderr.

Exit codes:
    0   Done
    1   Failed, or an error outside the pipeline
    2   NeedsInput or NeedsChoice; re-run with the missing value or a
        ``--resolve check=option`` choice
    130 Interrupted
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
import structlog

from linear_flow.config.settings import DEFAULT_CONFIG_PATH, LinearFlowSettings
from linear_flow.engine.controller import WorkflowController
from linear_flow.engine.results import OperationResult
from linear_flow.enums import HotfixSeverity
from linear_flow.exceptions import ConfigurationError, LinearFlowError
from linear_flow.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def _parse_resolutions(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, str] | None:
    """Turn repeated ``--resolve check=option`` values into a mapping."""
    if not values:
        return None
    resolutions = {}
    for value in values:
        check, sep, option = value.partition("=")
        if not sep or not check.strip() or not option.strip():
            raise click.BadParameter(f"expected CHECK=OPTION, got '{value}'")
        resolutions[check.strip()] = option.strip()
    return resolutions


def resolution_options(func: Any) -> Any:
    """Add ``--auto`` and ``--resolve`` to commands that can halt on recoverable checks."""
    func = click.option(
        "--resolve",
        "resolutions",
        multiple=True,
        callback=_parse_resolutions,
        metavar="CHECK=OPTION",
        help="Apply a resolution option to a recoverable check (repeatable)",
    )(func)
    func = click.option(
        "--auto/--no-auto",
        default=None,
        help="Apply recommended resolutions automatically (default: workflow.auto_mode)",
    )(func)
    return func


@click.group()
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Path to configuration file")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option("--verbose", is_flag=True, help="Include every check result, not only failures")
@click.option("--repo", default=".", help="Path to the git checkout")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, verbose: bool, repo: str) -> None:
    """linear-flow: linear-history feature branch workflow."""
    configure_logging(log_level)

    try:
        settings = LinearFlowSettings.load(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {
        "settings": settings,
        "config_path": config,
        "repo": repo,
        "verbose": verbose or settings.workflow.verbose,
    }


async def _run_operation(settings: LinearFlowSettings, repo: str, name: str, params: dict[str, Any]) -> OperationResult:
    controller = WorkflowController.for_repository(settings, Path(repo))
    try:
        return await controller.run(name, **params)
    finally:
        await controller.close()


def _execute(ctx: click.Context, name: str, **params: Any) -> None:
    """Run operation ``name``, print its result and exit with its code."""
    obj = ctx.obj
    try:
        result = asyncio.run(_run_operation(obj["settings"], obj["repo"], name, params))
    except LinearFlowError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("operation_error", operation=name, exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("operation_unexpected", operation=name, exc_info=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(verbose=obj["verbose"]), indent=2, default=str))
    sys.exit(result.exit_code)


@cli.command()
@click.option("--force", is_flag=True, help="Rewrite the configuration even if already initialized")
@click.option("--base-branch", help="Branch features start from and merge into")
@click.option("--remote", help="Remote to push to and fetch from")
@click.pass_context
def init(ctx: click.Context, force: bool, base_branch: str | None, remote: str | None) -> None:
    """Initialize linear-flow in this repository."""
    _execute(
        ctx,
        "init",
        force=force,
        base_branch=base_branch,
        remote=remote,
        config_path=ctx.obj["config_path"],
    )


@cli.command()
@click.argument("branch_name", required=False)
@click.option("--description", "-d", help="What the new work is about")
@resolution_options
@click.pass_context
def launch(
    ctx: click.Context,
    branch_name: str | None,
    description: str | None,
    auto: bool | None,
    resolutions: dict[str, str] | None,
) -> None:
    """Start a feature session on a new branch."""
    _execute(ctx, "launch", branch_name=branch_name, description=description, auto=auto, resolutions=resolutions)


@cli.command()
@click.option("--message", "-m", help="Commit message")
@click.option("--staged-only", is_flag=True, help="Commit only what is already staged")
@click.option("--no-verify", is_flag=True, help="Skip commit hooks")
@click.pass_context
def commit(ctx: click.Context, message: str | None, staged_only: bool, no_verify: bool) -> None:
    """Commit work on the current session's branch."""
    _execute(ctx, "commit", message=message, staged_only=staged_only, no_verify=no_verify)


@cli.command()
@click.option("--description", "-d", "pr_description", help="Pull request description")
@resolution_options
@click.pass_context
def ship(
    ctx: click.Context,
    pr_description: str | None,
    auto: bool | None,
    resolutions: dict[str, str] | None,
) -> None:
    """Push, open a pull request, wait for CI, squash-merge and clean up."""
    _execute(ctx, "ship", pr_description=pr_description, auto=auto, resolutions=resolutions)


@cli.command()
@click.argument("branch_name", required=False)
@click.option("--stash", is_flag=True, help="Stash uncommitted changes before switching")
@click.option("--force", is_flag=True, help="Carry uncommitted changes to the target branch")
@resolution_options
@click.pass_context
def swap(
    ctx: click.Context,
    branch_name: str | None,
    stash: bool,
    force: bool,
    auto: bool | None,
    resolutions: dict[str, str] | None,
) -> None:
    """Switch to another active session's branch."""
    _execute(
        ctx,
        "swap",
        branch_name=branch_name,
        stash=stash,
        force=force,
        auto=auto,
        resolutions=resolutions,
    )


@cli.command()
@click.argument("branch_name", required=False)
@click.option("--delete-branch", is_flag=True, help="Also delete the local and remote branch")
@click.pass_context
def abort(ctx: click.Context, branch_name: str | None, delete_branch: bool) -> None:
    """Abandon a session (defaults to the current branch's)."""
    _execute(ctx, "abort", branch_name=branch_name, delete_branch=delete_branch)


@cli.command()
@click.argument("issue", required=False)
@click.option(
    "--severity",
    type=click.Choice([s.value for s in HotfixSeverity]),
    default=HotfixSeverity.HIGH.value,
    show_default=True,
    help="Urgency, encoded in the branch name",
)
@click.option("--skip-tests", is_flag=True, help="Record that tests are skipped for this hotfix")
@click.option("--skip-review", is_flag=True, help="Record that review is skipped for this hotfix")
@click.option("--auto-merge", is_flag=True, help="Record that the hotfix may merge without waiting")
@resolution_options
@click.pass_context
def hotfix(
    ctx: click.Context,
    issue: str | None,
    severity: str,
    skip_tests: bool,
    skip_review: bool,
    auto_merge: bool,
    auto: bool | None,
    resolutions: dict[str, str] | None,
) -> None:
    """Start an emergency hotfix session."""
    _execute(
        ctx,
        "hotfix",
        issue=issue,
        severity=severity,
        skip_tests=skip_tests,
        skip_review=skip_review,
        auto_merge=auto_merge,
        auto=auto,
        resolutions=resolutions,
    )


@cli.command()
@click.option("--all", "include_terminal", is_flag=True, help="Include completed and aborted sessions")
@click.pass_context
def sessions(ctx: click.Context, include_terminal: bool) -> None:
    """List workflow sessions."""
    _execute(ctx, "sessions", include_terminal=include_terminal)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the current branch, its session and sync state."""
    _execute(ctx, "status")


@cli.command()
@click.option("--delete-branches", is_flag=True, help="Delete local branches of finished sessions")
@click.option("--dry-run", is_flag=True, help="Report what would be removed")
@click.pass_context
def cleanup(ctx: click.Context, delete_branches: bool, dry_run: bool) -> None:
    """Remove expired and old finished sessions, and prune remote refs."""
    _execute(ctx, "cleanup", delete_branches=delete_branches, dry_run=dry_run)


if __name__ == "__main__":
    cli()
