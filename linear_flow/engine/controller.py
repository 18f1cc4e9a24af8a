"""Entry point that runs workflow operations against one repository.

The controller owns the collaborators for a checkout (settings, git, session
store, code host) and hands them to every pipeline run through an explicit
OperationContext. Nothing downstream reads configuration from elsewhere.

Example:
    >>> settings = LinearFlowSettings.load()
    >>> controller = WorkflowController.for_repository(settings, ".")
    >>> result = await controller.launch("feature/add-login", description="Add login form")
    >>> isinstance(result, Done)
    True
"""

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import structlog

from linear_flow.config.settings import LinearFlowSettings
from linear_flow.engine.context import OperationContext
from linear_flow.engine.pipeline import Operation, run_pipeline
from linear_flow.engine.postflight import PostflightEngine
from linear_flow.engine.preflight import PreflightEngine
from linear_flow.engine.results import Failed, OperationResult
from linear_flow.engine.session_store import SessionStore
from linear_flow.enums import Phase
from linear_flow.exceptions import LinearFlowError
from linear_flow.git.operations import GitOperations
from linear_flow.operations import OPERATIONS
from linear_flow.providers.base import CodeHost
from linear_flow.providers.factory import create_code_host

log = structlog.get_logger(__name__)


class WorkflowController:
    """Runs named operations through the pipeline.

    Attributes:
        settings: Configuration for every run
        git: Working-copy collaborator
        store: Session store
        host: Code host client; created on first use when a factory is given
    """

    def __init__(
        self,
        settings: LinearFlowSettings,
        git: GitOperations,
        store: SessionStore,
        host: CodeHost | None = None,
        host_factory: Callable[[], CodeHost] | None = None,
        preflight: PreflightEngine | None = None,
        postflight: PostflightEngine | None = None,
        operations: Mapping[str, Operation] | None = None,
    ) -> None:
        self.settings = settings
        self.git = git
        self.store = store
        self.host = host
        self._host_factory = host_factory
        self._host_error: str | None = None
        self.preflight = preflight or PreflightEngine()
        self.postflight = postflight or PostflightEngine()
        self.operations = dict(OPERATIONS if operations is None else operations)

    @classmethod
    def for_repository(cls, settings: LinearFlowSettings, repo_path: str | Path = ".") -> "WorkflowController":
        """Build a controller with the real git, store and GitHub collaborators."""
        return cls(
            settings=settings,
            git=GitOperations(repo_path, remote=settings.workflow.remote),
            store=SessionStore(settings.state_dir),
            host_factory=lambda: create_code_host(settings, repo_path),
        )

    async def _connect_host(self) -> CodeHost | None:
        if self.host is not None or self._host_factory is None:
            return self.host
        try:
            host = self._host_factory()
            await host.connect()
        except LinearFlowError as e:
            log.warning("code_host_unavailable", error=e.message)
            self._host_error = e.message
            return None
        except Exception as e:
            # Network and discovery failures from the client libraries
            log.warning("code_host_unavailable", error=str(e), exc_info=True)
            self._host_error = f"Code host connection failed: {e}"
            return None
        self.host = host
        return host

    async def close(self) -> None:
        if self.host is not None:
            await self.host.disconnect()

    async def run(self, name: str, **params: Any) -> OperationResult:
        """Run operation ``name`` with ``params`` and return its result."""
        operation = self.operations.get(name)
        if operation is None:
            return Failed(
                operation=name,
                phase=Phase.PARAMETERS,
                errors=[f"Unknown operation '{name}'"],
                suggestions=[f"Choose one of: {', '.join(sorted(self.operations))}"],
            )

        host = await self._connect_host() if operation.requires_code_host else self.host
        ctx = OperationContext(
            operation=name,
            settings=self.settings,
            git=self.git,
            store=self.store,
            host=host,
            params={key: value for key, value in params.items() if value is not None},
        )
        if host is None and self._host_error:
            ctx.data["code_host_error"] = self._host_error

        result = await run_pipeline(operation, ctx, self.preflight, self.postflight)
        log.info("operation_finished", operation=name, status=result.status)
        return result

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def init(self, force: bool = False, **params: Any) -> OperationResult:
        return await self.run("init", force=force, **params)

    async def launch(
        self,
        branch_name: str | None = None,
        description: str | None = None,
        auto: bool | None = None,
        resolutions: Mapping[str, str] | None = None,
    ) -> OperationResult:
        return await self.run(
            "launch",
            branch_name=branch_name,
            description=description,
            auto=auto,
            resolutions=resolutions,
        )

    async def commit(
        self,
        message: str | None = None,
        staged_only: bool = False,
        no_verify: bool = False,
    ) -> OperationResult:
        return await self.run("commit", message=message, staged_only=staged_only, no_verify=no_verify)

    async def ship(self, pr_description: str | None = None, auto: bool | None = None) -> OperationResult:
        return await self.run("ship", pr_description=pr_description, auto=auto)

    async def swap(
        self,
        branch_name: str | None = None,
        stash: bool = False,
        force: bool = False,
        auto: bool | None = None,
        resolutions: Mapping[str, str] | None = None,
    ) -> OperationResult:
        return await self.run(
            "swap",
            branch_name=branch_name,
            stash=stash,
            force=force,
            auto=auto,
            resolutions=resolutions,
        )

    async def abort(self, branch_name: str | None = None, delete_branch: bool = False) -> OperationResult:
        return await self.run("abort", branch_name=branch_name, delete_branch=delete_branch)

    async def hotfix(
        self,
        issue: str | None = None,
        severity: str = "high",
        skip_tests: bool = False,
        skip_review: bool = False,
        auto_merge: bool = False,
        auto: bool | None = None,
        resolutions: Mapping[str, str] | None = None,
    ) -> OperationResult:
        return await self.run(
            "hotfix",
            issue=issue,
            severity=severity,
            skip_tests=skip_tests,
            skip_review=skip_review,
            auto_merge=auto_merge,
            auto=auto,
            resolutions=resolutions,
        )

    async def sessions(self, include_terminal: bool = False) -> OperationResult:
        return await self.run("sessions", include_terminal=include_terminal)

    async def status(self) -> OperationResult:
        return await self.run("status")

    async def cleanup(self, delete_branches: bool = False, dry_run: bool = False) -> OperationResult:
        return await self.run("cleanup", delete_branches=delete_branches, dry_run=dry_run)
