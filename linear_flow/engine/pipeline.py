"""The fixed phase sequence every workflow operation runs through.

An :class:`Operation` is a bundle of small hooks; :func:`run_pipeline`
drives them through the same phases for every operation:

1. Initialization check (skipped only by ``init``)
2. Parameter collection, which may return :class:`NeedsInput`
3. Context construction
4. Pre-condition checks
5. Recoverable-issue resolution (auto mode, caller choice, or :class:`NeedsChoice`)
6. Hard-failure short-circuit
7. Mutation
8. Post-condition verification and result assembly

Phases 1-6 never change anything. Exceptions from any phase are turned into
a :class:`Failed` result here and nowhere else; ``asyncio.CancelledError``
is not an ``Exception`` and passes through untouched.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from linear_flow.engine.context import MutationOutcome, OperationContext
from linear_flow.engine.postflight import PostflightEngine, VerificationName
from linear_flow.engine.preflight import CheckName, PreflightEngine
from linear_flow.engine.results import Done, Failed, NeedsChoice, NeedsInput, OperationResult
from linear_flow.enums import Phase
from linear_flow.exceptions import LinearFlowError, NotInitializedError, StepFailedError
from linear_flow.models.checks import ResolutionOption, VerificationResult

log = structlog.get_logger(__name__)

ParameterHook = Callable[[OperationContext], Awaitable[NeedsInput | None]]
ContextHook = Callable[[OperationContext], Awaitable[None]]
MutationHook = Callable[[OperationContext], Awaitable[MutationOutcome]]
PreCheckSelector = Sequence[CheckName] | Callable[[OperationContext], Sequence[CheckName]]
VerificationSelector = (
    Sequence[VerificationName] | Callable[[OperationContext, MutationOutcome], Sequence[VerificationName]]
)


@dataclass(frozen=True)
class Operation:
    """Operation-specific hooks plugged into the pipeline.

    Attributes:
        name: Operation name, used in logs and results
        mutate: The operation's effect; the only hook allowed to change state
        collect_parameters: Returns NeedsInput when a required value is missing
        build_context: Resolves sessions and branches onto the context
        pre_checks: Check names, or a function of the context returning them
        resolutions: Option ids this operation can apply, per recoverable check
        post_checks: Verification names, or a function of context and outcome
        requires_initialization: False only for ``init``
        requires_code_host: The controller connects a code host before running
    """

    name: str
    mutate: MutationHook
    collect_parameters: ParameterHook | None = None
    build_context: ContextHook | None = None
    pre_checks: PreCheckSelector = ()
    resolutions: Mapping[CheckName, Sequence[str]] = field(default_factory=dict)
    post_checks: VerificationSelector = ()
    requires_initialization: bool = True
    requires_code_host: bool = False

    @property
    def title(self) -> str:
        return self.name.capitalize()


def _error_message(e: Exception) -> str:
    return e.message if isinstance(e, LinearFlowError) else str(e) or type(e).__name__


def _suggestions(result: VerificationResult) -> list[str]:
    return [check.suggestion for check in result.errors if check.suggestion]


def _resolve(
    operation: Operation,
    ctx: OperationContext,
    pre: VerificationResult,
) -> dict[str, ResolutionOption] | NeedsChoice | Failed:
    """Pick an option for every recoverable check, or explain why not."""
    requested: Mapping[str, str] = ctx.params.get("resolutions") or {}
    chosen: dict[str, ResolutionOption] = {}
    unresolved = []

    for check in pre.recoverable:
        option_id = requested.get(check.name)
        if option_id is not None:
            option = check.option(option_id)
            if option is None:
                valid = ", ".join(o.id for o in check.options)
                return Failed(
                    operation=operation.name,
                    phase=Phase.RESOLUTION,
                    errors=[f"Unknown option '{option_id}' for check '{check.name}'"],
                    suggestions=[f"Choose one of: {valid}"],
                    pre_checks=pre,
                )
            log.info("resolution_selected", check=check.name, option=option.id)
            chosen[check.name] = option
        elif ctx.auto:
            option = check.recommended_option
            if option is None:
                return Failed(
                    operation=operation.name,
                    phase=Phase.RESOLUTION,
                    errors=[f"Auto mode cannot resolve '{check.name}': no option is safe to apply automatically"],
                    suggestions=["Re-run without auto mode and choose an option"],
                    pre_checks=pre,
                )
            log.info("resolution_auto", check=check.name, option=option.id)
            chosen[check.name] = option
        else:
            unresolved.append(check)

    if unresolved:
        log.info("resolution_required", checks=[check.name for check in unresolved])
        return NeedsChoice(
            operation=operation.name,
            message=f"{operation.title} needs a decision on {len(unresolved)} issue(s) before it can continue",
            choices=tuple(unresolved),
            pre_checks=pre,
        )
    return chosen


async def run_pipeline(
    operation: Operation,
    ctx: OperationContext,
    preflight: PreflightEngine,
    postflight: PostflightEngine,
) -> OperationResult:
    """Run ``operation`` through every phase and return its tagged result."""
    with structlog.contextvars.bound_contextvars(operation=operation.name):
        log.debug("pipeline_started")

        # 1. Initialization
        if operation.requires_initialization and not ctx.settings.initialized:
            log.info("pipeline_not_initialized")
            return Failed(
                operation=operation.name,
                phase=Phase.INITIALIZATION,
                errors=[NotInitializedError().message],
                suggestions=["linear-flow init"],
            )

        ctx.offered_resolutions = {str(name): tuple(ids) for name, ids in operation.resolutions.items()}

        # 2. Parameters
        if operation.collect_parameters is not None:
            try:
                needs = await operation.collect_parameters(ctx)
            except Exception as e:
                log.error("parameter_collection_failed", error=str(e), exc_info=True)
                return Failed(operation.name, Phase.PARAMETERS, errors=[_error_message(e)])
            if needs is not None:
                log.info("parameters_needed", missing=needs.missing)
                return needs

        # 3. Context
        if operation.build_context is not None:
            try:
                await operation.build_context(ctx)
            except Exception as e:
                log.error("context_build_failed", error=str(e), exc_info=True)
                return Failed(operation.name, Phase.CONTEXT, errors=[_error_message(e)])

        # 4. Pre-conditions
        names = operation.pre_checks(ctx) if callable(operation.pre_checks) else operation.pre_checks
        try:
            pre = await preflight.run(names, ctx)
        except Exception as e:
            log.error("pre_checks_failed", error=str(e), exc_info=True)
            return Failed(operation.name, Phase.PRE_CHECKS, errors=[_error_message(e)])
        log.debug("pre_checks_completed", passed=pre.passed_count, failed=pre.failed_count)

        # 5. Recoverable issues
        if pre.recoverable:
            resolved = _resolve(operation, ctx, pre)
            if not isinstance(resolved, dict):
                return resolved
            ctx.resolutions = resolved

        # 6. Hard failures
        if pre.errors:
            log.info("pre_checks_blocked", failures=pre.failures)
            return Failed(
                operation=operation.name,
                phase=Phase.PRE_CHECKS,
                errors=pre.failures,
                suggestions=_suggestions(pre),
                pre_checks=pre,
                warnings=pre.warning_messages,
            )

        # 7. Mutation
        log.info("mutation_started", resolutions={name: option.id for name, option in ctx.resolutions.items()})
        try:
            outcome = await operation.mutate(ctx)
        except StepFailedError as e:
            log.error("mutation_failed", step=e.step, completed=e.completed_steps, error=e.message, exc_info=True)
            return Failed(
                operation=operation.name,
                phase=Phase.MUTATION,
                errors=[f"{operation.title} failed: {e.message}"],
                suggestions=[e.suggestion] if e.suggestion else [],
                pre_checks=pre,
                payload=e.payload,
                completed_steps=e.completed_steps,
                warnings=pre.warning_messages,
            )
        except Exception as e:
            log.error("mutation_failed", error=str(e), exc_info=True)
            return Failed(
                operation=operation.name,
                phase=Phase.MUTATION,
                errors=[f"{operation.title} failed: {_error_message(e)}"],
                pre_checks=pre,
                warnings=pre.warning_messages,
            )

        # 8. Post-conditions and result
        names = (
            operation.post_checks(ctx, outcome) if callable(operation.post_checks) else operation.post_checks
        )
        post = await postflight.run(names, ctx, outcome)
        warnings = pre.warning_messages + outcome.warnings + post.warning_messages

        if post.errors:
            log.warning("post_checks_failed", failures=post.failures)
            return Failed(
                operation=operation.name,
                phase=Phase.POST_CHECKS,
                errors=post.failures,
                suggestions=_suggestions(post),
                pre_checks=pre,
                post_checks=post,
                payload=outcome.payload,
                completed_steps=outcome.steps,
                warnings=warnings,
            )

        log.info("pipeline_completed", steps=outcome.steps)
        return Done(
            operation=operation.name,
            payload=outcome.payload,
            pre_checks=pre,
            post_checks=post,
            warnings=warnings,
            session=outcome.session,
        )
