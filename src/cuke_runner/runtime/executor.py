"""Scenario executor.

Runs one attempt of one scenario through the state machine::

    Selected -> CaseBeforeHooks -> (StepBeforeHooks -> Match -> Execute
             -> StepAfterHooks)* -> CaseAfterHooks -> Terminal

Transition rules:

- a skip-tagged scenario short-circuits before any hook: every step is
  Skipped;
- in dry-run mode steps are only matched: matched steps are Skipped,
  unmatched steps Undefined, and no handler or hook is invoked;
- a failing world factory or before-case hook skips every step (without
  step hooks) and fails the attempt; after-case hooks still run when a
  world exists;
- a step with no matching definition is Undefined, a handler raising
  `PendingStep` makes its step Pending, any other exception Failed;
- once a step is Failed, Undefined or Pending, every subsequent step of
  the attempt is Skipped without invoking its handler, while its step
  hooks still fire;
- step-level after-hooks run for every step and receive the failures of
  that step; a failing after-step hook fails a step that had passed.

Steps of one attempt never run concurrently.
"""

import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any

from cuke_runner.context import current_attachments
from cuke_runner.core import NO_MATCH
from cuke_runner.errors import ErrorContext, PendingStep, StepFailed
from cuke_runner.schema import ScenarioFailure, ScenarioResult, Status, StepFailure, StepResult

from .events import ScenarioStarted, StepFinished
from .hooks import invoke

if TYPE_CHECKING:
    from collections.abc import Sequence

if TYPE_CHECKING:
    from cuke_runner.context import WorldFactory
    from cuke_runner.core import StepRegistry
    from cuke_runner.options import RunOptions
    from cuke_runner.schema import Attachment, HookError, ScenarioSpec, StepSpec

if TYPE_CHECKING:
    from .events import EventBus
    from .hooks import HookLifecycle

logger = logging.getLogger(__name__)

#: Skip reasons reported on step results.
REASON_SKIP_TAG = 'skip tag'
REASON_DRY_RUN = 'dry run'
REASON_PREVIOUS = 'previous step did not pass'
REASON_BEFORE_CASE = 'before hook failed'
REASON_NO_WORLD = 'world could not be created'
REASON_BEFORE_RUN = 'before run hook failed'
REASON_FAIL_FAST = 'run stopped after a failure'

#: Step statuses after which the rest of an attempt is skipped.
HALTING = frozenset((Status.FAILED, Status.UNDEFINED, Status.PENDING))


def step_context(scenario: 'ScenarioSpec', position: int, attempt: int,
                 error: Exception | None = None) -> ErrorContext:
    """Error context pointing at a step of a scenario attempt."""
    step = scenario.steps[position]
    line = step.location.line

    return ErrorContext(
        filename=step.location.uri,
        line_num=line - 1 if line else None,
        scenario=scenario.name,
        step_num=position,
        attempt=attempt,
        error=error,
    )


class _Attempt:
    """Mutable state of one scenario attempt."""

    def __init__(self, scenario: 'ScenarioSpec', attempt: int) -> None:
        self.scenario = scenario
        self.attempt = attempt
        self.world: Any = None
        self.steps: list[StepResult] = []
        self.errors: list[HookError] = []
        self.halted = False
        self.started = perf_counter()

    def result(self) -> ScenarioResult:
        statuses = [step.status for step in self.steps]
        if self.errors:
            statuses.append(Status.FAILED)

        return ScenarioResult(
            scenario=self.scenario,
            steps=tuple(self.steps),
            status=Status.worst(statuses),
            attempt=self.attempt,
            errors=tuple(self.errors),
            duration=perf_counter() - self.started,
        )


class ScenarioExecutor:
    """Executes scenario attempts against a locked registry."""

    def __init__(self, registry: 'StepRegistry', hooks: 'HookLifecycle',
                 bus: 'EventBus', options: 'RunOptions',
                 world_factory: 'WorldFactory') -> None:
        """Initialize the executor.

        Args:
            registry: Locked step registry.
            hooks: Hook lifecycle bound to the same registry.
            bus: Event bus receiving scenario and step events.
            options: Run options.
            world_factory: Factory creating a world for every attempt.
        """
        self.registry = registry
        self.hooks = hooks
        self.bus = bus
        self.options = options
        self.world_factory = world_factory

    def is_skipped(self, scenario: 'ScenarioSpec') -> bool:
        """Whether the scenario carries one of the skip tags."""
        return not self.options.skip_tags.isdisjoint(scenario.tags)

    async def run(self, scenario: 'ScenarioSpec', attempt: int = 0) -> ScenarioResult:
        """Run one attempt of a scenario.

        Handler and hook failures never propagate; they are recorded on
        the returned result. The scenario finish event is left to the
        caller, which decides whether another attempt follows.

        Args:
            scenario: Scenario to run.
            attempt: Zero-based attempt index.

        Returns:
            Result of the attempt.
        """
        if self.is_skipped(scenario):
            return await self.skip(scenario, reason=REASON_SKIP_TAG)

        if self.options.dry_run:
            return await self.dry_run(scenario)

        state = _Attempt(scenario, attempt)
        await self.bus.scenario_started(ScenarioStarted(scenario=scenario, attempt=attempt))

        try:
            state.world = self.world_factory()

        except Exception as error:
            logger.warning('World factory failed for %r: %s', scenario.name, error)
            state.errors.append(ScenarioFailure(
                scenario=scenario.name,
                message=f'World factory failed: {str(error) or repr(error)}',
                exception=error,
            ))
            await self.skip_steps(state, reason=REASON_NO_WORLD)
            return state.result()

        state.errors.extend(await self.hooks.before_case(state.world, scenario))

        if state.errors:
            await self.skip_steps(state, reason=REASON_BEFORE_CASE)
        else:
            for position, step in enumerate(scenario.steps):
                await self.run_step(state, position, step)

        failures = [*state.errors, *(
            StepFailure(step=item.step, message=item.error or '', exception=item.exception)
            for item in state.steps
            if item.status == Status.FAILED
        )]
        state.errors.extend(await self.hooks.after_case(state.world, scenario, failures))

        return state.result()

    async def run_step(self, state: _Attempt, position: int, step: 'StepSpec') -> None:
        """Run one step with its step hooks and record the result."""
        attachments: list[Attachment] = []
        token = current_attachments.set(attachments)
        started = perf_counter()

        try:
            errors = await self.hooks.before_step(state.world, state.scenario, step)

            if errors:
                result = StepResult(
                    step=step,
                    status=Status.FAILED,
                    error=errors[0].message,
                    exception=errors[0].exception,
                )
            elif state.halted:
                result = StepResult(step=step, status=Status.SKIPPED, reason=REASON_PREVIOUS)
            else:
                result = await self.execute(state, position, step)
                if result.status == Status.FAILED:
                    errors.append(StepFailure(
                        step=step,
                        message=result.error or '',
                        exception=result.exception,
                    ))

            after = await self.hooks.after_step(state.world, state.scenario, step, errors)
            if after and result.status in (Status.PASSED, Status.SKIPPED):
                result = result.model_copy(update={
                    'status': Status.FAILED,
                    'error': after[0].message,
                    'exception': after[0].exception,
                    'reason': None,
                })

        finally:
            current_attachments.reset(token)

        result = result.model_copy(update={
            'duration': perf_counter() - started,
            'attachments': tuple(attachments),
        })

        state.steps.append(result)
        if result.status in HALTING:
            state.halted = True

        await self.bus.step_finished(StepFinished(
            scenario=state.scenario,
            attempt=state.attempt,
            result=result,
        ))

    async def execute(self, state: _Attempt, position: int, step: 'StepSpec') -> StepResult:
        """Match a step and invoke its handler."""
        scenario = state.scenario

        try:
            match = self.registry.find_match(step.text, step.kind)

        except ValueError as error:
            failure = StepFailed.from_exception(
                error,
                context=step_context(scenario, position, state.attempt, error),
            )
            return StepResult(step=step, status=Status.FAILED, error=str(failure), exception=error)

        if match is NO_MATCH:
            return self.undefined(step, step_context(scenario, position, state.attempt))

        args = [state.world, *match.values]
        if step.argument is not None:
            args.append(step.argument)

        logger.debug('Running step %r with %s', step.label, match.step_def.name)

        try:
            await invoke(match.step_def.handler, *args, threaded=self.options.parallel)

        except PendingStep as pending:
            return StepResult(
                step=step,
                status=Status.PENDING,
                error=pending.message,
                exception=pending,
                pattern=match.step_def.source,
            )

        except Exception as error:
            failure = StepFailed.from_exception(
                error,
                context=step_context(scenario, position, state.attempt, error),
            )
            return StepResult(
                step=step,
                status=Status.FAILED,
                error=str(failure),
                exception=error,
                pattern=match.step_def.source,
            )

        return StepResult(step=step, status=Status.PASSED, pattern=match.step_def.source)

    def undefined(self, step: 'StepSpec', context: ErrorContext | None = None) -> StepResult:
        """Result of a step that no definition matches."""
        error = self.registry.undefined(step, context)

        return StepResult(
            step=step,
            status=Status.UNDEFINED,
            error=error.message,
            exception=error,
            snippet=error.snippet,
            suggestions=error.suggestions,
        )

    async def skip_steps(self, state: _Attempt, *, reason: str) -> None:
        """Mark every step of the attempt Skipped without any hook."""
        for step in state.scenario.steps:
            result = StepResult(step=step, status=Status.SKIPPED, reason=reason)
            state.steps.append(result)
            await self.bus.step_finished(StepFinished(
                scenario=state.scenario,
                attempt=state.attempt,
                result=result,
            ))

    async def dry_run(self, scenario: 'ScenarioSpec') -> ScenarioResult:
        """Match every step without invoking any handler or hook."""
        state = _Attempt(scenario, 0)
        await self.bus.scenario_started(ScenarioStarted(scenario=scenario))

        for position, step in enumerate(scenario.steps):
            try:
                match = self.registry.find_match(step.text, step.kind)
            except ValueError as error:
                result = StepResult(step=step, status=Status.FAILED, error=str(error), exception=error)
            else:
                if match is NO_MATCH:
                    result = self.undefined(step, step_context(scenario, position, 0))
                else:
                    result = StepResult(
                        step=step,
                        status=Status.SKIPPED,
                        reason=REASON_DRY_RUN,
                        pattern=match.step_def.source,
                    )

            state.steps.append(result)
            await self.bus.step_finished(StepFinished(scenario=scenario, result=result))

        return state.result()

    async def skip(self, scenario: 'ScenarioSpec', *, reason: str) -> ScenarioResult:
        """Report a scenario as Skipped without running anything."""
        state = _Attempt(scenario, 0)
        await self.bus.scenario_started(ScenarioStarted(scenario=scenario))
        await self.skip_steps(state, reason=reason)

        return state.result()

    async def abort(self, scenario: 'ScenarioSpec',
                    errors: 'Sequence[HookError]') -> ScenarioResult:
        """Report a scenario as Failed because of run-level hook failures."""
        state = _Attempt(scenario, 0)
        state.errors.extend(errors)
        await self.bus.scenario_started(ScenarioStarted(scenario=scenario))
        await self.skip_steps(state, reason=REASON_BEFORE_RUN)

        return state.result()

