"""Hook lifecycle.

Runs the six hook slots of the registry. Hooks of one slot run in
registration order. Hook failures never propagate: they are captured as
structured `HookError` values that the executor turns into step or
scenario outcomes and delivers to the paired after-hooks.

Before-hooks stop at the first failure of their slot, after-hooks always
run completely.
"""

import asyncio
import logging
from inspect import isawaitable, iscoroutinefunction
from typing import TYPE_CHECKING, Any

from cuke_runner.errors import HookFailed
from cuke_runner.extensions import HookKind
from cuke_runner.schema import ScenarioFailure, StepFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

if TYPE_CHECKING:
    from cuke_runner.core import StepRegistry
    from cuke_runner.extensions import Handler, HookDef
    from cuke_runner.schema import HookError, RunSummary, ScenarioSpec, StepSpec

logger = logging.getLogger(__name__)


async def invoke(handler: 'Handler', *args: Any, threaded: bool = False) -> Any:  # noqa: ANN401
    """Call a step handler or hook and await its result.

    Coroutine functions are awaited on the event loop. Plain callables
    run in a worker thread when `threaded` is set, so that blocking
    handlers do not stall concurrently running scenarios.

    Raises:
        Any exception raised by the handler.
    """
    if iscoroutinefunction(handler):
        return await handler(*args)

    if threaded:
        result = await asyncio.to_thread(handler, *args)
    else:
        result = handler(*args)

    if isawaitable(result):
        return await result

    return result


class HookLifecycle:
    """Runs registered hooks and captures their failures."""

    def __init__(self, registry: 'StepRegistry', *, threaded: bool = False) -> None:
        """Initialize the lifecycle.

        Args:
            registry: Locked registry holding the hook tables.
            threaded: Whether plain callables run in worker threads.
        """
        self.registry = registry
        self.threaded = threaded

    async def _run(self, hooks: 'Sequence[HookDef]', args: tuple[Any, ...], *,
                   stop_on_error: bool) -> list[tuple['HookDef', HookFailed]]:
        failures = []

        for hook in hooks:
            try:
                await invoke(hook.handler, *args, threaded=self.threaded)

            except Exception as error:
                failure = HookFailed.from_exception(error, hook=hook.name)
                failure.__cause__ = error
                logger.warning('%s hook %s failed: %s', hook.kind.value, hook.name, error)
                failures.append((hook, failure))
                if stop_on_error:
                    break

        return failures

    async def _scenario_hooks(self, kind: HookKind, args: tuple[Any, ...], *,
                              scenario: 'ScenarioSpec | None',
                              stop_on_error: bool) -> list['HookError']:
        tags = scenario.tags if scenario is not None else None
        failures = await self._run(
            self.registry.hooks_for(kind, tags),
            args,
            stop_on_error=stop_on_error,
        )

        return [
            ScenarioFailure(
                scenario=scenario.name if scenario is not None else None,
                message=failure.message,
                exception=failure,
            )
            for _, failure in failures
        ]

    async def _step_hooks(self, kind: HookKind, args: tuple[Any, ...], *,
                          scenario: 'ScenarioSpec', step: 'StepSpec',
                          stop_on_error: bool) -> list['HookError']:
        failures = await self._run(
            self.registry.hooks_for(kind, scenario.tags),
            args,
            stop_on_error=stop_on_error,
        )

        return [
            StepFailure(step=step, message=failure.message, exception=failure)
            for _, failure in failures
        ]

    async def before_run(self, scenarios: 'Sequence[ScenarioSpec]') -> list['HookError']:
        """Run before-run hooks with the selected scenarios."""
        return await self._scenario_hooks(
            HookKind.BEFORE_RUN,
            (tuple(scenarios),),
            scenario=None,
            stop_on_error=True,
        )

    async def after_run(self, summary: 'RunSummary') -> list['HookError']:
        """Run after-run hooks with the run summary."""
        return await self._scenario_hooks(
            HookKind.AFTER_RUN,
            (summary,),
            scenario=None,
            stop_on_error=False,
        )

    async def before_case(self, world: Any, scenario: 'ScenarioSpec') -> list['HookError']:  # noqa: ANN401
        """Run before-case hooks matching the scenario tags."""
        return await self._scenario_hooks(
            HookKind.BEFORE_CASE,
            (world, scenario),
            scenario=scenario,
            stop_on_error=True,
        )

    async def after_case(self, world: Any, scenario: 'ScenarioSpec',  # noqa: ANN401
                         errors: 'Sequence[HookError]') -> list['HookError']:
        """Run after-case hooks with the failures of the attempt."""
        return await self._scenario_hooks(
            HookKind.AFTER_CASE,
            (world, scenario, tuple(errors)),
            scenario=scenario,
            stop_on_error=False,
        )

    async def before_step(self, world: Any, scenario: 'ScenarioSpec',  # noqa: ANN401
                          step: 'StepSpec') -> list['HookError']:
        """Run before-step hooks matching the scenario tags."""
        return await self._step_hooks(
            HookKind.BEFORE_STEP,
            (world, step),
            scenario=scenario,
            step=step,
            stop_on_error=True,
        )

    async def after_step(self, world: Any, scenario: 'ScenarioSpec',  # noqa: ANN401
                         step: 'StepSpec', errors: 'Sequence[HookError]') -> list['HookError']:
        """Run after-step hooks with the failures of the step."""
        return await self._step_hooks(
            HookKind.AFTER_STEP,
            (world, step, tuple(errors)),
            scenario=scenario,
            step=step,
            stop_on_error=False,
        )
