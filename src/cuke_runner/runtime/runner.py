"""Run entry points.

`Runner` ties the pieces together::

    expand -> select -> before_run -> schedule -> after_run -> result

Use `run` or `run_async` to get the `RunResult` whatever the outcome, or
`run_or_fail` to raise `RunFailed` when any scenario failed, is undefined
or pending. `run_files` loads features from YAML sources first.

Example::

    registry = StepRegistry()
    ...
    runner = Runner(registry, RunOptions(tags='@smoke', parallel=True))
    result = runner.run(features)
"""

import asyncio
import logging
from time import perf_counter
from typing import TYPE_CHECKING

from cuke_runner.context import World
from cuke_runner.core import FeatureParser, expand_features
from cuke_runner.errors import RunFailed, ScenarioFailed
from cuke_runner.options import RunOptions
from cuke_runner.schema import RunResult, Status

from .aggregate import ResultTracker
from .events import EventBus, RunStarted
from .executor import ScenarioExecutor
from .hooks import HookLifecycle
from .scheduler import Scheduler

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from os import PathLike

if TYPE_CHECKING:
    from cuke_runner.context import WorldFactory
    from cuke_runner.core import StepRegistry
    from cuke_runner.errors import ParseError
    from cuke_runner.schema import Feature, HookError, ScenarioSpec

logger = logging.getLogger(__name__)


class Runner:
    """Executes features against a step registry."""

    def __init__(self, registry: 'StepRegistry', options: RunOptions | None = None, *,
                 world_factory: 'WorldFactory' = World,
                 parser: FeatureParser | None = None) -> None:
        """Initialize the runner.

        The registry is locked: no definitions can be added afterwards,
        and every step pattern is compiled.

        Args:
            registry: Step registry with steps and hooks.
            options: Run options; read from the environment when omitted.
            world_factory: Factory creating the world of every attempt.
            parser: Feature parser used by `run_files`.

        Raises:
            ConfigurationError: If the options are omitted and the
                environment holds invalid values.
            LibraryError: If a step pattern is invalid.
        """
        self.registry = registry
        self.options = options if options is not None else RunOptions.build()
        self.world_factory = world_factory
        self.parser = parser or FeatureParser()

        self.expression = self.options.tag_expression
        self.registry.lock()

    def select(self, scenarios: 'Iterable[ScenarioSpec]') -> list['ScenarioSpec']:
        """Filter scenarios by the tag expression and the name filter."""
        name = self.options.name

        return [
            scenario
            for scenario in scenarios
            if self.expression.evaluate(scenario.tags)
            and (not name or name in scenario.name)
        ]

    async def run_async(self, features: 'Iterable[Feature]', *,
                        parse_errors: 'Sequence[ParseError]' = ()) -> RunResult:
        """Run features and return the result unconditionally.

        Args:
            features: Feature trees in source order.
            parse_errors: Errors of sources that could not be loaded,
                carried into the result.

        Returns:
            The run result.
        """
        started = perf_counter()
        options = self.options

        scenarios = self.select(expand_features(features))
        logger.debug('Selected %d scenarios', len(scenarios))

        bus = EventBus(options.formatters)
        hooks = HookLifecycle(self.registry, threaded=options.parallel)
        tracker = ResultTracker(scenarios, bus)
        executor = ScenarioExecutor(self.registry, hooks, bus, options, self.world_factory)
        scheduler = Scheduler(executor, tracker, bus, options)

        await bus.run_started(RunStarted(
            total=len(scenarios),
            parallel=options.parallel,
            max_concurrent=scheduler.limit,
            dry_run=options.dry_run,
        ))

        errors: list[HookError] = []
        if not options.dry_run:
            errors.extend(await hooks.before_run(scenarios))

        if errors:
            await scheduler.abort(scenarios, errors)
        else:
            await scheduler.run(scenarios)

        summary = tracker.summary()
        if not options.dry_run:
            errors.extend(await hooks.after_run(summary))

        result = RunResult(
            summary=summary,
            features=tracker.feature_results(),
            duration=perf_counter() - started,
            errors=tuple(errors),
            parse_errors=tuple(parse_errors),
        )
        await bus.run_finished(result)

        logger.debug(
            'Run finished: %d passed, %d failed of %d',
            summary.passed,
            summary.failed,
            summary.total,
        )

        return result

    def run(self, features: 'Iterable[Feature]', *,
            parse_errors: 'Sequence[ParseError]' = ()) -> RunResult:
        """Run features on a new event loop and return the result."""
        return asyncio.run(self.run_async(features, parse_errors=parse_errors))

    def run_or_fail(self, features: 'Iterable[Feature]', *,
                    parse_errors: 'Sequence[ParseError]' = ()) -> RunResult:
        """Run features and raise unless the run is clean.

        Raises:
            RunFailed: If any scenario failed, is undefined or pending, a
                run-level hook failed, or a source could not be loaded.
        """
        return raise_for_result(self.run(features, parse_errors=parse_errors))

    def run_files(self, paths: 'Iterable[str | PathLike[str]]', *,
                  fail: bool = False) -> RunResult:
        """Load features from YAML files or directories and run them.

        Malformed sources are reported in `RunResult.parse_errors`
        without preventing the other sources from running.

        Args:
            paths: Files or directories.
            fail: Whether to raise `RunFailed` unless the run is clean.

        Raises:
            RunFailed: If `fail` is set and the run is not clean.
        """
        features, errors = self.parser.parse_paths(paths)
        if fail:
            return self.run_or_fail(features, parse_errors=errors)

        return self.run(features, parse_errors=errors)


def raise_for_result(result: RunResult) -> RunResult:
    """Return a clean result or raise the aggregate failure.

    Raises:
        RunFailed: If the result is not clean.
    """
    if result.is_clean:
        return result

    failures = [
        ScenarioFailed(scenario)
        for scenario in result.scenarios
        if scenario.status in (Status.FAILED, Status.UNDEFINED, Status.PENDING)
    ]

    raise RunFailed(
        failures,
        hook_errors=result.errors,
        parse_errors=result.parse_errors,
    )
