"""Scenario scheduler.

Dispatches the selected scenarios to the executor, either one after the
other or concurrently with at most `max_concurrent` scenarios in flight.

Retries are slot-exclusive: a failed attempt is followed immediately by
the next attempt of the same scenario, with a brand-new world, before the
slot is released to another scenario. Every attempt emits its own start
and finish events; only the final attempt is recorded.

The effective retry count of a scenario is the count of its `@retry(N)`
tag, else the global `retries` option when the scenario matches the
`retry_tags` expression, clamped to `[0, MAX_RETRIES]`. Only Failed
attempts are retried: Pending and Undefined outcomes are deterministic.

Scenarios tagged `@serial` never run alongside any other scenario: every
scenario in flight finishes first and nothing else starts until the
serial scenario is final.
"""

import asyncio
import logging
from itertools import groupby
from typing import TYPE_CHECKING

from cuke_runner.names import RETRY_PATTERN, SERIAL_TAG
from cuke_runner.options import MAX_RETRIES
from cuke_runner.schema import Status

from .executor import REASON_FAIL_FAST

if TYPE_CHECKING:
    from collections.abc import Sequence

if TYPE_CHECKING:
    from cuke_runner.options import RunOptions
    from cuke_runner.schema import HookError, ScenarioResult, ScenarioSpec

if TYPE_CHECKING:
    from .aggregate import ResultTracker
    from .events import EventBus
    from .executor import ScenarioExecutor

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Resolves the retry count and delay of a scenario."""

    def __init__(self, options: 'RunOptions') -> None:
        self.retries = options.retries
        self.delay = options.retry_after
        self.expression = options.retry_expression

    def resolve(self, scenario: 'ScenarioSpec') -> tuple[int, float]:
        """Effective retry count and delay in seconds of a scenario."""
        for tag in sorted(scenario.tags):
            found = RETRY_PATTERN.match(tag)
            if found is None:
                continue

            count = found.group('count')
            delay = found.group('delay')

            retries = int(count) if count is not None else max(self.retries, 1)
            return (
                min(max(retries, 0), MAX_RETRIES),
                float(delay) if delay is not None else self.delay,
            )

        if not self.expression.evaluate(scenario.tags):
            return 0, self.delay

        return min(max(self.retries, 0), MAX_RETRIES), self.delay


class Scheduler:
    """Bounded-concurrency dispatcher with retries."""

    def __init__(self, executor: 'ScenarioExecutor', tracker: 'ResultTracker',
                 bus: 'EventBus', options: 'RunOptions') -> None:
        """Initialize the scheduler.

        Args:
            executor: Scenario executor.
            tracker: Result tracker receiving final results.
            bus: Event bus receiving scenario finish events.
            options: Run options.
        """
        self.executor = executor
        self.tracker = tracker
        self.bus = bus
        self.options = options
        self.policy = RetryPolicy(options)
        self.limit = options.max_concurrent if options.parallel else 1
        self.stopped = False

    async def run(self, scenarios: 'Sequence[ScenarioSpec]') -> None:
        """Run every scenario to its final attempt.

        Returns when every dispatched scenario is final. With `fail_fast`
        set, scenarios not yet started after the first Failed one are
        reported as Skipped.
        """
        semaphore = asyncio.Semaphore(self.limit)
        indexed = list(enumerate(scenarios))

        for serial, group in groupby(indexed, key=lambda item: SERIAL_TAG in item[1].tags):
            items = list(group)

            if serial or self.limit == 1:
                for position, scenario in items:
                    await self.dispatch(position, scenario)
                continue

            async with asyncio.TaskGroup() as tasks:
                for position, scenario in items:
                    tasks.create_task(self.guarded(semaphore, position, scenario))

    async def guarded(self, semaphore: asyncio.Semaphore, position: int,
                      scenario: 'ScenarioSpec') -> None:
        async with semaphore:
            await self.dispatch(position, scenario)

    async def dispatch(self, position: int, scenario: 'ScenarioSpec') -> None:
        """Run a scenario in the current slot and record its final result."""
        await self.tracker.start(position)

        if self.stopped:
            result = await self.executor.skip(scenario, reason=REASON_FAIL_FAST)
            await self.bus.scenario_finished(result)
        else:
            result = await self.run_scenario(scenario)

        if self.options.fail_fast and result.status == Status.FAILED:
            self.stopped = True

        await self.tracker.finish(position, result)

    async def run_scenario(self, scenario: 'ScenarioSpec') -> 'ScenarioResult':
        """Run attempts of a scenario until it passes or retries run out."""
        retries, delay = self.policy.resolve(scenario)
        attempt = 0

        while True:
            logger.debug('Dispatching %r, attempt %d', scenario.name, attempt)
            result = await self.executor.run(scenario, attempt)

            again = result.status == Status.FAILED and attempt < retries
            if again:
                result = result.model_copy(update={'will_be_retried': True})

            await self.bus.scenario_finished(result)
            if not again:
                return result

            attempt += 1
            logger.info(
                'Retrying %r, attempt %d of %d',
                scenario.name,
                attempt + 1,
                retries + 1,
            )
            if delay:
                await asyncio.sleep(delay)

    async def abort(self, scenarios: 'Sequence[ScenarioSpec]',
                    errors: 'Sequence[HookError]') -> None:
        """Fail every scenario without running it."""
        for position, scenario in enumerate(scenarios):
            await self.tracker.start(position)
            result = await self.executor.abort(scenario, errors)
            await self.bus.scenario_finished(result)
            await self.tracker.finish(position, result)
