"""Run progress events and formatter dispatch.

Formatters subscribe to seven callbacks, invoked in chronological order
for every scenario attempt:

    on_run_start -> on_feature_start -> on_scenario_start ->
    on_step_finish* -> on_scenario_finish -> ... -> on_feature_finish ->
    on_run_finish

A feature starts right before its first scenario starts and finishes
once the final attempt of its last scenario is done. When scenarios run
concurrently, attempts of different scenarios (and features) interleave,
but the order of events of one attempt is always preserved.

Callbacks may be plain methods or coroutines. Events are delivered from
the event loop only.
"""

import logging
from datetime import UTC, datetime
from inspect import isawaitable
from typing import TYPE_CHECKING
from uuid import uuid4

from pydantic import Field

from cuke_runner.models import SchemaModel
from cuke_runner.schema import ScenarioSpec, StepResult  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from cuke_runner.schema import FeatureResult, RunResult, ScenarioResult

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class RunStarted(SchemaModel):
    """Metadata of a run, delivered before any scenario starts."""

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    started_at: datetime = Field(default_factory=utcnow)
    total: int = 0
    parallel: bool = False
    max_concurrent: int = 1
    dry_run: bool = False


class FeatureStarted(SchemaModel):
    """A feature is about to run its first scenario."""

    name: str
    uri: str | None = None


class ScenarioStarted(SchemaModel):
    """One attempt of a scenario is about to run."""

    scenario: ScenarioSpec
    attempt: int = 0
    started_at: datetime = Field(default_factory=utcnow)


class StepFinished(SchemaModel):
    """One step of a scenario attempt is done."""

    scenario: ScenarioSpec
    attempt: int = 0
    result: StepResult


class Formatter:
    """Base event subscriber; every callback does nothing by default.

    Subclasses override the callbacks they need, either as plain
    methods or as coroutines.
    """

    def on_run_start(self, event: RunStarted) -> object:
        """Called once before any scenario runs."""

    def on_feature_start(self, event: FeatureStarted) -> object:
        """Called before the first scenario of a feature starts."""

    def on_scenario_start(self, event: ScenarioStarted) -> object:
        """Called before every attempt of a scenario."""

    def on_step_finish(self, event: StepFinished) -> object:
        """Called after every step of an attempt."""

    def on_scenario_finish(self, result: 'ScenarioResult') -> object:
        """Called after every attempt of a scenario."""

    def on_feature_finish(self, result: 'FeatureResult') -> object:
        """Called after the last scenario of a feature is final."""

    def on_run_finish(self, result: 'RunResult') -> object:
        """Called once after the run is complete."""


class EventBus:
    """Delivers events to formatters in subscription order.

    A formatter raising from a callback is logged and does not affect the
    run or other formatters.
    """

    def __init__(self, formatters: 'Iterable[object]' = ()) -> None:
        self.formatters = list(formatters)

    def subscribe(self, formatter: object) -> None:
        """Add a formatter after all existing ones."""
        self.formatters.append(formatter)

    async def publish(self, callback: str, payload: object) -> None:
        """Invoke a callback of every formatter that defines it.

        Args:
            callback: Callback name, e.g. `on_step_finish`.
            payload: Event or result passed to the callback.
        """
        for formatter in self.formatters:
            method = getattr(formatter, callback, None)
            if method is None:
                continue

            try:
                outcome = method(payload)
                if isawaitable(outcome):
                    await outcome

            except Exception:
                logger.exception(
                    'Formatter %s failed on %s',
                    type(formatter).__name__,
                    callback,
                )

    async def run_started(self, event: RunStarted) -> None:
        await self.publish('on_run_start', event)

    async def feature_started(self, event: FeatureStarted) -> None:
        await self.publish('on_feature_start', event)

    async def scenario_started(self, event: ScenarioStarted) -> None:
        await self.publish('on_scenario_start', event)

    async def step_finished(self, event: StepFinished) -> None:
        await self.publish('on_step_finish', event)

    async def scenario_finished(self, result: 'ScenarioResult') -> None:
        await self.publish('on_scenario_finish', result)

    async def feature_finished(self, result: 'FeatureResult') -> None:
        await self.publish('on_feature_finish', result)

    async def run_finished(self, result: 'RunResult') -> None:
        await self.publish('on_run_finish', result)
