"""Result aggregation.

Collects the final attempt of every dispatched scenario and folds the
results into the Feature -> Scenario tree and the run summary. The tree
always follows source order, whatever the completion order was.
Feature start and finish events are emitted from here, since only the
tracker knows when the first scenario of a feature starts and when the
last one is final.
"""

from typing import TYPE_CHECKING

from cuke_runner.schema import FeatureResult, RunSummary, Status, StepSummary

from .events import FeatureStarted

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

if TYPE_CHECKING:
    from cuke_runner.schema import ScenarioResult, ScenarioSpec

if TYPE_CHECKING:
    from .events import EventBus

type FeatureKey = tuple[int, str | None, str]


def feature_key(scenario: 'ScenarioSpec') -> FeatureKey:
    """Key grouping scenarios of one feature.

    The feature position keeps apart features sharing a name and a uri.
    """
    return scenario.feature_index, scenario.location.uri, scenario.feature


class ResultTracker:
    """Tracks final scenario results of a run, in source order."""

    def __init__(self, scenarios: 'Sequence[ScenarioSpec]', bus: 'EventBus') -> None:
        """Initialize the tracker.

        Args:
            scenarios: Selected scenarios in source order.
            bus: Event bus receiving feature events.
        """
        self.scenarios = tuple(scenarios)
        self.bus = bus
        self.results: list[ScenarioResult | None] = [None] * len(self.scenarios)

        self.features: dict[FeatureKey, list[int]] = {}
        for position, scenario in enumerate(self.scenarios):
            self.features.setdefault(feature_key(scenario), []).append(position)

        self._started: set[FeatureKey] = set()
        self._remaining = {key: len(positions) for key, positions in self.features.items()}

    async def start(self, position: int) -> None:
        """Announce a scenario, starting its feature on first use."""
        key = feature_key(self.scenarios[position])
        if key in self._started:
            return

        self._started.add(key)
        _, uri, name = key
        await self.bus.feature_started(FeatureStarted(name=name, uri=uri))

    async def finish(self, position: int, result: 'ScenarioResult') -> None:
        """Record the final result of a scenario, finishing its feature when complete."""
        self.results[position] = result

        key = feature_key(self.scenarios[position])
        self._remaining[key] -= 1
        if not self._remaining[key]:
            await self.bus.feature_finished(self.feature_result(key))

    def feature_result(self, key: FeatureKey) -> FeatureResult:
        _, uri, name = key

        return FeatureResult(
            name=name,
            uri=uri,
            scenarios=tuple(
                result
                for position in self.features[key]
                if (result := self.results[position]) is not None
            ),
        )

    def feature_results(self) -> tuple[FeatureResult, ...]:
        """Feature results in source order."""
        return tuple(self.feature_result(key) for key in self.features)

    def final_results(self) -> list['ScenarioResult']:
        """Final scenario results in source order."""
        return [result for result in self.results if result is not None]

    def summary(self) -> RunSummary:
        """Aggregated counts of the final results."""
        return summarize(self.final_results())


def summarize(results: 'Iterable[ScenarioResult]') -> RunSummary:
    """Count final scenario and step statuses.

    Only the last attempt of every scenario is expected; `retried`
    counts scenarios that needed more than one attempt, whatever their
    final outcome.
    """
    counts = dict.fromkeys(Status, 0)
    steps = dict.fromkeys(Status, 0)
    total = retried = 0

    for result in results:
        total += 1
        counts[result.status] += 1
        if result.retried:
            retried += 1
        for step in result.steps:
            steps[step.status] += 1

    return RunSummary(
        total=total,
        passed=counts[Status.PASSED],
        failed=counts[Status.FAILED],
        undefined=counts[Status.UNDEFINED],
        pending=counts[Status.PENDING],
        skipped=counts[Status.SKIPPED],
        retried=retried,
        steps=StepSummary(
            total=sum(steps.values()),
            passed=steps[Status.PASSED],
            failed=steps[Status.FAILED],
            undefined=steps[Status.UNDEFINED],
            pending=steps[Status.PENDING],
            skipped=steps[Status.SKIPPED],
        ),
    )
