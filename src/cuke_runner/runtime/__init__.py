"""Execution runtime.

This package defines the run side of the engine:

- the hook lifecycle and the per-attempt scenario executor;
- the bounded-concurrency scheduler with retries;
- result aggregation into the Feature -> Scenario tree and run summary;
- run progress events, formatters and the structured message stream.

The primary public entry point is `Runner`.
"""

from .events import EventBus, FeatureStarted, Formatter, RunStarted, ScenarioStarted, StepFinished
from .messages import Message, MessageFormatter, MessageSink
from .runner import Runner, raise_for_result

__all__ = (
    'EventBus',
    'FeatureStarted',
    'Formatter',
    'Message',
    'MessageFormatter',
    'MessageSink',
    'RunStarted',
    'Runner',
    'ScenarioStarted',
    'StepFinished',
    'raise_for_result',
)
