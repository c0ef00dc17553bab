"""Behavior-driven scenario execution engine.

The `cuke_runner` package runs parsed scenario documents against a
registry of step handlers:

- tag-expression selection and outline expansion;
- step matching with Cucumber Expressions or regular expressions;
- before/after hooks at run, case and step level;
- sequential or bounded-concurrency execution with retries;
- results aggregated in source order, with progress events for
  formatters and a structured message stream.

Step definitions may be registered directly on a `StepRegistry` or
contributed by step libraries discovered via entry points.
"""

from .context import World, attach, attach_url
from .core import StepRegistry
from .errors import PendingStep, RunFailed
from .options import RunOptions
from .runtime import Formatter, Runner

__all__ = (
    'Formatter',
    'PendingStep',
    'RunFailed',
    'RunOptions',
    'Runner',
    'StepRegistry',
    'World',
    'attach',
    'attach_url',
)
