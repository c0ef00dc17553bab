"""Declarative models for documents, concrete specs and results.

Defines immutable Pydantic models that describe the input document tree,
the concrete scenarios produced by outline expansion, and the results
and summaries produced by execution.
"""

from .document import Background, Examples, Feature, Rule, Scenario, Step
from .results import (
    Attachment,
    FeatureResult,
    HookError,
    RunResult,
    RunSummary,
    ScenarioFailure,
    ScenarioResult,
    Status,
    StepFailure,
    StepResult,
    StepSummary,
)
from .specs import Location, ScenarioSpec, StepSpec

__all__ = (
    'Attachment',
    'Background',
    'Examples',
    'Feature',
    'FeatureResult',
    'HookError',
    'Location',
    'Rule',
    'RunResult',
    'RunSummary',
    'Scenario',
    'ScenarioFailure',
    'ScenarioResult',
    'ScenarioSpec',
    'Status',
    'Step',
    'StepFailure',
    'StepResult',
    'StepSpec',
    'StepSummary',
)
