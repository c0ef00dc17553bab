"""Execution result models.

Step results roll up into scenario results, scenario results into
feature results and a run summary. Terminal status aggregation uses a
worst-of rule: Failed > Undefined > Pending > Skipped > Passed.
"""

from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import Field

from cuke_runner.errors import ParseError  # noqa: TC001
from cuke_runner.models import SchemaModel

from .specs import ScenarioSpec, StepSpec  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Iterable


class Status(StrEnum):
    """Outcome of a step, scenario, feature or run."""

    PASSED = 'Passed'
    SKIPPED = 'Skipped'
    PENDING = 'Pending'
    UNDEFINED = 'Undefined'
    FAILED = 'Failed'

    @property
    def severity(self) -> int:
        """Rank used by the worst-of aggregation rule."""
        return _SEVERITY[self]

    @classmethod
    def worst(cls, statuses: 'Iterable[Status]', default: 'Status | None' = None) -> 'Status':
        """Aggregate statuses by the worst-of rule.

        Args:
            statuses: Statuses to aggregate.
            default: Status of an empty collection (Passed by default).

        Returns:
            The most severe status.
        """
        return max(statuses, key=lambda status: status.severity, default=default or cls.PASSED)


_SEVERITY = {
    Status.PASSED: 0,
    Status.SKIPPED: 1,
    Status.PENDING: 2,
    Status.UNDEFINED: 3,
    Status.FAILED: 4,
}


class Attachment(SchemaModel):
    """Content attached to a step by a handler or hook.

    Inline attachments carry a body; external attachments carry only a URL.
    """

    body: str | bytes | None = None
    media_type: str = 'text/plain'
    file_name: str | None = None
    url: str | None = None

    @property
    def is_external(self) -> bool:
        """Whether the attachment is a URL reference only."""
        return self.url is not None


class StepFailure(SchemaModel):
    """Hook error variant describing a failed step or step hook."""

    kind: Literal['step'] = 'step'
    step: StepSpec
    message: str
    exception: BaseException | None = Field(default=None, exclude=True, repr=False)


class ScenarioFailure(SchemaModel):
    """Hook error variant describing a failed case-level or run-level hook."""

    kind: Literal['scenario'] = 'scenario'
    scenario: str | None = None
    message: str
    exception: BaseException | None = Field(default=None, exclude=True, repr=False)


#: Structured failure detail delivered to after-hooks.
HookError = Annotated[StepFailure | ScenarioFailure, Field(discriminator='kind')]


class StepResult(SchemaModel):
    """Outcome of one step in one attempt."""

    step: StepSpec
    status: Status

    error: str | None = Field(
        default=None,
        title='Error message',
    )

    exception: BaseException | None = Field(
        default=None,
        exclude=True,
        repr=False,
        title='Captured exception',
    )

    duration: float = Field(
        default=0.0,
        title='Duration in seconds',
    )

    attachments: tuple[Attachment, ...] = ()

    pattern: str | None = Field(
        default=None,
        title='Matched pattern',
    )

    snippet: str | None = Field(
        default=None,
        title='Definition snippet',
        description='Generated step definition for undefined steps.',
    )

    suggestions: tuple[str, ...] = Field(
        default=(),
        title='Did-you-mean suggestions',
    )

    reason: str | None = Field(
        default=None,
        title='Skip reason',
    )


class ScenarioResult(SchemaModel):
    """Outcome of one attempt of a scenario."""

    scenario: ScenarioSpec
    steps: tuple[StepResult, ...] = ()
    status: Status

    attempt: int = Field(
        default=0,
        title='Attempt index',
        description='Zero-based index of this attempt.',
    )

    will_be_retried: bool = Field(
        default=False,
        title='Retry flag',
        description='Whether a further attempt follows this one.',
    )

    errors: tuple[HookError, ...] = Field(
        default=(),
        title='Scenario errors',
        description='Case-level hook failures of this attempt.',
    )

    duration: float = 0.0

    @property
    def attempts(self) -> int:
        """Number of attempts made up to and including this one."""
        return self.attempt + 1

    @property
    def retried(self) -> bool:
        """Whether this scenario needed more than one attempt."""
        return self.attempt > 0


class FeatureResult(SchemaModel):
    """Scenario results of one feature, in source order."""

    name: str
    uri: str | None = None
    scenarios: tuple[ScenarioResult, ...] = ()

    @property
    def status(self) -> Status:
        """Worst status among the feature scenarios."""
        return Status.worst(item.status for item in self.scenarios)


class StepSummary(SchemaModel):
    """Step counters of the final attempts."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    undefined: int = 0
    pending: int = 0
    skipped: int = 0


class RunSummary(SchemaModel):
    """Aggregated scenario counters of a run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    undefined: int = 0
    pending: int = 0
    skipped: int = 0
    retried: int = 0

    steps: StepSummary = Field(default_factory=StepSummary)

    @property
    def is_clean(self) -> bool:
        """Whether no scenario failed, is undefined or pending."""
        return not (self.failed or self.undefined or self.pending)


class RunResult(SchemaModel):
    """Final result of a run."""

    summary: RunSummary
    features: tuple[FeatureResult, ...] = ()
    duration: float = 0.0

    errors: tuple[HookError, ...] = Field(
        default=(),
        title='Run-level hook errors',
    )

    parse_errors: tuple[ParseError, ...] = Field(
        default=(),
        exclude=True,
        repr=False,
        title='Source documents that could not be loaded',
    )

    @property
    def scenarios(self) -> tuple[ScenarioResult, ...]:
        """Final scenario results in source order."""
        return tuple(
            scenario
            for feature in self.features
            for scenario in feature.scenarios
        )

    @property
    def is_clean(self) -> bool:
        """Whether the run passed without any failure of any kind."""
        return self.summary.is_clean and not self.errors and not self.parse_errors
