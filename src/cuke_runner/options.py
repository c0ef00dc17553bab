"""Run options.

`RunOptions` is the immutable configuration snapshot consumed by the
runner. It is normally built by an outer configuration or command line
layer; values not given explicitly are read from `CUKE_*` environment
variables, for example `CUKE_PARALLEL=true` or `CUKE_TAGS="@smoke"`.
"""

from typing import TYPE_CHECKING, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import SettingsConfigDict

from cuke_runner.errors import ConfigurationError
from cuke_runner.models import SettingsModel
from cuke_runner.names import Tag
from cuke_runner.tags import TagExpression

if TYPE_CHECKING:
    from typing import Self

#: Upper bound of the effective retry count of a scenario.
MAX_RETRIES = 100

#: Tags skipping a scenario by default.
DEFAULT_SKIP_TAGS = frozenset(('@skip', '@ignore'))


class RunOptions(SettingsModel):
    """Immutable settings of a single run."""

    model_config = SettingsConfigDict(
        env_prefix='CUKE_',
    )

    parallel: bool = Field(
        default=False,
        title='Concurrent execution',
        description='Run scenarios concurrently, up to `max_concurrent` at a time.',
    )

    max_concurrent: int = Field(
        default=4,
        title='Concurrency limit',
        description='Maximum number of scenario attempts in flight; values below 1 mean 1.',
    )

    retries: int = Field(
        default=0,
        title='Retry count',
        description=(
            'Number of additional attempts of a failed scenario. '
            'A `@retry(N)` tag overrides it per scenario. Negative values mean 0.'
        ),
    )

    retry_after: float = Field(
        default=0.0,
        ge=0.0,
        title='Retry delay',
        description='Seconds to wait before each retry attempt.',
    )

    retry_tags: str = Field(
        default='',
        title='Retry tag expression',
        description='Limits the global retry count to scenarios matching the expression.',
    )

    tags: str = Field(
        default='',
        title='Tag expression',
        description='Selects scenarios whose effective tags satisfy the expression.',
    )

    name: str | None = Field(
        default=None,
        title='Name filter',
        description='Selects scenarios whose name contains the substring.',
    )

    dry_run: bool = Field(
        default=False,
        title='Dry run',
        description='Match steps without invoking any handler or hook.',
    )

    skip_tags: frozenset[Tag] = Field(
        default=DEFAULT_SKIP_TAGS,
        title='Skip tags',
        description='Scenarios carrying any of these tags are reported as skipped.',
    )

    fail_fast: bool = Field(
        default=False,
        title='Fail fast',
        description='Stop dispatching new scenarios after the first failed one.',
    )

    formatters: tuple[Any, ...] = Field(
        default=(),
        title='Formatters',
        description='Event subscribers notified of run progress.',
    )

    @field_validator('max_concurrent', mode='after')
    @classmethod
    def clamp_concurrency(cls, value: int) -> int:
        """Clamp the concurrency limit to at least one."""
        return max(value, 1)

    @field_validator('retries', mode='after')
    @classmethod
    def clamp_retries(cls, value: int) -> int:
        """Clamp the retry count into `[0, MAX_RETRIES]`."""
        return min(max(value, 0), MAX_RETRIES)

    @field_validator('tags', 'retry_tags', mode='after')
    @classmethod
    def check_expression(cls, value: str) -> str:
        """Reject malformed tag expressions.

        The parse error surfaces as a pydantic `ValidationError`; `build`
        reports it as a `ConfigurationError`.

        Raises:
            TagExpressionError: If the expression can not be parsed.
        """
        TagExpression.parse(value)

        return value

    @property
    def tag_expression(self) -> TagExpression:
        """Parsed selection expression."""
        return TagExpression.parse(self.tags)

    @property
    def retry_expression(self) -> TagExpression:
        """Parsed expression limiting global retries."""
        return TagExpression.parse(self.retry_tags)

    @classmethod
    def build(cls, **options: Any) -> 'Self':  # noqa: ANN401
        """Build options, reporting invalid values as a configuration error.

        Raises:
            ConfigurationError: If any option is invalid.
        """
        try:
            return cls(**options)

        except ValidationError as base:
            raise ConfigurationError.from_pydantic_error(base) from base
