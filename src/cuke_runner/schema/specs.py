"""Concrete scenario and step specifications.

A `ScenarioSpec` is one executable test case produced by outline
expansion: either a plain scenario or one row of a scenario outline,
with background steps prepended and placeholders substituted. Specs are
immutable and are never modified after expansion.
"""

from pydantic import Field

from cuke_runner.models import SchemaModel
from cuke_runner.names import Keyword, StepKind


class Location(SchemaModel):
    """Source location of a document node."""

    uri: str | None = None
    line: int | None = None

    def __str__(self) -> str:
        """Render as `uri:line`."""
        uri = self.uri or '<unknown source>'
        if self.line is None:
            return uri

        return f'{uri}:{self.line}'


class StepSpec(SchemaModel):
    """A concrete step ready for matching."""

    keyword: Keyword = Field(
        title='Keyword as written',
    )

    kind: StepKind = Field(
        title='Normalized kind',
        description=(
            'Given, When or Then. And, But and `*` take the kind of the '
            'preceding primary keyword; a leading conjunction is Any.'
        ),
    )

    text: str = Field(
        title='Step text',
        description='Literal or outline-substituted step text.',
    )

    table: tuple[tuple[str, ...], ...] | None = Field(
        default=None,
        title='Data table',
    )

    doc_string: str | None = Field(
        default=None,
        title='Doc string',
    )

    location: Location = Field(
        default_factory=Location,
        title='Source location',
    )

    background: bool = Field(
        default=False,
        title='Background flag',
        description='Whether the step was prepended from a background.',
    )

    @property
    def label(self) -> str:
        """Step text prefixed with its keyword."""
        return f'{self.keyword.value} {self.text}'

    @property
    def argument(self) -> tuple[tuple[str, ...], ...] | str | None:
        """Attached table or doc string passed as the last handler argument."""
        if self.table is not None:
            return self.table

        return self.doc_string


class ScenarioSpec(SchemaModel):
    """Immutable description of one concrete scenario."""

    id: str = Field(
        title='Scenario identifier',
        description='Stable identifier built from the source location and the outline row.',
    )

    name: str = Field(
        title='Scenario name',
    )

    feature: str = Field(
        title='Feature name',
    )

    rule: str | None = Field(
        default=None,
        title='Rule name',
    )

    steps: tuple[StepSpec, ...] = Field(
        default=(),
        title='Ordered steps',
    )

    tags: frozenset[str] = Field(
        default=frozenset(),
        title='Effective tags',
        description='Union of feature, rule, scenario and examples tags.',
    )

    location: Location = Field(
        default_factory=Location,
        title='Source location',
    )

    feature_index: int = Field(
        default=0,
        ge=0,
        title='Feature position',
        description='Position of the feature among the features of a run.',
    )

    outline: str | None = Field(
        default=None,
        title='Outline name',
        description='Name of the scenario outline this scenario was generated from.',
    )

    row: tuple[tuple[str, str], ...] = Field(
        default=(),
        title='Examples row',
        description='Column name and cell value pairs of the outline row.',
    )
