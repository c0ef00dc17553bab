"""Scenario document tree models.

These models describe the input contract of the engine: a tree of
Feature, Rule, Background, Scenario (or Scenario Outline with Examples)
and Step nodes handed over by an external document parser, or loaded
from YAML by `cuke_runner.core.sources`.
"""

from typing import Annotated, Any, Self

from pydantic import BeforeValidator, Field, model_validator

from cuke_runner.models import SchemaModel
from cuke_runner.names import Keyword, Tag


def _to_text(value: Any) -> Any:  # noqa: ANN401
    """Coerce YAML scalars (numbers, booleans) of table cells to text."""
    if isinstance(value, bool):
        return 'true' if value else 'false'

    if isinstance(value, (int, float)):
        return str(value)

    if value is None:
        return ''

    return value


#: A single table cell; non-string scalars are coerced to text.
Cell = Annotated[str, BeforeValidator(_to_text)]


class Step(SchemaModel):
    """A single step of a scenario or background.

    A step may be given as a mapping or as a shorthand string starting
    with its keyword, for example `'Given a calculator'`. A mapping may
    hold the shorthand string under `step` in place of `keyword` and
    `text`.
    """

    keyword: Keyword = Field(
        title='Step keyword',
        description='Keyword as written: Given, When, Then, And, But or `*`.',
    )

    text: str = Field(
        min_length=1,
        title='Step text',
        description='Step text without the keyword; may contain outline placeholders.',
    )

    table: list[list[Cell]] | None = Field(
        default=None,
        title='Data table',
        description='Optional table attached to the step, as a list of rows.',
    )

    doc_string: str | None = Field(
        default=None,
        title='Doc string',
        description='Optional block of text attached to the step.',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )

    @model_validator(mode='before')
    @classmethod
    def split_shorthand(cls, data: Any) -> Any:  # noqa: ANN401
        """Split a shorthand step string into keyword and text."""
        if isinstance(data, str):
            data = {'step': data}

        if not isinstance(data, dict) or not isinstance(data.get('step'), str):
            return data

        fields = dict(data)
        keyword, _, text = fields.pop('step').strip().partition(' ')

        return {'keyword': keyword, 'text': text.strip(), **fields}


class Examples(SchemaModel):
    """A named block of data rows driving a scenario outline."""

    name: str = Field(
        default='',
        title='Examples name',
    )

    tags: list[Tag] = Field(
        default_factory=list,
        title='Examples tags',
        description='Tags applied only to scenarios generated from this block.',
    )

    header: list[Cell] = Field(
        min_length=1,
        title='Header row',
        description='Placeholder names, in column order.',
    )

    rows: list[list[Cell]] = Field(
        default_factory=list,
        title='Data rows',
        description='One generated scenario per row.',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )

    @model_validator(mode='after')
    def check_row_width(self) -> Self:
        """Validate that every row has one cell per header column.

        Raises:
            ValueError: If a row width differs from the header width.
        """
        for position, row in enumerate(self.rows):
            if len(row) != len(self.header):
                raise ValueError(
                    f'row {position + 1} has {len(row)} cells, '
                    f'expected {len(self.header)}',
                )

        return self


class Background(SchemaModel):
    """Steps implicitly prepended to every scenario of a feature or rule."""

    name: str = Field(
        default='',
        title='Background name',
    )

    steps: list[Step] = Field(
        default_factory=list,
        title='Background steps',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )


class Scenario(SchemaModel):
    """A scenario, or a scenario outline when examples are present."""

    name: str = Field(
        title='Scenario name',
    )

    description: str | None = Field(
        default=None,
        title='Scenario description',
    )

    tags: list[Tag] = Field(
        default_factory=list,
        title='Scenario tags',
    )

    steps: list[Step] = Field(
        default_factory=list,
        title='Scenario steps',
    )

    examples: list[Examples] = Field(
        default_factory=list,
        title='Examples blocks',
        description='Data blocks of a scenario outline; empty for plain scenarios.',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )

    @property
    def is_outline(self) -> bool:
        """Whether this scenario is a template expanded from examples."""
        return bool(self.examples)


class Rule(SchemaModel):
    """A named group of scenarios inside a feature."""

    name: str = Field(
        title='Rule name',
    )

    tags: list[Tag] = Field(
        default_factory=list,
        title='Rule tags',
    )

    background: Background | None = Field(
        default=None,
        title='Rule background',
    )

    scenarios: list[Scenario] = Field(
        default_factory=list,
        title='Rule scenarios',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )


class Feature(SchemaModel):
    """Top-level named grouping of scenarios read from one source document."""

    name: str = Field(
        title='Feature name',
    )

    description: str | None = Field(
        default=None,
        title='Feature description',
    )

    tags: list[Tag] = Field(
        default_factory=list,
        title='Feature tags',
    )

    background: Background | None = Field(
        default=None,
        title='Feature background',
    )

    scenarios: list[Scenario] = Field(
        default_factory=list,
        title='Feature scenarios',
    )

    rules: list[Rule] = Field(
        default_factory=list,
        title='Feature rules',
    )

    uri: str | None = Field(
        default=None,
        title='Source URI',
        description='Path or URI of the document the feature was read from.',
    )

    line: int | None = Field(
        default=None,
        title='Source line',
    )
