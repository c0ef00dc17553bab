"""Expansion of document trees into concrete scenarios.

A feature is flattened into an ordered sequence of `ScenarioSpec`:

- background steps of the feature, then of the enclosing rule, are
  prepended to every scenario;
- `And`, `But` and `*` take the kind of the preceding primary keyword;
- each examples row of a scenario outline produces one scenario with
  `<placeholder>` occurrences substituted in step text, tables, doc
  strings and the scenario name;
- effective tags are the union of feature, rule, scenario and examples
  tags.

Expansion is a pure function of its input; the same tree always yields
the same specs in the same order.
"""

import logging
from typing import TYPE_CHECKING

from cuke_runner.names import PLACEHOLDER_PATTERN, StepKind
from cuke_runner.schema import Location, ScenarioSpec, StepSpec

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping, Sequence
    from re import Match

if TYPE_CHECKING:
    from cuke_runner.schema import Background, Examples, Feature, Rule, Scenario, Step

logger = logging.getLogger(__name__)


def substitute(text: str, values: 'Mapping[str, str]') -> str:
    """Replace `<name>` placeholders with row values.

    Placeholders without a matching column are left untouched.
    """
    if not values:
        return text

    def replace(found: 'Match[str]') -> str:
        return values.get(found.group(1), found.group(0))

    return PLACEHOLDER_PATTERN.sub(replace, text)


def make_steps(steps: 'Sequence[Step]', *, uri: str | None,
               values: 'Mapping[str, str] | None' = None,
               background: bool = False,
               kind: StepKind = StepKind.ANY) -> tuple[list[StepSpec], StepKind]:
    """Build concrete steps from document steps.

    Args:
        steps: Document steps in order.
        uri: Source URI used for step locations.
        values: Placeholder values of an outline row.
        background: Whether the steps come from a background.
        kind: Kind inherited by a leading conjunction step.

    Returns:
        The concrete steps and the kind of the last primary keyword.
    """
    values = values or {}
    result: list[StepSpec] = []

    for step in steps:
        if step.keyword.is_primary:
            kind = StepKind(step.keyword.value)

        table = None
        if step.table is not None:
            table = tuple(
                tuple(substitute(cell, values) for cell in row)
                for row in step.table
            )

        doc_string = None
        if step.doc_string is not None:
            doc_string = substitute(step.doc_string, values)

        result.append(StepSpec(
            keyword=step.keyword,
            kind=kind,
            text=substitute(step.text, values),
            table=table,
            doc_string=doc_string,
            location=Location(uri=uri, line=step.line),
            background=background,
        ))

    return result, kind


def row_name(name: str, values: 'Mapping[str, str]') -> str:
    """Name of a generated scenario.

    The outline name, with placeholders substituted, suffixed with the
    row columns in table order, e.g. `Add (a=1, b=2)`.
    """
    substituted = substitute(name, values)
    if not values:
        return substituted

    pairs = ', '.join(f'{key}={value}' for key, value in values.items())

    return f'{substituted} ({pairs})'


class _Expander:
    """Expansion state of a single feature."""

    def __init__(self, feature: 'Feature', index: int = 0) -> None:
        self.feature = feature
        self.index = index
        self.uri = feature.uri

    def expand(self) -> 'Iterator[ScenarioSpec]':
        for scenario in self.feature.scenarios:
            yield from self.expand_scenario(scenario, rule=None)

        for rule in self.feature.rules:
            for scenario in rule.scenarios:
                yield from self.expand_scenario(scenario, rule=rule)

    def backgrounds(self, rule: 'Rule | None') -> 'list[Background]':
        backgrounds = []
        if self.feature.background is not None:
            backgrounds.append(self.feature.background)
        if rule is not None and rule.background is not None:
            backgrounds.append(rule.background)

        return backgrounds

    def build_steps(self, scenario: 'Scenario', rule: 'Rule | None',
                    values: 'Mapping[str, str] | None' = None) -> tuple[StepSpec, ...]:
        steps: list[StepSpec] = []
        kind = StepKind.ANY

        for background in self.backgrounds(rule):
            # Background placeholders are substituted as well
            part, kind = make_steps(
                background.steps,
                uri=self.uri,
                values=values,
                background=True,
                kind=kind,
            )
            steps.extend(part)

        part, _ = make_steps(scenario.steps, uri=self.uri, values=values, kind=kind)
        steps.extend(part)

        return tuple(steps)

    def base_tags(self, scenario: 'Scenario', rule: 'Rule | None') -> set[str]:
        tags = set(self.feature.tags)
        if rule is not None:
            tags.update(rule.tags)
        tags.update(scenario.tags)

        return tags

    def expand_scenario(self, scenario: 'Scenario',
                        rule: 'Rule | None') -> 'Iterator[ScenarioSpec]':
        location = Location(uri=self.uri, line=scenario.line)
        tags = self.base_tags(scenario, rule)

        if not scenario.is_outline:
            yield ScenarioSpec(
                id=str(location),
                name=scenario.name,
                feature=self.feature.name,
                feature_index=self.index,
                rule=rule.name if rule else None,
                steps=self.build_steps(scenario, rule),
                tags=frozenset(tags),
                location=location,
            )
            return

        offset = 0
        for examples in scenario.examples:
            yield from self.expand_examples(scenario, rule, examples, tags, offset)
            offset += len(examples.rows)

    def expand_examples(self, scenario: 'Scenario', rule: 'Rule | None',
                        examples: 'Examples', tags: set[str],
                        offset: int) -> 'Iterator[ScenarioSpec]':
        location = Location(uri=self.uri, line=scenario.line)
        effective = frozenset(tags | set(examples.tags))

        for position, row in enumerate(examples.rows):
            values = dict(zip(examples.header, row, strict=True))

            yield ScenarioSpec(
                id=f'{location}#{offset + position + 1}',
                name=row_name(scenario.name, values),
                feature=self.feature.name,
                feature_index=self.index,
                rule=rule.name if rule else None,
                steps=self.build_steps(scenario, rule, values),
                tags=effective,
                location=location,
                outline=scenario.name,
                row=tuple(values.items()),
            )


def expand_feature(feature: 'Feature', index: int = 0) -> list[ScenarioSpec]:
    """Expand a feature into concrete scenarios in document order.

    Scenarios directly under the feature come first, then the scenarios
    of each rule. An outline produces one scenario per examples row, in
    examples block order and row order; an outline with no rows produces
    nothing.

    Args:
        feature: Feature document tree.
        index: Position of the feature among the features of a run.

    Returns:
        Concrete scenarios in document order.
    """
    specs = list(_Expander(feature, index).expand())
    logger.debug('Expanded feature %r into %d scenarios', feature.name, len(specs))

    return specs


def expand_features(features: 'Iterable[Feature]') -> list[ScenarioSpec]:
    """Expand several features, keeping feature order.

    Every feature gets its own position, so features sharing a name are
    still reported apart.
    """
    return [
        spec
        for index, feature in enumerate(features)
        for spec in expand_feature(feature, index)
    ]
