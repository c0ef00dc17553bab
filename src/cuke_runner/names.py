"""Scenario names primitive types and validation rules.

This module defines step keywords, tag name patterns and strongly-typed
aliases used by the execution engine to validate tags, placeholders and
retry annotations.

The rules defined here form part of the public document contract and are
relied upon by document loaders, the tag evaluator and outline expansion.
"""

from enum import StrEnum
from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import BeforeValidator, Field

#: Base pattern for tag names (without the leading `@`).
#: Parentheses are allowed so that parameterized tags like `@retry(3)` are valid.
_TAG_NAME_PATTERN = r'[^\s@]+'

#: Compiled pattern for a single tag literal.
TAG_PATTERN = regexp(rf'^@{_TAG_NAME_PATTERN}$')

#: Compiled pattern for outline placeholders, e.g. `<amount>`.
PLACEHOLDER_PATTERN = regexp(r'<([^<>\n]+)>')

#: Compiled pattern for retry tags: `@retry`, `@retry(3)`, `@retry(3).after(5s)`.
RETRY_PATTERN = regexp(
    r'^@retry(\((?P<count>\d+)\))?(\.after\((?P<delay>\d+(\.\d+)?)s\))?$',
    flags=ASCII,
)

#: Tag marking scenarios that must never run concurrently with others.
SERIAL_TAG = '@serial'


class Keyword(StrEnum):
    """Step keyword as written in a scenario document."""

    GIVEN = 'Given'
    WHEN = 'When'
    THEN = 'Then'
    AND = 'And'
    BUT = 'But'
    STAR = '*'

    @property
    def is_primary(self) -> bool:
        """Whether the keyword starts a new Given/When/Then block."""
        return self in (Keyword.GIVEN, Keyword.WHEN, Keyword.THEN)


class StepKind(StrEnum):
    """Normalized step kind used for matching step definitions.

    `ANY` is used both as a step definition constraint (matches every
    step) and as the kind of a leading conjunction step that has no
    preceding primary keyword.
    """

    GIVEN = 'Given'
    WHEN = 'When'
    THEN = 'Then'
    ANY = 'Any'

    def accepts(self, kind: 'StepKind') -> bool:
        """Check whether a definition of this kind may match a step of `kind`.

        Args:
            kind: Normalized kind of the step being matched.

        Returns:
            True if the definition is compatible with the step.
        """
        return StepKind.ANY in (self, kind) or self == kind


def normalize_tag(value: str) -> str:
    """Prefix a tag name with `@` if it is missing.

    Args:
        value: Tag name with or without the leading `@`.

    Returns:
        The tag name with a single leading `@`.

    Raises:
        ValueError: If the resulting tag is not a valid tag literal.
    """
    tag = value.strip()
    if not tag.startswith('@'):
        tag = f'@{tag}'

    if not TAG_PATTERN.match(tag):
        raise ValueError(f'Invalid tag {value!r}')

    return tag


Tag = Annotated[
    str,
    BeforeValidator(normalize_tag),
    Field(
        title='Tag',
        description=(
            'Label attached to a feature, rule, scenario or examples block. '
            'Tags are inherited downward and used for selection, skipping '
            'and retry policy. The leading `@` is optional in input data.'
        ),
        examples=[
            '@smoke',
            '@retry(3)',
        ],
    ),
]
