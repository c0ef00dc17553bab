"""Typed step argument values.

Every argument captured from a step text is represented as a `StepValue`:
a tagged union whose tag is a `ParamKind`. Conversion from captured text
into a Python value is done in one place, `convert`, which matches
exhaustively over all kinds.
"""

from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, assert_never

from pydantic import Field

from .models import SchemaModel

type RuntimeValue = Any

#: Integer bounds for the sized integer parameter types.
BYTE_RANGE = (-(2 ** 7), 2 ** 7 - 1)
SHORT_RANGE = (-(2 ** 15), 2 ** 15 - 1)
LONG_RANGE = (-(2 ** 63), 2 ** 63 - 1)


class ParamKind(StrEnum):
    """Tag of a captured step argument."""

    INT = 'int'
    FLOAT = 'float'
    DOUBLE = 'double'
    LONG = 'long'
    BYTE = 'byte'
    SHORT = 'short'
    BIG_DECIMAL = 'bigdecimal'
    BIG_INTEGER = 'biginteger'
    STRING = 'string'
    WORD = 'word'
    ANONYMOUS = ''
    CUSTOM = 'custom'
    REGEX = 'regex'


class StepValue(SchemaModel):
    """A single typed argument captured from a step text."""

    kind: ParamKind = Field(
        title='Parameter kind',
        description='Tag identifying how the captured text was converted.',
    )

    text: str | None = Field(
        title='Captured text',
        description='Raw text captured by the pattern, `None` for unmatched optional groups.',
    )

    value: RuntimeValue = Field(
        default=None,
        title='Converted value',
        description='Python value passed to the step handler.',
    )

    type_name: str | None = Field(
        default=None,
        title='Parameter type name',
        description='Name of the custom parameter type, if any.',
    )


def _sized_int(text: str, bounds: tuple[int, int]) -> int:
    """Convert text to an integer within inclusive bounds.

    Raises:
        ValueError: If the value does not fit.
    """
    value = int(text)
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f'{value} is out of range [{low}, {high}]')

    return value


def _unquote(text: str) -> str:
    """Strip surrounding quotes and unescape quotes inside a string capture."""
    quote, body = text[0], text[1:-1]

    return body.replace(f'\\{quote}', quote)


def convert(kind: ParamKind, text: str | None) -> RuntimeValue:  # noqa: PLR0911
    """Convert captured text into the Python value for a built-in kind.

    Custom kinds are converted by their registered transform and are
    returned unchanged here.

    Args:
        kind: Tag of the captured argument.
        text: Raw captured text.

    Returns:
        The converted value, or `None` when nothing was captured.

    Raises:
        ValueError: If the text can not be converted.
    """
    if text is None:
        return None

    match kind:
        case ParamKind.INT | ParamKind.BIG_INTEGER:
            return int(text)
        case ParamKind.LONG:
            return _sized_int(text, LONG_RANGE)
        case ParamKind.SHORT:
            return _sized_int(text, SHORT_RANGE)
        case ParamKind.BYTE:
            return _sized_int(text, BYTE_RANGE)
        case ParamKind.FLOAT | ParamKind.DOUBLE:
            return float(text)
        case ParamKind.BIG_DECIMAL:
            try:
                return Decimal(text)
            except InvalidOperation as base:
                raise ValueError(f'{text!r} is not a decimal') from base
        case ParamKind.STRING:
            return _unquote(text)
        case ParamKind.WORD | ParamKind.ANONYMOUS | ParamKind.CUSTOM | ParamKind.REGEX:
            return text
        case _:
            assert_never(kind)
