"""Declarative parameter type definitions.

A parameter type names a capture inside a Cucumber Expression, for example
`{int}` or a user-defined `{color}`. It couples one or more regular
expression alternatives with a conversion into a Python value. The
registry only stores the table of parameter types; the matcher consumes it.
"""

from collections.abc import Callable
from re import compile as regexp
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from cuke_runner.models import SchemaModel
from cuke_runner.values import ParamKind, RuntimeValue, convert

#: Transform converting captured text into a Python value.
type Transform = Callable[[str], RuntimeValue]

INT_REGEXP = r'-?\d+'
FLOAT_REGEXP = r'[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?'
STRING_REGEXP = r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\''
WORD_REGEXP = r'[^\s]+'
ANONYMOUS_REGEXP = r'.*'


def _as_tuple(value: Any) -> Any:  # noqa: ANN401
    """Accept a single regex string in place of a list of alternatives."""
    if isinstance(value, str):
        return (value,)

    return value


class ParamType(SchemaModel):
    """Named capture type of a Cucumber Expression."""

    name: str = Field(
        pattern=r'^[\w-]*$',
        title='Parameter type name',
        description='Name used inside braces in expressions, e.g. `color` for `{color}`.',
    )

    regexps: Annotated[tuple[str, ...], BeforeValidator(_as_tuple)] = Field(
        min_length=1,
        title='Regular expressions',
        description='One or more regular expression alternatives matching the capture.',
    )

    transform: Transform | None = Field(
        default=None,
        title='Transform',
        description='Callable converting the captured text; identity when omitted.',
    )

    kind: ParamKind = Field(
        default=ParamKind.CUSTOM,
        title='Parameter kind',
        description='Tag of the produced step value; custom for user-registered types.',
    )

    @property
    def regexp(self) -> str:
        """Alternatives joined into one regex, kept as written."""
        return '|'.join(self.regexps)

    @property
    def groups(self) -> int:
        """Number of capturing groups inside the alternatives.

        Raises:
            re.error: If an alternative is not a valid regular expression.
        """
        return regexp(self.regexp).groups

    def convert(self, text: str | None) -> RuntimeValue:
        """Convert captured text into the handler argument value.

        Raises:
            ValueError: If the text can not be converted.
        """
        value = convert(self.kind, text)
        if self.transform is not None and text is not None:
            return self.transform(value)

        return value


BUILTIN_TYPES = (
    ParamType(name='int', regexps=INT_REGEXP, kind=ParamKind.INT),
    ParamType(name='float', regexps=FLOAT_REGEXP, kind=ParamKind.FLOAT),
    ParamType(name='double', regexps=FLOAT_REGEXP, kind=ParamKind.DOUBLE),
    ParamType(name='long', regexps=INT_REGEXP, kind=ParamKind.LONG),
    ParamType(name='byte', regexps=INT_REGEXP, kind=ParamKind.BYTE),
    ParamType(name='short', regexps=INT_REGEXP, kind=ParamKind.SHORT),
    ParamType(name='bigdecimal', regexps=FLOAT_REGEXP, kind=ParamKind.BIG_DECIMAL),
    ParamType(name='biginteger', regexps=INT_REGEXP, kind=ParamKind.BIG_INTEGER),
    ParamType(name='string', regexps=STRING_REGEXP, kind=ParamKind.STRING),
    ParamType(name='word', regexps=WORD_REGEXP, kind=ParamKind.WORD),
    ParamType(name='', regexps=ANONYMOUS_REGEXP, kind=ParamKind.ANONYMOUS),
)
