"""Default step pattern matcher.

The registry delegates pattern compilation and evaluation to a `Matcher`.
Any object implementing the protocol may be supplied; the default
`ExpressionMatcher` understands:

- Cucumber Expressions with `{type}` parameters, optional text `cuke(s)`,
  alternative words `cuke/cucumber` and backslash escapes;
- regular expressions, given as compiled patterns or as strings anchored
  with `^` or `$`, where every capturing group becomes one argument.
"""

import logging
from re import DOTALL, VERBOSE, Pattern, escape
from re import compile as regexp
from re import error as RegexError
from typing import TYPE_CHECKING, Protocol

from cuke_runner.errors import LibraryError
from cuke_runner.values import ParamKind, StepValue

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from cuke_runner.extensions import ParamType

logger = logging.getLogger(__name__)

_EXPRESSION_TOKENS = regexp(
    r'''
      \\(?P<escaped>.)
    | \{(?P<parameter>[^{}]*)\}
    | \((?P<optional>[^()]*)\)
    | (?P<alternation>[^\s\\{}()/]+(?:/[^\s\\{}()/]+)+)
    | (?P<text>.)
    ''',
    flags=VERBOSE | DOTALL,
)

type Arguments = tuple[StepValue, ...]


class CompiledPattern(Protocol):
    """Compiled step pattern."""

    #: Original pattern text.
    source: str

    def match(self, text: str) -> Arguments | None:
        """Match step text, returning ordered typed arguments or `None`."""
        ...  # pragma: no cover


class Matcher(Protocol):
    """Compiles step patterns against a parameter type table."""

    def compile(self, pattern: str | Pattern[str],
                parameter_types: 'Mapping[str, ParamType]') -> CompiledPattern:
        """Compile a step pattern.

        Raises:
            LibraryError: If the pattern references an unknown parameter type.
        """
        ...  # pragma: no cover


class RegexPattern:
    """Regular expression step pattern."""

    def __init__(self, pattern: Pattern[str]) -> None:
        self.pattern = pattern
        self.source = pattern.pattern

    def match(self, text: str) -> Arguments | None:
        found = self.pattern.search(text)
        if found is None:
            return None

        return tuple(
            StepValue(kind=ParamKind.REGEX, text=group, value=group)
            for group in found.groups()
        )


class ExpressionPattern:
    """Cucumber Expression step pattern."""

    def __init__(self, source: str, regex: Pattern[str],
                 parameters: 'tuple[ParamType, ...]',
                 offsets: tuple[int, ...]) -> None:
        self.source = source
        self.regex = regex
        self.parameters = parameters
        #: Group index of the outer capture of every parameter.
        self.offsets = offsets

    def match(self, text: str) -> Arguments | None:
        """Match step text and convert captures.

        Groups nested inside a parameter type regex are ignored: every
        parameter yields exactly one argument.

        Raises:
            ValueError: If a capture can not be converted by its type.
        """
        found = self.regex.fullmatch(text)
        if found is None:
            return None

        arguments = []
        for parameter, offset in zip(self.parameters, self.offsets, strict=True):
            group = found.group(offset)
            arguments.append(StepValue(
                kind=parameter.kind,
                text=group,
                value=parameter.convert(group),
                type_name=parameter.name,
            ))

        return tuple(arguments)


class ExpressionMatcher:
    """Matcher for Cucumber Expressions and regular expressions."""

    def compile(self, pattern: str | Pattern[str],
                parameter_types: 'Mapping[str, ParamType]') -> CompiledPattern:
        """Compile a step pattern.

        Args:
            pattern: Expression text, anchored regex text or compiled regex.
            parameter_types: Parameter types by name.

        Returns:
            A compiled pattern.

        Raises:
            LibraryError: If the pattern references an unknown parameter
                type or is not a valid regular expression.
        """
        if isinstance(pattern, Pattern):
            return RegexPattern(pattern)

        if pattern.startswith('^') or pattern.endswith('$'):
            try:
                return RegexPattern(regexp(pattern))
            except Exception as base:
                raise LibraryError(f'Invalid step pattern {pattern!r}: {base}') from base

        return self.compile_expression(pattern, parameter_types)

    @staticmethod
    def compile_expression(expression: str,
                           parameter_types: 'Mapping[str, ParamType]') -> ExpressionPattern:
        """Translate a Cucumber Expression into an anchored regex.

        Raises:
            LibraryError: If the expression references an unknown parameter
                type, or a parameter type regex is invalid.
        """
        parts: list[str] = []
        parameters: list[ParamType] = []
        offsets: list[int] = []
        groups = 0

        for token in _EXPRESSION_TOKENS.finditer(expression):
            if (escaped := token.group('escaped')) is not None:
                parts.append(escape(escaped))
            elif (name := token.group('parameter')) is not None:
                parameter = parameter_types.get(name.strip())
                if parameter is None:
                    raise LibraryError(
                        f'Undefined parameter type {name!r} in expression {expression!r}',
                    )
                try:
                    inner = parameter.groups
                except RegexError as base:
                    raise LibraryError(
                        f'Invalid regex of parameter type {parameter.name!r}: {base}',
                    ) from base
                parameters.append(parameter)
                offsets.append(groups + 1)
                groups += 1 + inner
                parts.append(f'({parameter.regexp})')
            elif (optional := token.group('optional')) is not None:
                parts.append(f'(?:{escape(optional)})?')
            elif (alternation := token.group('alternation')) is not None:
                choices = '|'.join(escape(item) for item in alternation.split('/'))
                parts.append(f'(?:{choices})')
            else:
                parts.append(escape(token.group('text')))

        try:
            regex = regexp(''.join(parts))
        except RegexError as base:
            raise LibraryError(f'Invalid step pattern {expression!r}: {base}') from base

        logger.debug('Compiled expression %r to %r', expression, regex.pattern)

        return ExpressionPattern(expression, regex, tuple(parameters), tuple(offsets))
