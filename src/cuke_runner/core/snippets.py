"""Snippets and suggestions for undefined steps.

When no step definition matches a step, the executor reports it as
undefined together with a ready-to-paste definition snippet and the
registered patterns that look most similar to the step text.
"""

from difflib import get_close_matches
from re import compile as regexp
from typing import TYPE_CHECKING

from cuke_runner.names import StepKind

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from cuke_runner.schema import StepSpec

#: Maximum number of did-you-mean suggestions.
SUGGESTIONS_LIMIT = 3
#: Minimum similarity ratio for a suggestion.
SUGGESTIONS_CUTOFF = 0.6

_ARGUMENT_PATTERN = regexp(
    r'(?P<string>"[^"]*"|\'[^\']*\')'
    r'|(?<![\w.])(?P<float>-?\d+\.\d+)(?![\w.])'
    r'|(?<![\w.])(?P<int>-?\d+)(?![\w.])',
)
_SPECIAL_PATTERN = regexp(r'([\\{}()/])')

_DECORATORS = {
    StepKind.GIVEN: 'given',
    StepKind.WHEN: 'when',
    StepKind.THEN: 'then',
    StepKind.ANY: 'step',
}


def _escape(text: str) -> str:
    """Escape characters that have a meaning in Cucumber Expressions."""
    return _SPECIAL_PATTERN.sub(r'\\\1', text)


def make_expression(text: str) -> tuple[str, list[str]]:
    """Turn step text into a Cucumber Expression with typed parameters.

    Quoted strings become `{string}`, decimals `{float}` and integers
    `{int}`; everything else is kept literally.

    Args:
        text: Literal step text.

    Returns:
        The expression and the handler argument names in capture order.
    """
    parts: list[str] = []
    arguments: list[str] = []
    counters: dict[str, int] = {}
    position = 0

    for found in _ARGUMENT_PATTERN.finditer(text):
        kind = found.lastgroup or 'string'
        counters[kind] = counters.get(kind, 0) + 1

        parts.append(_escape(text[position:found.start()]))
        parts.append(f'{{{kind}}}')
        arguments.append(f'{kind}{counters[kind]}')
        position = found.end()

    parts.append(_escape(text[position:]))

    return ''.join(parts), arguments


def make_snippet(step: 'StepSpec', registry_name: str = 'registry') -> str:
    """Generate Python source of a step definition for an undefined step.

    Args:
        step: The undefined step.
        registry_name: Name of the registry variable used in the decorator.

    Returns:
        Snippet source code.
    """
    expression, arguments = make_expression(step.text)

    parameters = ['world', *arguments]
    if step.table is not None:
        parameters.append('table')
    elif step.doc_string is not None:
        parameters.append('doc_string')

    decorator = _DECORATORS[step.kind]

    return (
        f'@{registry_name}.{decorator}({expression!r})\n'
        f'def step_impl({', '.join(parameters)}):\n'
        f'    raise PendingStep\n'
    )


def suggest(text: str, patterns: 'Iterable[str]') -> tuple[str, ...]:
    """Find registered patterns similar to a step text.

    Args:
        text: Literal step text.
        patterns: Sources of all registered patterns.

    Returns:
        Up to `SUGGESTIONS_LIMIT` patterns, most similar first.
    """
    candidates = list(dict.fromkeys(patterns))
    if not candidates:
        return ()

    expression, _ = make_expression(text)

    matches = get_close_matches(
        expression,
        candidates,
        n=SUGGESTIONS_LIMIT,
        cutoff=SUGGESTIONS_CUTOFF,
    )
    if not matches:
        matches = get_close_matches(
            text,
            candidates,
            n=SUGGESTIONS_LIMIT,
            cutoff=SUGGESTIONS_CUTOFF,
        )

    return tuple(matches)
