"""Declarative step definitions.

A step definition couples a pattern, a keyword constraint and a handler.
Handlers receive the scenario world first, then the converted arguments
in capture order, then the step table or doc string when one is attached.
Handlers may be plain callables or coroutine functions.
"""

from collections.abc import Callable
from re import Pattern
from typing import Any

from pydantic import Field

from cuke_runner.models import SchemaModel
from cuke_runner.names import StepKind

#: Step or hook handler; may return an awaitable.
type Handler = Callable[..., Any]


def qualname(handler: Handler) -> str:
    """Return a readable `module.name` for a handler."""
    module = getattr(handler, '__module__', None) or '<unknown>'
    name = getattr(handler, '__qualname__', None) or repr(handler)

    return f'{module}.{name}'


class StepDef(SchemaModel):
    """Registered (pattern, keyword constraint, handler) triple."""

    kind: StepKind = Field(
        default=StepKind.ANY,
        title='Keyword constraint',
        description='Given, When, Then, or Any to match steps of every kind.',
    )

    pattern: str | Pattern[str] = Field(
        title='Step pattern',
        description=(
            'Cucumber Expression, or a regular expression given either as '
            'a compiled pattern or as a string anchored with `^` or `$`.'
        ),
    )

    handler: Handler = Field(
        title='Step handler',
        description='Callable executing the step; raising marks the step failed.',
    )

    @property
    def source(self) -> str:
        """Pattern text, used for suggestions and reporting."""
        if isinstance(self.pattern, Pattern):
            return self.pattern.pattern

        return self.pattern

    @property
    def name(self) -> str:
        """Qualified handler name."""
        return qualname(self.handler)
