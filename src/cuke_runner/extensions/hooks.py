"""Declarative lifecycle hook definitions."""

from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BeforeValidator, Field

from cuke_runner.models import SchemaModel
from cuke_runner.tags import TagExpression

from .steps import Handler, qualname

if TYPE_CHECKING:
    from collections.abc import Set


class HookKind(StrEnum):
    """One of the six lifecycle points."""

    BEFORE_RUN = 'before_run'
    AFTER_RUN = 'after_run'
    BEFORE_CASE = 'before_case'
    AFTER_CASE = 'after_case'
    BEFORE_STEP = 'before_step'
    AFTER_STEP = 'after_step'

    @property
    def is_scoped(self) -> bool:
        """Whether hooks of this kind may be limited by a tag expression."""
        return self not in (HookKind.BEFORE_RUN, HookKind.AFTER_RUN)


def _parse_tags(value: Any) -> Any:  # noqa: ANN401
    """Parse tag expression strings; pass parsed expressions through."""
    if value is None or isinstance(value, TagExpression):
        return value

    return TagExpression.parse(value)


class HookDef(SchemaModel):
    """Handler registered against one lifecycle point.

    Hooks are stored in registration order per kind and are never
    reordered. Case and step hooks may be limited to scenarios whose
    effective tags satisfy a tag expression.
    """

    kind: HookKind = Field(
        title='Hook kind',
    )

    handler: Handler = Field(
        title='Hook handler',
    )

    tags: Annotated[TagExpression | None, BeforeValidator(_parse_tags)] = Field(
        default=None,
        title='Tag expression',
        description='Limits case and step hooks to matching scenarios.',
    )

    @property
    def name(self) -> str:
        """Qualified handler name."""
        return qualname(self.handler)

    def applies_to(self, tags: 'Set[str]') -> bool:
        """Check whether the hook fires for a scenario with the given tags."""
        if self.tags is None or not self.kind.is_scoped:
            return True

        return self.tags.evaluate(tags)
