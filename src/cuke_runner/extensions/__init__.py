"""Declarative step library definition.

This module defines the top-level declarative container used to describe
step definitions, parameter types and hooks contributed by a reusable
step library.

A library is purely declarative. It contains no execution logic and is
consumed by the step registry, either explicitly via `add_library` or by
discovery from the `cuke_libraries` entry point group. Composition is
pure concatenation: a library's definitions are appended after every
definition registered before it, in the library's own order.
"""

from pydantic import Field

from cuke_runner.models import SchemaModel

from .hooks import HookDef, HookKind
from .parameters import BUILTIN_TYPES, ParamType, Transform
from .steps import Handler, StepDef

__all__ = (
    'BUILTIN_TYPES',
    'Handler',
    'HookDef',
    'HookKind',
    'ParamType',
    'StepDef',
    'StepLibrary',
    'Transform',
)


class StepLibrary(SchemaModel):
    """Declarative container for a group of step definitions.

    All contained elements are optional, allowing libraries that only
    contribute parameter types or hooks.
    """

    name: str = Field(
        pattern=r'^[a-zA-Z][\w.-]*$',
        title='Library name',
        description=(
            'Logical name of the library. '
            'Used for identification and diagnostics.'
        ),
    )

    version: int = Field(
        default=1,
        title='Contract version',
        description=(
            'Version of the library contract. '
            'This is not a semantic version of the library implementation.'
        ),
    )

    steps: list[StepDef] = Field(
        default_factory=list,
        title='Step definitions',
        description='Step definitions in registration order.',
    )

    parameter_types: list[ParamType] = Field(
        default_factory=list,
        title='Parameter types',
        description='Custom parameter types used by the library expressions.',
    )

    hooks: list[HookDef] = Field(
        default_factory=list,
        title='Hooks',
        description='Lifecycle hooks in registration order.',
    )
