"""Step registry: registration surface and match lookup.

The registry owns the step definition, parameter type and hook tables.
Tables are built once while configuring the run and are read-only during
execution: the runner locks the registry before dispatching scenarios,
which also compiles every step pattern so that pattern errors surface
before any scenario runs.
"""

import logging
from typing import TYPE_CHECKING, overload

from pydantic import Field

from cuke_runner.errors import UndefinedStep
from cuke_runner.extensions import BUILTIN_TYPES, HookDef, HookKind, ParamType, StepDef, StepLibrary
from cuke_runner.models import SchemaModel
from cuke_runner.names import StepKind
from cuke_runner.values import StepValue  # noqa: TC001

from .loader import LibraryLoaderMixin
from .matcher import ExpressionMatcher
from .snippets import make_snippet, suggest

if TYPE_CHECKING:
    from collections.abc import Callable
    from importlib.metadata import EntryPoint
    from re import Pattern

if TYPE_CHECKING:
    from cuke_runner.errors import ErrorContext
    from cuke_runner.extensions import Handler, Transform
    from cuke_runner.schema import StepSpec

if TYPE_CHECKING:
    from .matcher import CompiledPattern, Matcher

logger = logging.getLogger(__name__)

type Decorator = Callable[[Handler], Handler]


class Match(SchemaModel):
    """A step definition matched against a step text."""

    step_def: StepDef
    arguments: tuple[StepValue, ...] = Field(default=())

    @property
    def values(self) -> list[object]:
        """Converted argument values in capture order."""
        return [argument.value for argument in self.arguments]


class NoMatch:
    """Distinguished result of a lookup that found no step definition."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'NO_MATCH'


NO_MATCH = NoMatch()


class StepRegistry(LibraryLoaderMixin):
    """Registry of step definitions, parameter types and hooks.

    Usage::

        registry = StepRegistry()

        @registry.given('a calculator')
        def calculator(world):
            world.value = 0

        @registry.when('I add {int} and {int}')
        def add(world, left, right):
            world.value = left + right
    """

    def __init__(self, *, matcher: 'Matcher | None' = None,
                 strict: bool = False,
                 auto_load: bool = False) -> None:
        """Initialize an empty registry with the built-in parameter types.

        Args:
            matcher: Pattern matcher; `ExpressionMatcher` by default.
            strict: Whether library issues raise instead of warning.
            auto_load: Whether to load libraries from entry points.

        Raises:
            LibraryError: If entry point loading fails in strict mode.
        """
        self.matcher = matcher or ExpressionMatcher()
        self.strict_mode = strict
        self.locked = False

        self._compiled: list[tuple[StepDef, CompiledPattern]] | None = None

        self.clear_definitions()

        if auto_load:
            self.load_libraries()

    def register(self, kind: StepKind | str, pattern: 'str | Pattern[str]',
                 handler: 'Handler') -> StepDef:
        """Register a step handler.

        Args:
            kind: Keyword constraint: Given, When, Then or Any.
            pattern: Cucumber Expression or regular expression.
            handler: Step handler.

        Returns:
            The registered step definition.

        Raises:
            LibraryError: If the registry is locked.
        """
        step = StepDef(kind=StepKind(kind), pattern=pattern, handler=handler)
        self.add_step(step)

        return step

    def add_step(self, step: StepDef,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a step definition and invalidate compiled patterns."""
        super().add_step(step, entrypoint)
        self._compiled = None

    def add_parameter_type(self, parameter_type: ParamType,
                           entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a parameter type and invalidate compiled patterns."""
        super().add_parameter_type(parameter_type, entrypoint)
        self._compiled = None

    def _decorator(self, kind: StepKind, pattern: 'str | Pattern[str]') -> Decorator:
        def decorator(handler: 'Handler') -> 'Handler':
            self.register(kind, pattern, handler)
            return handler

        return decorator

    def given(self, pattern: 'str | Pattern[str]') -> Decorator:
        """Decorator registering a Given step."""
        return self._decorator(StepKind.GIVEN, pattern)

    def when(self, pattern: 'str | Pattern[str]') -> Decorator:
        """Decorator registering a When step."""
        return self._decorator(StepKind.WHEN, pattern)

    def then(self, pattern: 'str | Pattern[str]') -> Decorator:
        """Decorator registering a Then step."""
        return self._decorator(StepKind.THEN, pattern)

    def step(self, pattern: 'str | Pattern[str]') -> Decorator:
        """Decorator registering a step matching any keyword."""
        return self._decorator(StepKind.ANY, pattern)

    def parameter_type(self, name: str, regexps: str | list[str],
                       transform: 'Transform | None' = None) -> ParamType:
        """Register a custom parameter type.

        Args:
            name: Name used in expressions as `{name}`.
            regexps: One or more regular expression alternatives.
            transform: Callable converting captured text.

        Returns:
            The registered parameter type.
        """
        parameter_type = ParamType(name=name, regexps=regexps, transform=transform)
        self.add_parameter_type(parameter_type)

        return parameter_type

    @overload
    def _hook(self, kind: HookKind, handler: 'Handler', tags: str | None) -> 'Handler':
        ...  # pragma: no cover

    @overload
    def _hook(self, kind: HookKind, handler: None, tags: str | None) -> Decorator:
        ...  # pragma: no cover

    def _hook(self, kind: HookKind, handler: 'Handler | None',
              tags: str | None) -> 'Handler | Decorator':
        def decorator(func: 'Handler') -> 'Handler':
            self.add_hook(HookDef(kind=kind, handler=func, tags=tags))
            return func

        if handler is None:
            return decorator

        return decorator(handler)

    def before_run(self, handler: 'Handler | None' = None) -> 'Handler | Decorator':
        """Register a hook called once with the selected scenarios."""
        return self._hook(HookKind.BEFORE_RUN, handler, None)

    def after_run(self, handler: 'Handler | None' = None) -> 'Handler | Decorator':
        """Register a hook called once with the run summary."""
        return self._hook(HookKind.AFTER_RUN, handler, None)

    def before_case(self, handler: 'Handler | None' = None, *,
                    tags: str | None = None) -> 'Handler | Decorator':
        """Register a hook called with the world and scenario before each attempt."""
        return self._hook(HookKind.BEFORE_CASE, handler, tags)

    def after_case(self, handler: 'Handler | None' = None, *,
                   tags: str | None = None) -> 'Handler | Decorator':
        """Register a hook called with the world, scenario and errors after each attempt."""
        return self._hook(HookKind.AFTER_CASE, handler, tags)

    def before_step(self, handler: 'Handler | None' = None, *,
                    tags: str | None = None) -> 'Handler | Decorator':
        """Register a hook called with the world and step before each step."""
        return self._hook(HookKind.BEFORE_STEP, handler, tags)

    def after_step(self, handler: 'Handler | None' = None, *,
                   tags: str | None = None) -> 'Handler | Decorator':
        """Register a hook called with the world, step and errors after each step."""
        return self._hook(HookKind.AFTER_STEP, handler, tags)

    def as_library(self, name: str) -> StepLibrary:
        """Export every definition of this registry as a step library.

        Built-in parameter types are not exported.
        """
        builtins = {id(item) for item in BUILTIN_TYPES}

        return StepLibrary(
            name=name,
            steps=list(self.steps),
            parameter_types=[
                item
                for item in self.parameter_types.values()
                if id(item) not in builtins
            ],
            hooks=[hook for kind in HookKind for hook in self.hooks[kind]],
        )

    def compile(self) -> list[tuple[StepDef, 'CompiledPattern']]:
        """Compile every step pattern, in registration order.

        Raises:
            LibraryError: If a pattern is invalid or uses an unknown type.
        """
        if self._compiled is None:
            self._compiled = [
                (step, self.matcher.compile(step.pattern, self.parameter_types))
                for step in self.steps
            ]

        return self._compiled

    def lock(self) -> None:
        """Compile all patterns and make the registry read-only.

        Raises:
            LibraryError: If a pattern is invalid or uses an unknown type.
        """
        if self.locked:
            return

        self.compile()
        self.locked = True
        logger.debug(
            'Registry locked with %d steps, %d parameter types',
            len(self.steps),
            len(self.parameter_types),
        )

    def find_match(self, text: str, kind: StepKind) -> Match | NoMatch:
        """Find the first compatible step definition matching a step text.

        Args:
            text: Literal step text.
            kind: Normalized kind of the step.

        Returns:
            The match with converted arguments, or `NO_MATCH`.

        Raises:
            ValueError: If a captured argument can not be converted.
        """
        for step_def, compiled in self.compile():
            if not step_def.kind.accepts(kind):
                continue
            arguments = compiled.match(text)
            if arguments is not None:
                return Match(step_def=step_def, arguments=arguments)

        return NO_MATCH

    def hooks_for(self, kind: HookKind, tags: 'frozenset[str] | None' = None) -> tuple[HookDef, ...]:
        """Hooks of one kind in registration order, limited by scenario tags."""
        return tuple(
            hook
            for hook in self.hooks[kind]
            if tags is None or hook.applies_to(tags)
        )

    @property
    def patterns(self) -> list[str]:
        """Sources of all registered step patterns."""
        return [step.source for step in self.steps]

    def undefined(self, step: 'StepSpec', context: 'ErrorContext | None' = None) -> UndefinedStep:
        """Build the undefined step outcome with a snippet and suggestions.

        Args:
            step: Step that no definition matched.
            context: Error context with the step location.

        Returns:
            UndefinedStep carrying a definition snippet and the nearest
            registered patterns.
        """
        return UndefinedStep(
            step.label,
            snippet=make_snippet(step),
            suggestions=suggest(step.text, self.patterns),
            context=context,
        )
