"""Tests for the step registry and step library loading."""

from typing import TYPE_CHECKING

import pydantic
import pytest

from cuke_runner import StepRegistry
from cuke_runner.core import NO_MATCH
from cuke_runner.errors import LibraryError, LibraryWarning
from cuke_runner.extensions import HookKind, StepLibrary
from cuke_runner.names import Keyword, StepKind
from cuke_runner.schema import StepSpec
from tests.examples.libraries import colors

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockType


def test_decorators_return_handler() -> None:
    """Register steps with decorators keeping the original function."""
    registry = StepRegistry()

    def calculator(world: object) -> None:
        pass

    assert registry.given('a calculator')(calculator) is calculator
    assert [step.name for step in registry.steps] == [f'{__name__}.{calculator.__qualname__}']


def test_kind_filtering() -> None:
    """Match only definitions compatible with the step kind."""
    registry = StepRegistry()

    given = registry.register(StepKind.GIVEN, 'the state', print)
    then = registry.register(StepKind.THEN, 'the state', repr)
    anything = registry.register(StepKind.ANY, 'anything', str)

    assert registry.find_match('the state', StepKind.GIVEN).step_def is given
    assert registry.find_match('the state', StepKind.THEN).step_def is then
    assert registry.find_match('the state', StepKind.WHEN) is NO_MATCH
    assert registry.find_match('the state', StepKind.ANY).step_def is given
    assert registry.find_match('anything', StepKind.WHEN).step_def is anything


def test_first_registered_wins() -> None:
    """Resolve ambiguous matches by registration order."""
    registry = StepRegistry()

    first = registry.register('Given', 'I have {int} cukes', print)
    registry.register('Given', 'I have {} cukes', print)

    match = registry.find_match('I have 5 cukes', StepKind.GIVEN)

    assert match.step_def is first
    assert match.values == [5]


def test_no_match_is_falsy() -> None:
    """Return the falsy no-match sentinel when nothing matches."""
    registry = StepRegistry()

    match = registry.find_match('nothing', StepKind.GIVEN)

    assert match is NO_MATCH
    assert not match


def test_conversion_failure() -> None:
    """Propagate argument conversion errors from the lookup."""
    registry = StepRegistry()
    registry.given('a byte {byte}')(print)

    with pytest.raises(ValueError, match=r'out of range'):
        registry.find_match('a byte 300', StepKind.GIVEN)


def test_lock() -> None:
    """Reject new definitions once the registry is locked."""
    registry = StepRegistry()
    registry.given('a calculator')(print)
    registry.lock()

    with pytest.raises(LibraryError, match=r'^Registry is locked'):
        registry.given('another calculator')(print)

    with pytest.raises(LibraryError, match=r'^Registry is locked'):
        registry.before_case(print)


def test_lock_compiles_patterns() -> None:
    """Surface unknown parameter types when locking."""
    registry = StepRegistry()
    registry.given('the color is {color}')(print)

    with pytest.raises(LibraryError, match=r"^Undefined parameter type 'color'"):
        registry.lock()

    assert not registry.locked


def test_custom_parameter_type() -> None:
    """Recompile patterns after new definitions are added."""
    registry = StepRegistry()
    registry.given('a calculator')(print)
    assert registry.find_match('the color is red', StepKind.GIVEN) is NO_MATCH

    registry.parameter_type('color', ['red', 'blue'], str.upper)
    registry.given('the color is {color}')(print)

    match = registry.find_match('the color is red', StepKind.GIVEN)

    assert match.values == ['RED']


def test_shadowed_parameter_type() -> None:
    """Warn when a parameter type replaces an existing one."""
    registry = StepRegistry()

    with pytest.warns(LibraryWarning, match=r"^Parameter type 'int' is shadowing"):
        registry.parameter_type('int', r'\d+', lambda text: int(text) * 2)

    registry.when('double {int}')(print)

    assert registry.find_match('double 2', StepKind.WHEN).values == [4]


def test_shadowed_parameter_type_strict() -> None:
    """Fail on shadowing parameter types in strict mode."""
    registry = StepRegistry(strict=True)

    with pytest.raises(LibraryError, match=r"^Parameter type 'word' is shadowing"):
        registry.parameter_type('word', r'\w+')


def test_shadowed_step() -> None:
    """Warn about duplicate definitions that can never match."""
    registry = StepRegistry()
    registry.given('a calculator')(print)

    with pytest.warns(LibraryWarning, match=r"^Step Given 'a calculator' from 'builtins.repr'"):
        registry.given('a calculator')(repr)

    assert len(registry.steps) == 2


def test_hooks_in_registration_order() -> None:
    """Keep hooks of every kind in registration order."""
    registry = StepRegistry()

    @registry.before_step
    def first(world: object, step: StepSpec) -> None:
        pass

    @registry.before_step()
    def second(world: object, step: StepSpec) -> None:
        pass

    hooks = registry.hooks_for(HookKind.BEFORE_STEP, frozenset())

    assert [hook.handler for hook in hooks] == [first, second]
    assert registry.hooks_for(HookKind.AFTER_STEP) == ()


@pytest.mark.parametrize('tags, expected', (
    pytest.param({'@db'}, ['always', 'database'], id='matching'),
    pytest.param({'@ui'}, ['always'], id='other'),
    pytest.param({'@db', '@slow'}, ['always'], id='negated'),
))
def test_tagged_hooks(tags: set[str], expected: list[str]) -> None:
    """Limit case hooks to scenarios matching their tag expression."""
    registry = StepRegistry()

    @registry.before_case
    def always(world: object, scenario: object) -> None:
        pass

    @registry.before_case(tags='@db and not @slow')
    def database(world: object, scenario: object) -> None:
        pass

    hooks = registry.hooks_for(HookKind.BEFORE_CASE, frozenset(tags))

    assert [hook.handler.__name__ for hook in hooks] == expected


def test_add_library() -> None:
    """Append library definitions after existing ones."""
    registry = StepRegistry()
    registry.given('a calculator')(print)

    registry.add_library(colors)

    assert [step.source for step in registry.steps] == ['a calculator', 'the color is {color}']
    assert 'color' in registry.parameter_types
    assert len(registry.hooks[HookKind.BEFORE_CASE]) == 1
    assert registry.find_match('the color is blue', StepKind.GIVEN).values == ['BLUE']


def test_as_library() -> None:
    """Export custom definitions without the built-in types."""
    registry = StepRegistry()
    registry.add_library(colors)

    library = registry.as_library('exported')

    assert library.name == 'exported'
    assert [item.name for item in library.parameter_types] == ['color']
    assert len(library.steps) == 1
    assert len(library.hooks) == 1


def test_undefined() -> None:
    """Describe undefined steps with a snippet and suggestions."""
    registry = StepRegistry()
    registry.when('I add {int} and {int}')(print)

    step = StepSpec(keyword=Keyword.WHEN, kind=StepKind.WHEN, text='I ad 2 and 3')
    error = registry.undefined(step)

    assert error.suggestions[0] == 'I add {int} and {int}'
    assert error.snippet.startswith("@registry.when('I ad {int} and {int}')")
    assert str(error).startswith('Step is not defined: When I ad 2 and 3')


def test_entrypoint_loading(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Load step libraries from entry points."""
    patch_entrypoints(colors)

    registry = StepRegistry(auto_load=True)

    assert registry.find_match('the color is red', StepKind.GIVEN).values == ['RED']


def test_loading_with_empty_library(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Accept libraries providing no definitions."""
    patch_entrypoints(StepLibrary(name='empty'))

    registry = StepRegistry(auto_load=True)

    assert registry.steps == []


def test_loading_skip_with_failed_entrypoint(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Verify skipping of libraries that fail during loading."""
    patch_entrypoints(None, raises=SyntaxError)

    with pytest.warns(LibraryWarning, match=r'^Failed to load entrypoint'):
        StepRegistry(auto_load=True)


def test_loading_fail_with_failed_entrypoint(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Verify failing of libraries that fail during loading with strict mode."""
    patch_entrypoints(None, raises=SyntaxError)

    with pytest.raises(LibraryError, match=r'^Failed to load entrypoint'):
        StepRegistry(strict=True, auto_load=True)


@pytest.mark.parametrize('strict', (True, False))
def test_loading_with_not_valid_entrypoint(strict: bool,
                                           patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Verify handling of libraries failing validation while loading."""
    try:
        pydantic.TypeAdapter(int).validate_python('error')
    except pydantic.ValidationError as exception:
        error = exception

    patch_entrypoints(None, raises=error)

    if strict:
        with pytest.raises(LibraryError, match=r'^Failed to validate entrypoint'):
            StepRegistry(strict=True, auto_load=True)
    else:
        with pytest.warns(LibraryWarning, match=r'^Failed to validate entrypoint'):
            StepRegistry(auto_load=True)


@pytest.mark.parametrize('strict', (True, False))
def test_loading_with_invalid_provider(strict: bool,
                                       patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Verify handling of entry points that are not step libraries."""
    patch_entrypoints({})

    if strict:
        with pytest.raises(LibraryError, match=r'object is not a step library$'):
            StepRegistry(strict=True, auto_load=True)
    else:
        with pytest.warns(LibraryWarning, match=r'object is not a step library$'):
            StepRegistry(auto_load=True)
