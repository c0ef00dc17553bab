"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING

import pytest

from cuke_runner.schema import Feature
from tests.examples.features import CALCULATOR
from tests.examples.formatters import Recorder
from tests.examples.steps import calculator_registry

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from cuke_runner import StepRegistry
    from cuke_runner.extensions import StepLibrary


@pytest.fixture
def registry() -> 'StepRegistry':
    """Provide a fresh registry with the calculator steps."""
    return calculator_registry()


@pytest.fixture
def calculator() -> Feature:
    """Provide the passing calculator feature."""
    return Feature.model_validate(CALCULATOR)


@pytest.fixture
def recorder() -> Recorder:
    """Provide a formatter recording every event."""
    return Recorder()


@pytest.fixture
def make_feature() -> 'Callable[..., Feature]':
    """Provide a factory building single-feature documents from step lists.

    Each positional argument is one scenario, given as a list of shorthand
    steps. Keyword arguments are merged into the feature document.
    """
    def make(*scenarios: list[str], tags: 'list[list[str]] | None' = None,
             **document: object) -> Feature:
        tags = tags or [[] for _ in scenarios]

        return Feature.model_validate({
            'name': 'Feature',
            'uri': 'features/test.yaml',
            **document,
            'scenarios': [
                {
                    'name': f'Scenario {position + 1}',
                    'line': position + 1,
                    'tags': scenario_tags,
                    'steps': steps,
                }
                for position, (steps, scenario_tags) in enumerate(zip(scenarios, tags, strict=True))
            ],
        })

    return make


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of step libraries in the `cuke_libraries` entry point group.

    The returned factory allows configuring:
    - successfully loadable libraries,
    - or an exception raised during library loading,
    - or an empty entry point list.
    """
    def patch(*libraries: 'StepLibrary | object', raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled library configuration.

        Args:
            libraries: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.

        Returns:
            A mock patch object replacing `importlib.metadata.entry_points`
            for the duration of the test.
        """
        entrypoints = []
        for library in libraries:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'cuke_libraries'
            ep.name = 'tests'
            ep.value = 'tests.examples.libraries:colors'
            ep.load.return_value = library
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch
