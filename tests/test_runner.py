"""Tests for the run entry points."""

import logging
from typing import TYPE_CHECKING

import pytest

from cuke_runner import Formatter, RunFailed, RunOptions, Runner, StepRegistry
from cuke_runner.errors import ConfigurationError, LibraryError
from cuke_runner.runtime import raise_for_result
from cuke_runner.schema import Feature, RunSummary, Status
from tests.examples.features import CALCULATOR_BROKEN, CALCULATOR_YAML, OUTLINE

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem

if TYPE_CHECKING:
    from tests.examples.formatters import Recorder


def test_calculator(registry: StepRegistry, calculator: Feature) -> None:
    """Run a passing feature end to end."""
    result = Runner(registry, RunOptions()).run([calculator])

    assert result.summary.total == 1
    assert result.summary.passed == 1
    assert result.summary.failed == 0
    assert result.summary.steps.passed == 3
    assert result.is_clean

    feature, = result.features
    assert feature.name == 'Calculator'
    assert feature.uri == 'features/calculator.yaml'
    assert feature.status == Status.PASSED


def test_broken_calculator(registry: StepRegistry) -> None:
    """Raise an aggregate failure naming the failed scenario."""
    runner = Runner(registry, RunOptions())
    feature = Feature.model_validate(CALCULATOR_BROKEN)

    result = runner.run([feature])

    assert result.summary.failed == 1
    assert not result.is_clean

    with pytest.raises(RunFailed, match=r'^1 scenario did not pass') as error:
        runner.run_or_fail([feature])

    assert 'Add two numbers' in str(error.value)
    assert 'expected 6, got 5' in str(error.value)
    assert 'in "features/calculator.yaml", line 4' in str(error.value)
    assert len(error.value.failures) == 1


def test_raise_for_clean_result(registry: StepRegistry, calculator: Feature) -> None:
    """Return clean results unchanged."""
    result = Runner(registry, RunOptions()).run([calculator])

    assert raise_for_result(result) is result


def test_outline(registry: StepRegistry) -> None:
    """Run every generated scenario of an outline."""
    result = Runner(registry, RunOptions()).run([Feature.model_validate(OUTLINE)])

    assert result.summary.total == 3
    assert result.summary.passed == 3


@pytest.mark.parametrize('options, expected', (
    pytest.param({'tags': '@small'}, ['Add 1 and 2 (a=1, b=2, sum=3)', 'Add 2 and 2 (a=2, b=2, sum=4)'], id='tags'),
    pytest.param({'tags': '@outline and not @small'}, ['Add 100 and 200 (a=100, b=200, sum=300)'], id='negation'),
    pytest.param({'name': '2 and 2'}, ['Add 2 and 2 (a=2, b=2, sum=4)'], id='name'),
    pytest.param({'tags': '@missing'}, [], id='nothing'),
))
def test_selection(registry: StepRegistry, options: dict[str, str], expected: list[str]) -> None:
    """Select scenarios by tag expression and name."""
    result = Runner(registry, RunOptions(**options)).run([Feature.model_validate(OUTLINE)])

    assert [item.scenario.name for item in result.scenarios] == expected
    assert result.summary.total == len(expected)


def test_registry_is_locked(registry: StepRegistry) -> None:
    """Lock the registry when the runner is created."""
    Runner(registry, RunOptions())

    assert registry.locked


def test_invalid_pattern() -> None:
    """Surface pattern errors before any scenario runs."""
    registry = StepRegistry()
    registry.given('the color is {color}')(print)

    with pytest.raises(LibraryError, match=r"^Undefined parameter type 'color'"):
        Runner(registry, RunOptions())


def test_run_hooks(registry: StepRegistry, calculator: Feature) -> None:
    """Call run hooks with the selected scenarios and the summary."""
    received = []

    @registry.before_run
    def before(scenarios: tuple) -> None:
        received.append([item.name for item in scenarios])

    @registry.after_run
    def after(summary: RunSummary) -> None:
        received.append(summary.passed)

    Runner(registry, RunOptions()).run([calculator])

    assert received == [['Add two numbers'], 1]


def test_before_run_failure(registry: StepRegistry, calculator: Feature) -> None:
    """Fail every scenario without running it when a before-run hook fails."""
    invoked = []

    @registry.before_run
    def broken(scenarios: tuple) -> None:
        raise RuntimeError('environment is not ready')

    @registry.before_case
    def never(world: object, scenario: object) -> None:
        invoked.append('before_case')

    @registry.after_run
    def after(summary: RunSummary) -> None:
        invoked.append('after_run')

    result = Runner(registry, RunOptions()).run([calculator, Feature.model_validate(OUTLINE)])

    assert invoked == ['after_run']
    assert result.summary.failed == 4
    assert {step.reason for item in result.scenarios for step in item.steps} == {'before run hook failed'}
    assert 'environment is not ready' in result.errors[0].message

    with pytest.raises(RunFailed, match=r'environment is not ready'):
        raise_for_result(result)


def test_after_run_failure(registry: StepRegistry, calculator: Feature) -> None:
    """Report after-run failures on the run result."""
    @registry.after_run
    def broken(summary: RunSummary) -> None:
        raise RuntimeError('report upload failed')

    result = Runner(registry, RunOptions()).run([calculator])

    assert result.summary.passed == 1
    assert not result.is_clean
    assert 'report upload failed' in result.errors[0].message

    with pytest.raises(RunFailed, match=r'(?m)^1 run hook failed$'):
        raise_for_result(result)


def test_before_run_failure_message(registry: StepRegistry, calculator: Feature) -> None:
    """Lead the aggregate failure with the run hook that caused it."""
    @registry.before_run
    def broken(scenarios: tuple) -> None:
        raise RuntimeError('environment is not ready')

    result = Runner(registry, RunOptions()).run([calculator])

    with pytest.raises(RunFailed, match=r'^1 run hook failed, 1 scenario did not pass') as error:
        raise_for_result(result)

    assert len(error.value.hook_errors) == 1
    assert len(error.value.failures) == 1


def test_dry_run_skips_run_hooks(registry: StepRegistry, calculator: Feature) -> None:
    """Do not call run hooks in dry-run mode."""
    invoked = []

    @registry.before_run
    def before(scenarios: tuple) -> None:
        invoked.append('before_run')

    result = Runner(registry, RunOptions(dry_run=True)).run([calculator])

    assert invoked == []
    assert result.summary.skipped == 1


def test_event_order(registry: StepRegistry, calculator: Feature, recorder: 'Recorder') -> None:
    """Deliver events in chronological order."""
    Runner(registry, RunOptions(formatters=(recorder,))).run([calculator])

    assert recorder.names() == [
        'run_start',
        'feature_start',
        'scenario_start',
        'step_finish',
        'step_finish',
        'step_finish',
        'scenario_finish',
        'feature_finish',
        'run_finish',
    ]

    started, = recorder.of('run_start')
    assert started.total == 1
    assert not started.parallel

    feature, = recorder.of('feature_finish')
    assert feature.name == 'Calculator'
    assert len(feature.scenarios) == 1


def test_feature_events(registry: StepRegistry, calculator: Feature, recorder: 'Recorder') -> None:
    """Finish a feature before the next one starts in sequential mode."""
    Runner(registry, RunOptions(formatters=(recorder,))).run([
        calculator,
        Feature.model_validate(OUTLINE),
    ])

    features = [
        (name, payload.name)
        for name, payload in recorder.events
        if name in ('feature_start', 'feature_finish')
    ]

    assert features == [
        ('feature_start', 'Calculator'),
        ('feature_finish', 'Calculator'),
        ('feature_start', 'Outlines'),
        ('feature_finish', 'Outlines'),
    ]


@pytest.mark.parametrize('parallel', (False, True), ids=('sequential', 'parallel'))
def test_features_sharing_a_name(registry: StepRegistry, recorder: 'Recorder',
                                 make_feature: 'Callable[..., Feature]', parallel: bool) -> None:
    """Report features with the same name apart, in source order."""
    login = make_feature(['Given a calculator'], name='Login', uri=None)
    cart = make_feature(['Given a calculator', 'When I add 1 and 2'], name='Cart', uri=None)
    again = make_feature(['Given a calculator'] * 3, name='Login', uri=None)
    options = RunOptions(parallel=parallel, formatters=(recorder,))

    result = Runner(registry, options).run([login, cart, again])

    assert [feature.name for feature in result.features] == ['Login', 'Cart', 'Login']
    assert [
        len(scenario.steps)
        for scenario in result.scenarios
    ] == [1, 2, 3]
    assert recorder.names().count('feature_start') == 3
    assert recorder.names().count('feature_finish') == 3


def test_parallel_feature_events(registry: StepRegistry, recorder: 'Recorder') -> None:
    """Start every feature before its first scenario in parallel mode."""
    options = RunOptions(parallel=True, max_concurrent=4, formatters=(recorder,))

    Runner(registry, options).run([Feature.model_validate(OUTLINE)])

    names = recorder.names()
    assert names.index('feature_start') < names.index('scenario_start')
    assert names.index('feature_finish') > max(
        position
        for position, name in enumerate(names)
        if name == 'scenario_finish'
    )
    assert names.count('feature_start') == 1


def test_failing_formatter(registry: StepRegistry, calculator: Feature,
                           recorder: 'Recorder', caplog: pytest.LogCaptureFixture) -> None:
    """Log formatter errors without affecting the run."""
    class Broken(Formatter):
        def on_step_finish(self, event: object) -> None:
            raise RuntimeError('disk full')

    options = RunOptions(formatters=(Broken(), recorder))

    with caplog.at_level(logging.ERROR, logger='cuke_runner.runtime.events'):
        result = Runner(registry, options).run([calculator])

    assert result.is_clean
    assert recorder.names().count('step_finish') == 3
    assert 'Formatter Broken failed on on_step_finish' in caplog.text


def test_async_formatter(registry: StepRegistry, calculator: Feature) -> None:
    """Await coroutine formatter callbacks."""
    statuses = []

    class Async(Formatter):
        async def on_scenario_finish(self, result: object) -> None:
            statuses.append(result.status)

    Runner(registry, RunOptions(formatters=(Async(),))).run([calculator])

    assert statuses == [Status.PASSED]


def test_run_files(registry: StepRegistry, fs: 'FakeFilesystem') -> None:
    """Load feature files from a directory and run them."""
    fs.create_file('features/calculator.yaml', contents=CALCULATOR_YAML)

    result = Runner(registry, RunOptions()).run_files(['features'])

    assert result.summary.passed == 1
    assert result.scenarios[0].scenario.location.line == 4
    assert result.scenarios[0].scenario.id == 'features/calculator.yaml:4'


def test_run_files_failure_location(registry: StepRegistry, fs: 'FakeFilesystem') -> None:
    """Point failures of shorthand steps at their line in the source."""
    content = CALCULATOR_YAML.replace('result should be 5', 'result should be 6')
    fs.create_file('features/calculator.yaml', contents=content)

    result = Runner(registry, RunOptions()).run_files(['features/calculator.yaml'])

    step = result.scenarios[0].steps[2]
    assert step.status == Status.FAILED
    assert step.step.location.line == 8
    assert 'in "features/calculator.yaml", line 8' in step.error


def test_run_files_with_broken_source(registry: StepRegistry, fs: 'FakeFilesystem') -> None:
    """Run valid sources and report the malformed ones."""
    fs.create_file('features/calculator.yaml', contents=CALCULATOR_YAML)
    fs.create_file('features/broken.yaml', contents='name: [unclosed\n')
    runner = Runner(registry, RunOptions())

    result = runner.run_files(['features'])

    assert result.summary.passed == 1
    assert len(result.parse_errors) == 1
    assert not result.is_clean

    with pytest.raises(RunFailed, match=r'(?m)^1 source could not be loaded$') as error:
        runner.run_files(['features'], fail=True)

    assert 'broken.yaml' in str(error.value)


def test_environment_options(registry: StepRegistry, calculator: Feature,
                             monkeypatch: pytest.MonkeyPatch) -> None:
    """Read options from the environment when none are given."""
    monkeypatch.setenv('CUKE_TAGS', 'not @math')

    result = Runner(registry).run([calculator])

    assert result.summary.total == 0


def test_invalid_environment_options(registry: StepRegistry,
                                     monkeypatch: pytest.MonkeyPatch) -> None:
    """Report malformed environment options as a configuration error."""
    monkeypatch.setenv('CUKE_TAGS', '@math and')

    with pytest.raises(ConfigurationError, match=r'^Invalid run options'):
        Runner(registry)


def test_empty_run(registry: StepRegistry, recorder: 'Recorder', make_feature: 'Callable[..., Feature]') -> None:
    """Complete a run without scenarios."""
    result = Runner(registry, RunOptions(formatters=(recorder,))).run([make_feature()])

    assert result.summary.total == 0
    assert result.is_clean
    assert recorder.names() == ['run_start', 'run_finish']
