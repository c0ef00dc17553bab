"""Tests for expanding feature trees into concrete scenarios."""

import pytest
from pydantic import ValidationError

from cuke_runner.core import expand_feature, expand_features
from cuke_runner.core.outline import row_name, substitute
from cuke_runner.names import Keyword, StepKind
from cuke_runner.schema import Feature
from tests.examples.features import CALCULATOR, OUTLINE


def test_plain_scenario() -> None:
    """Expand a plain scenario into a single spec."""
    specs = expand_feature(Feature.model_validate(CALCULATOR))

    assert len(specs) == 1

    spec, = specs
    assert spec.id == 'features/calculator.yaml:4'
    assert spec.name == 'Add two numbers'
    assert spec.feature == 'Calculator'
    assert spec.tags == {'@math'}
    assert spec.outline is None
    assert [step.label for step in spec.steps] == [
        'Given a calculator',
        'When I add 2 and 3',
        'Then the result should be 5',
    ]


def test_outline_rows() -> None:
    """Produce one scenario per examples row with placeholders substituted."""
    specs = expand_feature(Feature.model_validate(OUTLINE))

    assert [spec.name for spec in specs] == [
        'Add 1 and 2 (a=1, b=2, sum=3)',
        'Add 2 and 2 (a=2, b=2, sum=4)',
        'Add 100 and 200 (a=100, b=200, sum=300)',
    ]
    assert [spec.id for spec in specs] == [
        'features/outline.yaml:7#1',
        'features/outline.yaml:7#2',
        'features/outline.yaml:7#3',
    ]

    for spec in specs:
        assert spec.outline == 'Add <a> and <b>'
        assert all('<' not in step.text for step in spec.steps)

    assert specs[2].row == (('a', '100'), ('b', '200'), ('sum', '300'))
    assert [step.text for step in specs[2].steps] == [
        'a calculator',
        'I add 100 and 200',
        'the result should be 300',
    ]


def test_examples_tags_do_not_leak() -> None:
    """Apply examples tags only to the rows of their own block."""
    small, _, large = expand_feature(Feature.model_validate(OUTLINE))

    assert small.tags == {'@feature', '@outline', '@small'}
    assert large.tags == {'@feature', '@outline', '@large'}


def test_background_is_prepended() -> None:
    """Prepend background steps to every generated scenario."""
    specs = expand_feature(Feature.model_validate(OUTLINE))

    for spec in specs:
        first, *rest = spec.steps
        assert first.background
        assert first.text == 'a calculator'
        assert not any(step.background for step in rest)


def test_rules() -> None:
    """Expand rule scenarios after feature scenarios with both backgrounds."""
    feature = Feature.model_validate({
        'name': 'Rules',
        'tags': ['@feature'],
        'background': {'steps': ['Given the feature background']},
        'scenarios': [
            {'name': 'Direct', 'steps': ['Then it runs first']},
        ],
        'rules': [
            {
                'name': 'A rule',
                'tags': ['@rule'],
                'background': {'steps': ['And the rule background']},
                'scenarios': [
                    {'name': 'Ruled', 'tags': ['scenario'], 'steps': ['Then it runs second']},
                ],
            },
        ],
    })

    direct, ruled = expand_feature(feature)

    assert direct.rule is None
    assert direct.tags == {'@feature'}
    assert [step.text for step in direct.steps] == [
        'the feature background',
        'it runs first',
    ]

    assert ruled.rule == 'A rule'
    assert ruled.tags == {'@feature', '@rule', '@scenario'}
    assert [(step.text, step.kind) for step in ruled.steps] == [
        ('the feature background', StepKind.GIVEN),
        ('the rule background', StepKind.GIVEN),
        ('it runs second', StepKind.THEN),
    ]


def test_conjunction_kinds() -> None:
    """Give And, But and star steps the kind of the preceding primary keyword."""
    feature = Feature.model_validate({
        'name': 'Kinds',
        'scenarios': [
            {
                'name': 'Conjunctions',
                'steps': [
                    'And a leading conjunction',
                    'Given a context',
                    'And more context',
                    'When an action',
                    'But another action',
                    '* a starred action',
                    'Then an outcome',
                ],
            },
        ],
    })

    spec, = expand_feature(feature)

    assert [step.kind for step in spec.steps] == [
        StepKind.ANY,
        StepKind.GIVEN,
        StepKind.GIVEN,
        StepKind.WHEN,
        StepKind.WHEN,
        StepKind.WHEN,
        StepKind.THEN,
    ]
    assert spec.steps[5].keyword == Keyword.STAR
    assert spec.steps[4].label == 'But another action'


def test_arguments_are_substituted() -> None:
    """Substitute placeholders in tables and doc strings."""
    feature = Feature.model_validate({
        'name': 'Arguments',
        'scenarios': [
            {
                'name': 'Users',
                'steps': [
                    {
                        'keyword': 'Given',
                        'text': 'the users',
                        'table': [['name', 'age'], ['<name>', '<age>']],
                    },
                    {
                        'keyword': 'Then',
                        'text': 'the greeting is',
                        'doc_string': 'Hello, <name>! <unknown>',
                    },
                ],
                'examples': [
                    {'header': ['name', 'age'], 'rows': [['Alice', 30]]},
                ],
            },
        ],
    })

    spec, = expand_feature(feature)
    table, greeting = spec.steps

    assert table.argument == (('name', 'age'), ('Alice', '30'))
    assert greeting.argument == 'Hello, Alice! <unknown>'


def test_outline_without_rows() -> None:
    """Produce no scenarios for an outline with empty examples."""
    feature = Feature.model_validate({
        'name': 'Empty',
        'scenarios': [
            {
                'name': 'Nothing <x>',
                'steps': ['Given <x>'],
                'examples': [{'header': ['x'], 'rows': []}],
            },
        ],
    })

    assert expand_feature(feature) == []


def test_row_width_mismatch() -> None:
    """Reject examples rows with a wrong number of cells."""
    with pytest.raises(ValidationError, match=r'row 2 has 1 cells, expected 2'):
        Feature.model_validate({
            'name': 'Broken',
            'scenarios': [
                {
                    'name': 'Outline',
                    'steps': ['Given <a> and <b>'],
                    'examples': [{'header': ['a', 'b'], 'rows': [[1, 2], [3]]}],
                },
            ],
        })


def test_expansion_is_deterministic() -> None:
    """Yield equal specs in equal order for equal input."""
    features = [Feature.model_validate(CALCULATOR), Feature.model_validate(OUTLINE)]

    first = expand_features(features)
    second = expand_features(features)

    assert first == second
    assert [spec.feature for spec in first] == ['Calculator', 'Outlines', 'Outlines', 'Outlines']


def test_feature_positions() -> None:
    """Number features in input order, even when the same feature repeats."""
    calculator = Feature.model_validate(CALCULATOR)

    specs = expand_features([calculator, Feature.model_validate(OUTLINE), calculator])

    assert [spec.feature_index for spec in specs] == [0, 1, 1, 1, 2]
    assert expand_feature(calculator)[0].feature_index == 0


@pytest.mark.parametrize('text, values, expected', (
    pytest.param('<a> + <b>', {'a': '1', 'b': '2'}, '1 + 2', id='all'),
    pytest.param('<a> + <c>', {'a': '1'}, '1 + <c>', id='unknown kept'),
    pytest.param('no placeholders', {'a': '1'}, 'no placeholders', id='none'),
    pytest.param('<a>', {}, '<a>', id='no values'),
))
def test_substitute(text: str, values: dict[str, str], expected: str) -> None:
    """Replace placeholders that have a matching column."""
    assert substitute(text, values) == expected


def test_row_name() -> None:
    """Suffix generated names with the row columns."""
    assert row_name('Pay <amount>', {'amount': '5'}) == 'Pay 5 (amount=5)'
    assert row_name('Plain', {}) == 'Plain'
