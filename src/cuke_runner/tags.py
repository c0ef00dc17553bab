"""Boolean tag expressions.

A tag expression selects scenarios by their effective tag set. The
grammar supports tag literals (`@name`), `not` (highest precedence),
`and`, `or` (lowest precedence) and parenthesized grouping::

    @smoke and not (@slow or @flaky)

An empty expression matches every scenario. Malformed expressions are
rejected with `TagExpressionError` when the expression is parsed, never
while scenarios are being evaluated.
"""

from re import compile as regexp
from typing import TYPE_CHECKING

from cuke_runner.errors import TagExpressionError

if TYPE_CHECKING:
    from collections.abc import Set

_TOKEN_PATTERN = regexp(r'\s*(?:(?P<open>\()|(?P<close>\))|(?P<word>[^\s()]+))')
_LITERAL_PATTERN = regexp(r'^@[^\s()@]+$')

OPERATORS = frozenset(('and', 'or', 'not'))


class Node:
    """Base node of a parsed tag expression."""

    __slots__ = ()

    def evaluate(self, tags: 'Set[str]') -> bool:
        """Evaluate the node against a tag set."""
        raise NotImplementedError


class Always(Node):
    """Node of an empty expression; matches everything."""

    __slots__ = ()

    def evaluate(self, tags: 'Set[str]') -> bool:  # noqa: ARG002
        return True

    def __str__(self) -> str:
        return 'true'


class Literal(Node):
    """A single tag literal."""

    __slots__ = ('name',)

    def __init__(self, name: str) -> None:
        self.name = name

    def evaluate(self, tags: 'Set[str]') -> bool:
        return self.name in tags

    def __str__(self) -> str:
        return self.name


class Not(Node):
    __slots__ = ('operand',)

    def __init__(self, operand: Node) -> None:
        self.operand = operand

    def evaluate(self, tags: 'Set[str]') -> bool:
        return not self.operand.evaluate(tags)

    def __str__(self) -> str:
        return f'not ( {self.operand} )'


class And(Node):
    __slots__ = ('left', 'right')

    def __init__(self, left: Node, right: Node) -> None:
        self.left = left
        self.right = right

    def evaluate(self, tags: 'Set[str]') -> bool:
        return self.left.evaluate(tags) and self.right.evaluate(tags)

    def __str__(self) -> str:
        return f'( {self.left} and {self.right} )'


class Or(Node):
    __slots__ = ('left', 'right')

    def __init__(self, left: Node, right: Node) -> None:
        self.left = left
        self.right = right

    def evaluate(self, tags: 'Set[str]') -> bool:
        return self.left.evaluate(tags) or self.right.evaluate(tags)

    def __str__(self) -> str:
        return f'( {self.left} or {self.right} )'


class _Parser:
    """Recursive descent parser over a token list."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = self.tokenize(expression)
        self.position = 0

    def tokenize(self, expression: str) -> list[tuple[str, int]]:
        """Split an expression into `(token, offset)` pairs.

        Raises:
            TagExpressionError: If a word is neither an operator nor a tag.
        """
        tokens = []
        for item in _TOKEN_PATTERN.finditer(expression):
            token = item.group('open') or item.group('close') or item.group('word')
            if not token:
                continue
            offset = item.start(item.lastgroup or 0)
            if item.group('word') and token not in OPERATORS and not _LITERAL_PATTERN.match(token):
                raise TagExpressionError(
                    f'Unknown token {token!r}',
                    expression=expression,
                    position=offset,
                )
            tokens.append((token, offset))

        return tokens

    def peek(self) -> str | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position][0]
        return None

    def take(self) -> tuple[str, int]:
        token = self.tokens[self.position]
        self.position += 1
        return token

    def fail(self, message: str) -> TagExpressionError:
        position = len(self.expression)
        if self.position < len(self.tokens):
            position = self.tokens[self.position][1]
        return TagExpressionError(message, expression=self.expression, position=position)

    def parse(self) -> Node:
        if not self.tokens:
            return Always()

        node = self.parse_or()
        if self.peek() is not None:
            raise self.fail(f'Unexpected token {self.peek()!r}')

        return node

    def parse_or(self) -> Node:
        node = self.parse_and()
        while self.peek() == 'or':
            self.take()
            node = Or(node, self.parse_and())
        return node

    def parse_and(self) -> Node:
        node = self.parse_not()
        while self.peek() == 'and':
            self.take()
            node = And(node, self.parse_not())
        return node

    def parse_not(self) -> Node:
        if self.peek() == 'not':
            self.take()
            return Not(self.parse_not())
        return self.parse_primary()

    def parse_primary(self) -> Node:
        token = self.peek()
        if token is None:
            raise self.fail('Missing operand')

        if token == '(':
            self.take()
            node = self.parse_or()
            if self.peek() != ')':
                raise self.fail('Unbalanced parentheses')
            self.take()
            return node

        if token == ')' or token in OPERATORS:
            raise self.fail(f'Unexpected token {token!r}')

        self.take()
        return Literal(token)


class TagExpression:
    """Parsed, reusable tag expression.

    Instances are cheap to evaluate and are stateless per call, so they
    can be shared between concurrently running scenarios.
    """

    __slots__ = ('root', 'source')

    def __init__(self, source: str, root: Node) -> None:
        self.source = source
        self.root = root

    @classmethod
    def parse(cls, expression: str | None) -> 'TagExpression':
        """Parse an expression string.

        Args:
            expression: Expression text; `None` or blank means "match all".

        Returns:
            Parsed tag expression.

        Raises:
            TagExpressionError: If the expression is malformed.
        """
        source = (expression or '').strip()

        return cls(source, _Parser(source).parse())

    @property
    def is_empty(self) -> bool:
        """Whether the expression matches every tag set."""
        return isinstance(self.root, Always)

    def evaluate(self, tags: 'Set[str]') -> bool:
        """Evaluate the expression against an effective tag set."""
        return self.root.evaluate(tags)

    def __call__(self, tags: 'Set[str]') -> bool:
        return self.evaluate(tags)

    def __str__(self) -> str:
        return str(self.root)

    def __repr__(self) -> str:
        return f'TagExpression({self.source!r})'
