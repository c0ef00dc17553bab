"""Core exception hierarchy.

This module defines base error and warning types used across the library
to report step library loading issues, configuration and document
failures, and runtime execution errors in a structured and extensible way.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from importlib.metadata import EntryPoint
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ValidationError

if TYPE_CHECKING:
    from cuke_runner.schema.results import HookError, ScenarioResult

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_FILENAME = '<unknown source>'
FORMAT_INDENT = 4

SCALARS = (str, bytes, int, float, bool)
MAPPINGS = (dict,)
SEQUENCES = (list, tuple, set, frozenset)


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Name of the source document where the error occurred.
    filename: str | None

    #: Line number in the source document (zero-based).
    line_num: int | None
    #: Column number in the source document (zero-based).
    column_num: int | None

    #: Name of the scenario being executed.
    scenario: str | None
    #: Position of the step within the scenario (zero-based).
    step_num: int | None
    #: Zero-based attempt index.
    attempt: int | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Element (step, hook, document fragment) associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting engine errors.

    This formatter is responsible for producing human-readable
    error messages with optional source location and YAML-based
    contextual snippets.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message.rstrip()

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format source and execution location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string including filename, line,
            column, scenario, step and attempt numbers when available.
        """
        indent = cls._ensure_indent(indent)

        filename = context.get('filename')
        if not filename:
            filename = FORMAT_FILENAME

        message = f'{indent}in "{filename}"'
        if (line_num := context.get('line_num')) is not None:
            line_num += 1
            message += f', line {line_num}'
            if (column_num := context.get('column_num')) is not None:
                column_num += 1
                message += f', column {column_num}'
        message += linesep

        if scenario := context.get('scenario'):
            message += f'{indent}on scenario "{scenario}"'
            if (step_num := context.get('step_num')) is not None:
                step_num += 1
                message += f', step {step_num}'
            if attempt := context.get('attempt'):
                attempt += 1
                message += f', attempt {attempt}'
            message += linesep

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing element or exception data.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            snippet = error.problem_mark.get_snippet(indent=0) if error.problem_mark else None
            return cls._make_indent(snippet or '', indent)

        if element := context.get('element'):
            snippet = f'{indent}{SNIPPET_ELLIPSIS}'
            snippet += cls._make_yaml(element, indent)
            return snippet + linesep

        return ''

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Args:
            value: Arbitrary value to sanitize.

        Returns:
            A YAML-safe representation of the value.
        """
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                str(key): cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [cls._filter_unsafe(item) for item in value]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a value to an indented YAML string."""
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
            allow_unicode=True,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string, dropping blank lines."""
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input to a string prefix."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class LibraryWarning(UserWarning):
    """Warning emitted for non-fatal step library issues.

    Used when a step library can not be loaded or shadows an existing
    parameter type, but the issue does not prevent further execution
    (relaxed mode).
    """


class CucumberError(Exception, ErrorFormatter):
    """Base exception for all cuke-runner errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional location values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)


class LibraryError(CucumberError):
    """Error raised for fatal step library failures.

    Raised when a library entry point is invalid or fails to load in
    strict mode, or when the registry is modified after it was locked.
    """

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a library error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class ConfigurationError(CucumberError, ValueError):
    """Error raised for malformed run configuration.

    Configuration errors are fatal and raised at construction time,
    before any scenario runs.
    """

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError') -> 'Self':
        """Create a configuration error from a settings validation failure.

        Args:
            error: ValidationError raised by Pydantic.

        Returns:
            ConfigurationError listing every invalid option.
        """
        problems = [
            f'{'.'.join(str(part) for part in item['loc']) or 'options'}: {item['msg']}'
            for item in error.errors(include_url=False, include_input=False)
        ]

        message = 'Invalid run options'
        for problem in problems:
            message += f'{linesep}{' ' * FORMAT_INDENT}{problem}'

        return cls(message)


class TagExpressionError(ConfigurationError):
    """Error raised when a tag expression can not be parsed."""

    def __init__(self, message: str, *, expression: str,
                 position: int | None = None) -> None:
        """Initialize a tag expression error.

        Args:
            message: Description of the syntax problem.
            expression: Full expression text.
            position: Character offset of the offending token.
        """
        self.expression = expression
        self.position = position

        text = f'{message} in tag expression {expression!r}'
        if position is not None:
            text += f' at position {position}'

        super().__init__(text)


class ParseError(CucumberError):
    """Error raised when a scenario document is malformed.

    Parse errors are fatal for the affected source only and are reported
    per file without aborting other sources.
    """

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError,
                        filename: str | None = None) -> 'Self':
        """Create a parse error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.
            filename: Name of the source file, if known.

        Returns:
            ParseError with the YAML problem location.
        """
        mark = error.problem_mark
        error_context = ErrorContext(
            filename=filename or (mark.name if mark else None),
            line_num=mark.line if mark else None,
            column_num=mark.column if mark else None,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None) -> 'Self':
        """Create a parse error from a document validation failure.

        The first validation issue is reported together with the
        document fragment it points to.

        Args:
            error: ValidationError raised by Pydantic.
            data: Raw document data.
            filename: Name of the source file.

        Returns:
            ParseError representing the validation failure.
        """
        error_context = ErrorContext(filename=filename, error=error)

        for item in error.errors(include_url=False, include_input=False):
            location = '.'.join(str(part) for part in item['loc'])
            message = f'Invalid document: {item['msg']}'
            if location:
                message += f' at {location!r}'
            return cls(message, context=ErrorContext({
                **error_context,
                'element': cls._locate(data, item['loc']),
            }))

        return cls('Invalid document', context=error_context)

    @staticmethod
    def _locate(value: Any, path: 'Sequence[int | str]') -> Any:  # noqa: ANN401
        """Walk an error location path and return the innermost container."""
        container = value
        for key in path:
            if isinstance(container, dict) and key in container:
                item = container[key]
            elif isinstance(container, list) and isinstance(key, int) and 0 <= key < len(container):
                item = container[key]
            else:
                break
            if not isinstance(item, (dict, list)):
                break
            container = item

        return container


class PendingStep(CucumberError):
    """Raised by a step handler to declare itself not implemented yet.

    A pending step is a distinct outcome: it is not a failure and never
    triggers a retry.
    """

    def __init__(self, message: str = 'Step is not implemented yet', *,
                 context: ErrorContext | None = None) -> None:
        """Initialize a pending marker."""
        super().__init__(message, context=context)


class UndefinedStep(CucumberError):
    """Outcome of a step that no registered step definition matches.

    Carries a generated definition snippet and the nearest registered
    patterns as suggestions.
    """

    def __init__(self, text: str, *, snippet: str,
                 suggestions: 'Sequence[str]' = (),
                 context: ErrorContext | None = None) -> None:
        """Initialize an undefined step error.

        Args:
            text: Step text with its keyword.
            snippet: Generated step definition source.
            suggestions: Nearest registered patterns.
            context: Error context with location values.
        """
        self.text = text
        self.snippet = snippet
        self.suggestions = tuple(suggestions)

        message = f'Step is not defined: {text}'
        if self.suggestions:
            message += f'{linesep}{' ' * FORMAT_INDENT}did you mean: '
            message += ', '.join(repr(item) for item in self.suggestions)

        super().__init__(message, context=context)


class StepFailed(CucumberError):
    """A step handler raised during execution."""

    @classmethod
    def from_exception(cls, error: BaseException, *,
                       context: ErrorContext | None = None) -> 'Self':
        """Wrap a handler exception with step location context.

        Args:
            error: Exception raised by the handler.
            context: Error context with location values.

        Returns:
            StepFailed describing the failure.
        """
        message = 'Step failed'
        if details := str(error):
            message += f': {details}'
        else:
            message += f': {error!r}'

        return cls(message, context=context)


class HookFailed(CucumberError):
    """A lifecycle hook raised during execution."""

    def __init__(self, message: str, *, hook: str,
                 context: ErrorContext | None = None) -> None:
        """Initialize a hook failure.

        Args:
            message: Human-readable error description.
            hook: Qualified name of the failed hook.
            context: Error context with location values.
        """
        self.hook = hook

        super().__init__(message, context=context)

    @classmethod
    def from_exception(cls, error: BaseException, *, hook: str,
                       context: ErrorContext | None = None) -> 'Self':
        """Wrap a hook exception with its qualified name."""
        details = str(error) or repr(error)

        return cls(f'Hook {hook!r} failed: {details}', hook=hook, context=context)


class ScenarioFailed(CucumberError):
    """Aggregate error for a single scenario with a non-clean outcome."""

    def __init__(self, result: 'ScenarioResult') -> None:
        """Collect every step and hook error of a scenario result.

        Args:
            result: Final scenario result.
        """
        self.result = result
        self.errors = tuple(
            step.error
            for step in result.steps
            if step.error
        ) + tuple(error.message for error in result.errors)

        message = f'Scenario "{result.scenario.name}" {result.status.value.lower()}'
        for error in self.errors:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error}'

        location = result.scenario.location
        super().__init__(message, context=ErrorContext(
            filename=location.uri,
            line_num=location.line - 1 if location.line else None,
        ))


class RunFailed(CucumberError):
    """Aggregate error raised by the raising entry point of a non-clean run."""

    def __init__(self, failures: 'Sequence[ScenarioFailed]', *,
                 hook_errors: 'Sequence[HookError]' = (),
                 parse_errors: 'Sequence[ParseError]' = ()) -> None:
        """Collect scenario, run-level hook and parse failures.

        Args:
            failures: Per-scenario aggregate errors.
            hook_errors: Run-level hook errors.
            parse_errors: Per-source document errors.
        """
        self.failures = tuple(failures)
        self.hook_errors = tuple(hook_errors)
        self.parse_errors = tuple(parse_errors)

        message = ', '.join(
            f'{count} {noun}{'' if count == 1 else 's'} {verb}'
            for count, noun, verb in (
                (len(self.hook_errors), 'run hook', 'failed'),
                (len(self.parse_errors), 'source', 'could not be loaded'),
                (len(self.failures), 'scenario', 'did not pass'),
            )
            if count
        ) or 'Run did not pass'

        for hook_error in self.hook_errors:
            message += f'{linesep}{hook_error.message}'
        for parse_error in self.parse_errors:
            message += f'{linesep}{parse_error}'
        for failure in self.failures:
            message += f'{linesep}{failure}'

        super().__init__(message)
