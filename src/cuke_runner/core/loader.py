"""Step library discovery and registration infrastructure.

This module defines a mixin responsible for registering step definitions,
parameter types and hooks, and for discovering step libraries exposed
via Python entry points.

Libraries are loaded defensively: individual failures do not interrupt
the loading process unless strict mode is enabled.
"""

import logging
from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError

from cuke_runner.errors import LibraryError, LibraryWarning
from cuke_runner.extensions import BUILTIN_TYPES, HookKind, StepLibrary

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

if TYPE_CHECKING:
    from cuke_runner.extensions import HookDef, ParamType, StepDef

logger = logging.getLogger(__name__)

#: Entry point group scanned by `load_libraries`.
ENTRYPOINT_GROUP = 'cuke_libraries'


class LibraryLoaderMixin:
    """Mixin defining definition registration and library loading behavior.

    Attributes:
        strict_mode: If True, any library loading issue raises an error.
            If False, issues are emitted as warnings and loading continues.
    """

    strict_mode: bool = False

    steps: list['StepDef']
    parameter_types: dict[str, 'ParamType']
    hooks: dict[HookKind, list['HookDef']]

    def ensure_unlocked(self) -> None:
        """Raise if the registry no longer accepts definitions.

        Raises:
            LibraryError: If the registry is locked.
        """
        if getattr(self, 'locked', False):
            raise LibraryError('Registry is locked, definitions can not be added during a run')

    def add_step(self, step: 'StepDef',
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a step definition after all existing ones.

        A definition with the same keyword constraint and pattern as an
        existing one can never match and is reported as shadowed.

        Args:
            step: Step definition.
            entrypoint: Entry point the definition was loaded from, if any.

        Raises:
            LibraryError: If the registry is locked, or the definition is
                shadowed in strict mode.
        """
        self.ensure_unlocked()

        for existing in self.steps:
            if existing.kind == step.kind and existing.source == step.source and (
                error := self.emit_library_issue(
                    f'Step {step.kind.value} {step.source!r} from {step.name!r} '
                    f'is shadowed by {existing.name!r}',
                    entrypoint,
                )
            ):
                raise error

        self.steps.append(step)

    def add_parameter_type(self, parameter_type: 'ParamType',
                           entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a parameter type.

        Args:
            parameter_type: Parameter type definition.
            entrypoint: Entry point the definition was loaded from, if any.

        Raises:
            LibraryError: If the registry is locked, or the type shadows an
                existing one in strict mode.
        """
        self.ensure_unlocked()

        name = parameter_type.name
        if name in self.parameter_types and (error := self.emit_library_issue(
            f'Parameter type {name!r} is shadowing an existing type',
            entrypoint,
        )):
            raise error

        self.parameter_types[name] = parameter_type

    def add_hook(self, hook: 'HookDef',
                 entrypoint: 'EntryPoint | None' = None) -> None:  # noqa: ARG002
        """Register a hook after all existing hooks of the same kind.

        Raises:
            LibraryError: If the registry is locked.
        """
        self.ensure_unlocked()

        self.hooks[hook.kind].append(hook)

    def add_library(self, library: StepLibrary,
                    entrypoint: 'EntryPoint | None' = None) -> None:
        """Append every definition of a library, in the library order.

        Parameter types are registered first so that the library step
        expressions can use them.

        Args:
            library: Step library.
            entrypoint: Entry point the library was loaded from, if any.

        Raises:
            LibraryError: On registration issues in strict mode.
        """
        logger.debug('Adding step library %r', library.name)

        for parameter_type in library.parameter_types:
            self.add_parameter_type(parameter_type, entrypoint)

        for step in library.steps:
            self.add_step(step, entrypoint)

        for hook in library.hooks:
            self.add_hook(hook, entrypoint)

    def emit_library_issue(self, message: str,
                           entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a library warning or return the exception.

        Args:
            message: Warning message to emit.
            entrypoint: Entry point the issue relates to, if any.

        Returns:
            LibraryError on strict mode, otherwise `None`
                with producing a LibraryWarning.
        """
        if self.strict_mode:
            return LibraryError(message, entrypoint=entrypoint)

        warn(message, category=LibraryWarning, stacklevel=3)

        return None

    def _load_library(self, entrypoint: 'EntryPoint') -> None:
        """Load and register a single library entry point.

        Raises:
            LibraryError: If any loading issues occur on strict mode.
        """
        try:
            library = entrypoint.load()

        except ValidationError as base:
            if error := self.emit_library_issue(
                f'Failed to validate entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        except Exception as base:
            if error := self.emit_library_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        if not isinstance(library, StepLibrary):
            if error := self.emit_library_issue(
                f'Loaded from entrypoint {entrypoint.name!r} object is not a step library',
                entrypoint,
            ):
                raise error
            return None

        self.add_library(library, entrypoint)

    def clear_definitions(self) -> None:
        """Reset all registered definitions to the built-in parameter types."""
        self.steps = []
        self.parameter_types = {item.name: item for item in BUILTIN_TYPES}
        self.hooks = {kind: [] for kind in HookKind}

    def load_libraries(self) -> None:
        """Load step libraries via entry points and register them.

        Discovers libraries from the `cuke_libraries` entry point group.

        Raises:
            LibraryError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=ENTRYPOINT_GROUP):
            self._load_library(entrypoint)
