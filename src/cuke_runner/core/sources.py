"""YAML scenario document sources.

The engine consumes feature trees produced by an external document
parser. This module provides a minimal YAML source for such trees: every
YAML document of a stream is one `Feature` mapping, validated with the
document schema. Source lines of every mapping are recorded so that
results and errors point back to the document.

Example::

    name: Calculator
    tags: [math]
    scenarios:
      - name: Add two numbers
        steps:
          - Given a calculator
          - When I add 2 and 3
          - Then the result is 5

Parse errors are reported per source: one malformed file never prevents
the other files from loading.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from yaml import SafeLoader, load_all
from yaml.error import MarkedYAMLError
from yaml.nodes import MappingNode, ScalarNode, SequenceNode

from cuke_runner.errors import CucumberError, ParseError
from cuke_runner.schema import Feature

if TYPE_CHECKING:
    from collections.abc import Iterable
    from io import TextIOBase
    from os import PathLike

if TYPE_CHECKING:
    from yaml.nodes import Node

logger = logging.getLogger(__name__)

#: File suffixes picked up when a directory is given as a source.
SOURCE_SUFFIXES = ('.yaml', '.yml')

#: Tag of YAML string nodes.
STR_TAG = 'tag:yaml.org,2002:str'

#: Tag of YAML mapping nodes.
MAP_TAG = 'tag:yaml.org,2002:map'


class DocumentLoader(SafeLoader):
    """Safe YAML loader recording one-based source lines of mappings.

    Shorthand steps written as plain strings are turned into `step`
    mappings before construction, so they carry their line as well.
    """

    def construct_document(self, node: 'Node') -> Any:  # noqa: ANN401
        wrap_steps(node, set())

        return super().construct_document(node)

    def construct_mapping(self, node: MappingNode, deep: bool = False) -> dict:  # type: ignore[override]
        mapping = super().construct_mapping(node, deep=deep)
        mapping.setdefault('line', node.start_mark.line + 1)

        return mapping


def wrap_steps(node: 'Node', seen: set[int]) -> None:
    """Replace string items of every `steps` sequence with `step` mappings."""
    if id(node) in seen:
        return
    seen.add(id(node))

    if isinstance(node, SequenceNode):
        for item in node.value:
            wrap_steps(item, seen)

    if not isinstance(node, MappingNode):
        return

    for key, value in node.value:
        wrap_steps(value, seen)

        if not (isinstance(key, ScalarNode) and key.value == 'steps'):
            continue
        if not isinstance(value, SequenceNode):
            continue

        value.value = [
            MappingNode(
                MAP_TAG,
                [(ScalarNode(STR_TAG, 'step', item.start_mark, item.end_mark), item)],
                item.start_mark,
                item.end_mark,
            )
            if isinstance(item, ScalarNode) and item.tag == STR_TAG
            else item
            for item in value.value
        ]


class FeatureParser:
    """Loads feature trees from YAML streams and files."""

    def __init__(self, loader: type[SafeLoader] = DocumentLoader) -> None:
        """Initialize the parser.

        Args:
            loader: YAML loader class used to read documents.
        """
        self.loader = loader

    def parse(self, content: 'TextIOBase | str',
              uri: str | None = None) -> list[Feature]:
        """Parse a YAML stream into validated features.

        Args:
            content: YAML content as a string or file-like object.
            uri: Source URI recorded on every feature without one.

        Returns:
            Features in document order.

        Raises:
            ParseError: If YAML parsing or document validation fails.
        """
        try:
            documents = list(load_all(content, Loader=self.loader))  # noqa: S506

        except MarkedYAMLError as base:
            raise ParseError.from_yaml_error(base, filename=uri) from base

        except CucumberError:
            raise

        except Exception as base:
            raise ParseError(f'Unexpected error: {base}') from base

        features = []

        for document in documents:
            if document is None:
                continue
            if isinstance(document, dict) and uri is not None:
                document.setdefault('uri', uri)

            try:
                features.append(Feature.model_validate(document))

            except ValidationError as base:
                raise ParseError.from_pydantic_error(
                    base,
                    data=document,
                    filename=uri,
                ) from base

        return features

    def parse_file(self, path: 'str | PathLike[str]') -> list[Feature]:
        """Parse a single YAML file.

        Raises:
            ParseError: If the file can not be read or is malformed.
        """
        uri = str(path)

        try:
            with Path(path).open(encoding='utf-8') as content:
                return self.parse(content, uri=uri)

        except OSError as base:
            raise ParseError(f'Can not read source: {base.strerror or base}', context={
                'filename': uri,
            }) from base

    def parse_paths(self, paths: 'Iterable[str | PathLike[str]]') -> tuple[list[Feature], list[ParseError]]:
        """Parse files and directories, collecting errors per source.

        Directories are searched recursively for `.yaml` and `.yml` files,
        in sorted order.

        Args:
            paths: Files or directories.

        Returns:
            Features in source order and the parse errors of the sources
            that failed.
        """
        features: list[Feature] = []
        errors: list[ParseError] = []

        for source in expand_paths(paths):
            try:
                features.extend(self.parse_file(source))

            except ParseError as error:
                logger.warning('Skipping malformed source %s: %s', source, error.message)
                errors.append(error)

        return features, errors


def expand_paths(paths: 'Iterable[str | PathLike[str]]') -> list[Path]:
    """Resolve directories into the YAML files they contain."""
    result: list[Path] = []

    for item in paths:
        path = Path(item)
        if path.is_dir():
            result.extend(sorted(
                found
                for found in path.rglob('*')
                if found.is_file() and found.suffix in SOURCE_SUFFIXES
            ))
        else:
            result.append(path)

    return result
