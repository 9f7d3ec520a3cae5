"""YAML parser with line tracking for rich error reporting.

Provides a PyYAML SafeLoader subclass that records source positions for
every mapping key and every sequence item, so validation errors in a
recording script can point at the offending line.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class YAMLParseError(Exception):
    """Raised when YAML syntax cannot be parsed.

    Attributes:
        line: 1-indexed line number where the error occurred.
        column: 1-indexed column number where the error occurred.
        message: Human-readable description of the syntax error.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(message)


class LineTrackingLoader(yaml.SafeLoader):
    """SafeLoader that fills ``line_map`` with dotted path -> (line, column).

    Paths use the same shape as pydantic error locations joined by dots,
    e.g. ``viewport.width`` or ``steps.2.click``. Positions are 1-indexed.
    """

    def __init__(self, stream: str, filename: str = "<string>") -> None:
        super().__init__(stream)
        self.line_map: dict[str, tuple[int, int]] = {}
        self._filename = filename
        self._prefix_stack: list[str] = []

    def _record(self, key: str, node: yaml.Node) -> None:
        if node.start_mark is None:
            return
        full_key = ".".join([*self._prefix_stack, key])
        self.line_map.setdefault(
            full_key, (node.start_mark.line + 1, node.start_mark.column + 1)
        )

    def _construct_child(self, key: str, node: yaml.Node, deep: bool) -> Any:
        if isinstance(node, (yaml.MappingNode, yaml.SequenceNode)):
            self._prefix_stack.append(key)
            try:
                return self.construct_object(node, deep=deep)
            finally:
                self._prefix_stack.pop()
        return self.construct_object(node, deep=deep)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        self.flatten_mapping(node)
        pairs = []
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, str):
                self._record(key, key_node)
                value = self._construct_child(key, value_node, deep)
            else:
                value = self.construct_object(value_node, deep=deep)
            pairs.append((key, value))
        return dict(pairs)

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        result = []
        for index, child_node in enumerate(node.value):
            self._record(str(index), child_node)
            result.append(self._construct_child(str(index), child_node, deep))
        return result

    def construct_yaml_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_yaml_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


LineTrackingLoader.add_constructor("tag:yaml.org,2002:map", LineTrackingLoader.construct_yaml_map)
LineTrackingLoader.add_constructor("tag:yaml.org,2002:seq", LineTrackingLoader.construct_yaml_seq)


def parse_yaml_with_lines(
    source: str,
    filename: str = "<string>",
) -> tuple[dict | None, dict[str, tuple[int, int]]]:
    """Parse a YAML string and return (data, line_map).

    Returns (None, {}) for empty, comment-only, or non-mapping documents.

    Raises:
        YAMLParseError: If the YAML contains syntax errors.
    """
    try:
        loader = LineTrackingLoader(source, filename=filename)
        try:
            data = loader.get_single_data()
        finally:
            loader.dispose()
    except yaml.YAMLError as e:
        line = None
        column = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
            column = mark.column + 1
        raise YAMLParseError(
            message=str(e),
            line=line,
            column=column,
            filename=filename,
        ) from e

    if data is None or not isinstance(data, dict):
        return None, {}

    return data, loader.line_map


def parse_yaml_file(filepath: Path) -> tuple[dict | None, dict[str, tuple[int, int]]]:
    """Parse a YAML file and return (data, line_map).

    Raises:
        YAMLParseError: If the file contains YAML syntax errors.
        FileNotFoundError: If the file does not exist.
    """
    content = filepath.read_text(encoding="utf-8")
    return parse_yaml_with_lines(content, filename=str(filepath))
