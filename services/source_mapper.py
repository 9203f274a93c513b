"""
Source mapper: resolves a document path to the line and column of the node it
names, using the position-carrying node graph PyYAML composes.
"""

import logging
from pathlib import Path as FilePath
from typing import List, Optional, Tuple, Union

import yaml

from schemas.locations import Location

from .documents import compose_tree, read_text
from .path_tree import Path

logger = logging.getLogger(__name__)


class Source:
    """A parsed document that can answer ``location(path)`` queries."""

    def __init__(self, file: Union[str, FilePath], max_kb: Optional[int] = None):
        self.file = str(file)
        self.text = read_text(file, max_kb=max_kb)
        self.root = compose_tree(self.text, self.file)

    @classmethod
    def from_text(cls, text: str, file: str) -> "Source":
        source = cls.__new__(cls)
        source.file = file
        source.text = text
        source.root = compose_tree(text, file)
        return source

    def location(self, path: Path) -> Location:
        node, matched = self._descend(path)
        unresolved = list(path[matched:])
        if node is None:
            line, column = 1, 1
        else:
            line, column = node.start_mark.line + 1, node.start_mark.column + 1
        if unresolved:
            logger.debug(
                f"{self.file}: path {list(path)} stops at line {line}, "
                f"column {column}; unresolved {unresolved}"
            )
        return Location(
            file=self.file,
            line=line,
            column=column,
            path=list(path),
            exact=not unresolved,
            unresolved=unresolved,
        )

    def _descend(self, path: Path) -> Tuple[Optional[yaml.Node], int]:
        node = self.root
        if node is None:
            return None, 0
        for depth, segment in enumerate(path):
            child = _mapping_value(node, segment)
            if child is None:
                return node, depth
            node = child
        return node, len(path)


def _mapping_value(node: yaml.Node, key: str) -> Optional[yaml.Node]:
    # last match wins, as it does when the same text is loaded into a dict
    if not isinstance(node, yaml.MappingNode):
        return None
    found = None
    for key_node, value_node in node.value:
        if isinstance(key_node, yaml.ScalarNode) and key_node.value == key:
            found = value_node
    return found


def locate_all(source: Source, paths: List[Path]) -> List[Location]:
    """Resolve several paths, sorted by position."""
    locations = [source.location(path) for path in paths]
    locations.sort(key=lambda loc: (loc.line, loc.column, loc.path))
    return locations
