"""
Paths into a document and the prefix trie that collects them.

A ``Path`` is a tuple of object keys; the empty tuple is the document root.
``PathTree`` only ever reports its leaves, so a path that is a strict prefix
of another recorded path is absorbed by the longer one.
"""

from typing import Dict, Iterable, List, Tuple

Path = Tuple[str, ...]


class PathTree(Dict[str, "PathTree"]):
    """Prefix trie over paths: ``segment -> PathTree``."""

    @classmethod
    def from_paths(cls, paths: Iterable[Path]) -> "PathTree":
        tree = cls()
        for path in paths:
            tree.insert(path)
        return tree

    def insert(self, path: Path) -> None:
        node = self
        for segment in path:
            child = node.get(segment)
            if child is None:
                child = PathTree()
                node[segment] = child
            node = child

    def list(self) -> List[Path]:
        """All maximal paths; order is unspecified."""
        if not self:
            return [()]
        out: List[Path] = []
        for segment, child in self.items():
            for suffix in child.list():
                out.append((segment,) + suffix)
        return out


def is_prefix(prefix: Path, path: Path) -> bool:
    """True if ``prefix`` is a prefix of ``path``.

    ``PathTree.list()`` never returns two paths where one is a prefix of the
    other, and every inserted path is a prefix of some listed path.
    """
    return len(prefix) <= len(path) and tuple(path[: len(prefix)]) == tuple(prefix)
