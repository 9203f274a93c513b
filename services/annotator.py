"""
Document annotation.

Stamps the path of every node reached by object-key descent into the node's
``provenance`` slot.  Arrays and scalars are stamped when reached but never
descended into.
"""

import json
from typing import Any, Optional

from engine import Term

from .path_tree import Path

PATH_PREFIX = "path:"


def encode_path(path: Path) -> str:
    return PATH_PREFIX + json.dumps(list(path), ensure_ascii=False, separators=(",", ":"))


def decode_path(encoded: Optional[str]) -> Optional[Path]:
    """Inverse of ``encode_path``; ``None`` for anything it did not produce."""
    if not encoded or not encoded.startswith(PATH_PREFIX):
        return None
    try:
        segments = json.loads(encoded[len(PATH_PREFIX):])
    except json.JSONDecodeError:
        return None
    if not isinstance(segments, list) or not all(isinstance(s, str) for s in segments):
        return None
    return tuple(segments)


def annotate(path: Path, term: Term) -> None:
    term.provenance = encode_path(path)
    if term.is_object:
        for key, child in term.value.items():
            if isinstance(key, str):
                annotate(path + (key,), child)


def annotate_document(value: Any) -> Term:
    """Convert a parsed document to engine terms annotated from the root."""
    term = Term.from_python(value)
    annotate((), term)
    return term
