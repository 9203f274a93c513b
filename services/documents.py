"""
Document loading.

The same text is parsed twice: once into plain Python values for the engine
and once into PyYAML's node graph, which keeps line and column marks.  Both
use ``TemplateLoader`` so application tags (CloudFormation's ``!Ref``,
``!Sub`` ...) are accepted and resolved to their untagged value.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .errors import DocumentParseError, DocumentReadError, PolicyReadError

logger = logging.getLogger(__name__)


class TemplateLoader(yaml.SafeLoader):
    """SafeLoader that tolerates unknown ``!tags``."""


def _construct_untagged(loader: TemplateLoader, tag_suffix: str, node: yaml.Node) -> Any:
    if isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node, deep=True)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    return loader.construct_scalar(node)


TemplateLoader.add_multi_constructor("!", _construct_untagged)


def read_text(path: Union[str, Path], max_kb: Optional[int] = None, policy: bool = False) -> str:
    """Read a UTF-8 file, raising the read error matching its role."""
    error = PolicyReadError if policy else DocumentReadError
    file_path = Path(path)
    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise error(e.strerror or str(e), str(path)) from e
    logger.debug("Read %d bytes from %s", len(data), file_path)
    if max_kb is not None and len(data) > max_kb * 1024:
        raise error(f"file is larger than {max_kb} KB", str(path))
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise error(f"not valid UTF-8: {e.reason}", str(path)) from e


def load_value(text: str, name: str = "<document>") -> Any:
    """Structured value of a single-document YAML/JSON text."""
    try:
        return yaml.load(text, Loader=TemplateLoader)
    except yaml.YAMLError as e:
        raise DocumentParseError(_describe(e), name) from e
    except RecursionError as e:
        raise DocumentParseError("document is nested too deeply", name) from e


def compose_tree(text: str, name: str = "<document>") -> Optional[yaml.Node]:
    """Position-carrying node graph of the same text; ``None`` if empty."""
    try:
        return yaml.compose(text, Loader=TemplateLoader)
    except yaml.YAMLError as e:
        raise DocumentParseError(_describe(e), name) from e
    except RecursionError as e:
        raise DocumentParseError("document is nested too deeply", name) from e


def _describe(error: yaml.YAMLError) -> str:
    mark = getattr(error, "problem_mark", None)
    problem = getattr(error, "problem", None) or str(error)
    if mark is not None:
        return f"{problem} (line {mark.line + 1}, column {mark.column + 1})"
    return problem
