"""
Value terms and syntax nodes of the policy engine.

``Term`` is the runtime value representation: objects hold ``dict`` values of
``Term``, arrays hold ``list`` of ``Term``, everything else is a plain scalar.
Every term carries an opaque ``provenance`` slot.  The engine never reads or
rewrites it; lookups, bindings and unification hand the same ``Term`` instance
around, so whatever a caller stored there is visible on every value derived
by reference from it.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union

Scalar = Union[str, int, float, bool, None]


class Term:
    """A runtime value with a provenance slot."""

    __slots__ = ("value", "provenance")

    def __init__(self, value: Any, provenance: Optional[str] = None):
        self.value = value
        self.provenance = provenance

    @classmethod
    def from_python(cls, obj: Any, _active: Optional[Set[int]] = None) -> "Term":
        """Convert a plain Python value (e.g. ``yaml.safe_load`` output) to terms.

        Shared sub-values are converted once per occurrence; a value that
        contains itself raises ``TypeError``.
        """
        if isinstance(obj, Term):
            return obj
        if isinstance(obj, (dict, list, tuple, set, frozenset)):
            active = _active if _active is not None else set()
            if id(obj) in active:
                raise TypeError("recursive value")
            active.add(id(obj))
            try:
                if isinstance(obj, dict):
                    return cls({_key(k): cls.from_python(v, active) for k, v in obj.items()})
                return cls([cls.from_python(v, active) for v in obj])
            finally:
                active.discard(id(obj))
        if isinstance(obj, (datetime, date)):
            return cls(obj.isoformat())
        if obj is None or isinstance(obj, (str, int, float, bool)):
            return cls(obj)
        raise TypeError(f"unsupported value type: {type(obj).__name__}")

    @property
    def is_object(self) -> bool:
        return isinstance(self.value, dict)

    @property
    def is_array(self) -> bool:
        return isinstance(self.value, list)

    def to_python(self) -> Any:
        if isinstance(self.value, dict):
            return {k: v.to_python() for k, v in self.value.items()}
        if isinstance(self.value, list):
            return [v.to_python() for v in self.value]
        return self.value

    def canonical(self) -> Any:
        """Hashable form used for equality, de-duplication and ordering."""
        value = self.value
        if isinstance(value, dict):
            return (5, tuple(sorted(((_canonical_scalar(k), v.canonical()) for k, v in value.items()), key=repr)))
        if isinstance(value, list):
            return (4, tuple(v.canonical() for v in value))
        return _canonical_scalar(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return self.canonical() == other.canonical()

    def __hash__(self) -> int:
        return hash(self.canonical())

    def __repr__(self) -> str:
        return f"Term({json.dumps(self.to_python(), default=str)})"


def _key(key: Any) -> Scalar:
    if isinstance(key, (datetime, date)):
        return key.isoformat()
    if key is None or isinstance(key, (str, int, float, bool)):
        return key
    raise TypeError(f"unsupported object key type: {type(key).__name__}")


def _canonical_scalar(value: Scalar) -> Tuple[int, Any]:
    if value is None:
        return (0, None)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    return (3, value)


# Syntax nodes. ``pos`` is the (line, column) of the node in the policy text.


@dataclass(frozen=True)
class Var:
    name: str
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Value:
    """A literal scalar."""

    value: Scalar
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return json.dumps(self.value)


@dataclass(frozen=True)
class Ref:
    head: "Node"
    path: Tuple["Node", ...]
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        parts = [str(self.head)]
        for elem in self.path:
            if isinstance(elem, Value) and isinstance(elem.value, str) and elem.value.isidentifier():
                parts.append(f".{elem.value}")
            else:
                parts.append(f"[{elem}]")
        return "".join(parts)


@dataclass(frozen=True)
class ArrayNode:
    items: Tuple["Node", ...]
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return "[" + ", ".join(str(i) for i in self.items) + "]"


@dataclass(frozen=True)
class ObjectNode:
    items: Tuple[Tuple["Node", "Node"], ...]
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return "{" + ", ".join(f"{k}: {v}" for k, v in self.items) + "}"


@dataclass(frozen=True)
class Call:
    """A function application nested inside a term; hoisted by the compiler."""

    operator: str
    args: Tuple["Node", ...]
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return f"{self.operator}(" + ", ".join(str(a) for a in self.args) + ")"


@dataclass(frozen=True)
class Operator:
    """Names the function applied by a call expression."""

    name: str
    pos: Tuple[int, int] = field(default=(0, 0), compare=False)

    def __str__(self) -> str:
        return self.name


Node = Union[Var, Value, Ref, ArrayNode, ObjectNode, Call, Operator]

EQ = "eq"
ASSIGN = "assign"


@dataclass
class Expr:
    """
    One body expression.

    ``terms`` is either a list ``[Operator, arg, ...]`` for calls (including
    the unification operators ``eq`` and ``assign``) or a single node used as
    a condition.  ``prelude`` holds hoisted expressions that must run inside
    the same negation scope.
    """

    terms: Union[List[Node], Node]
    negated: bool = False
    prelude: List["Expr"] = field(default_factory=list)
    pos: Tuple[int, int] = (0, 0)

    @property
    def is_call(self) -> bool:
        return isinstance(self.terms, list)

    @property
    def operator(self) -> Optional[str]:
        if self.is_call:
            return str(self.terms[0])
        return None

    @property
    def is_unify(self) -> bool:
        return self.operator in (EQ, ASSIGN)

    def operands(self) -> List[Node]:
        if self.is_call:
            return list(self.terms[1:])
        return []

    def __str__(self) -> str:
        prefix = "not " if self.negated else ""
        if not self.is_call:
            return prefix + str(self.terms)
        args = ", ".join(str(t) for t in self.operands())
        return f"{prefix}{self.operator}({args})"


@dataclass
class Rule:
    """
    A rule definition.

    Partial set rules have ``key`` set; complete rules have ``value``.
    Several definitions may share a name.
    """

    name: str
    body: List[Expr]
    key: Optional[Node] = None
    value: Optional[Node] = None
    default: bool = False
    pos: Tuple[int, int] = (0, 0)

    @property
    def is_partial_set(self) -> bool:
        return self.key is not None

    def __str__(self) -> str:
        return self.name


@dataclass
class Module:
    package: Tuple[str, ...]
    rules: List[Rule]

    def rules_named(self, name: str) -> List[Rule]:
        return [r for r in self.rules if r.name == name]

    @property
    def rule_names(self) -> List[str]:
        seen: Dict[str, None] = {}
        for rule in self.rules:
            seen.setdefault(rule.name, None)
        return list(seen)
