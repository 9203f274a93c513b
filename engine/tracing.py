"""Execution events and the tracer contract."""

from enum import Enum
from typing import Callable, List, Mapping, Optional, Union

from .terms import Expr, Node, Rule, Term


class EventOp(str, Enum):
    """Kinds of execution events emitted by the evaluator."""

    ENTER = "enter"
    EVAL = "eval"
    UNIFY = "unify"
    FAIL = "fail"
    EXIT = "exit"


class TraceEvent:
    """
    One execution step.

    ``plug`` resolves a syntax node of ``node`` against the bindings in effect
    when the event was emitted.  Variables are replaced by their bound terms
    and refs by the terms they point at, so the returned ``Term`` is the very
    instance the evaluator works with (provenance included).  Nodes that are
    not ground under the bindings plug to ``None``.
    """

    __slots__ = ("op", "node", "bindings", "_plug")

    def __init__(
        self,
        op: EventOp,
        node: Union[Expr, Rule],
        bindings: Mapping[str, Term],
        plug: Callable[[Node, Mapping[str, Term]], Optional[Term]],
    ):
        self.op = op
        self.node = node
        self.bindings = bindings
        self._plug = plug

    def plug(self, node: Node) -> Optional[Term]:
        return self._plug(node, self.bindings)

    def __repr__(self) -> str:
        return f"TraceEvent({self.op.value}, {self.node})"


class QueryTracer:
    """Receives execution events synchronously from the evaluator."""

    def enabled(self) -> bool:
        return True

    def on_event(self, event: TraceEvent) -> None:
        raise NotImplementedError


class BufferTracer(QueryTracer):
    """Keeps every event; handy for debugging policies."""

    def __init__(self) -> None:
        self.events: List[TraceEvent] = []

    def on_event(self, event: TraceEvent) -> None:
        self.events.append(event)

    def ops(self) -> List[EventOp]:
        return [e.op for e in self.events]
