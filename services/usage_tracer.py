"""
Usage tracer.

Watches the engine's execution events and records which annotated input
values were consumed:

- ``UNIFY``: both operands of a ``=`` / ``:=`` expression;
- ``EVAL`` of a built-in call: every argument;
- ``EVAL`` of a bare term used as a condition: the term itself.

Values without provenance (policy literals, computed values) are skipped.
"""

import logging
from typing import Dict, Optional

from engine import BUILTINS, EventOp, Expr, QueryTracer, Term, TraceEvent

from .annotator import decode_path
from .path_tree import PathTree

logger = logging.getLogger(__name__)


class UsageTracer(QueryTracer):
    def __init__(self) -> None:
        self.tree = PathTree()
        self.stats: Dict[str, int] = {"events": 0, "uses": 0, "recorded": 0}
        self._handlers = {
            EventOp.UNIFY: self._trace_unify,
            EventOp.EVAL: self._trace_eval,
        }

    def enabled(self) -> bool:
        return True

    def on_event(self, event: TraceEvent) -> None:
        self.stats["events"] += 1
        handler = self._handlers.get(event.op)
        if handler is not None:
            handler(event)

    def _trace_unify(self, event: TraceEvent) -> None:
        expr = event.node
        if not isinstance(expr, Expr):
            return
        operands = expr.operands()
        if len(operands) == 2:
            self._used(event.plug(operands[0]))
            self._used(event.plug(operands[1]))

    def _trace_eval(self, event: TraceEvent) -> None:
        expr = event.node
        if not isinstance(expr, Expr):
            return
        if expr.is_call:
            if not expr.terms:
                return
            if str(expr.terms[0]) in BUILTINS:
                for term in expr.terms[1:]:
                    self._used(event.plug(term))
        else:
            self._used(event.plug(expr.terms))

    def _used(self, term: Optional[Term]) -> None:
        if term is None:
            return
        self.stats["uses"] += 1
        path = decode_path(term.provenance)
        if path is None:
            return
        self.tree.insert(path)
        self.stats["recorded"] += 1
        logger.debug(f"input value used at {'.'.join(path) or '<root>'}")
