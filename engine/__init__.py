"""Policy engine: a small Rego-style rule language with execution tracing."""

from __future__ import annotations

from .builtins import BUILTINS, Builtin
from .compiler import compile_module, compile_query
from .errors import BuiltinError, PolicyError, PolicyEvalError, PolicyParseError
from .evaluator import Evaluator, Query
from .terms import Expr, Module, Rule, Term
from .tracing import BufferTracer, EventOp, QueryTracer, TraceEvent

__all__ = [
    "BUILTINS",
    "Builtin",
    "BufferTracer",
    "BuiltinError",
    "EventOp",
    "Evaluator",
    "Expr",
    "Module",
    "PolicyError",
    "PolicyEvalError",
    "PolicyParseError",
    "Query",
    "QueryTracer",
    "Rule",
    "Term",
    "TraceEvent",
    "compile_module",
    "compile_query",
]
