"""
Top-down evaluator.

Bodies are evaluated left to right with generators: every expression yields
zero or more extended bindings, and refs with unbound variables enumerate the
keys of the value they walk.  Bindings are never mutated in place; binding a
variable copies the mapping, so a ``TraceEvent`` can keep the bindings it was
emitted with.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .builtins import BUILTINS, UNDEFINED, Builtin
from .compiler import compile_module, compile_query
from .errors import BuiltinError, PolicyEvalError
from .terms import ArrayNode, Expr, Module, Node, ObjectNode, Ref, Rule, Term, Value, Var
from .tracing import EventOp, QueryTracer, TraceEvent

logger = logging.getLogger(__name__)

Bindings = Dict[str, Term]

_ROOTS = ("input", "data")


def _bind(bindings: Bindings, name: str, term: Term) -> Bindings:
    extended = dict(bindings)
    extended[name] = term
    return extended


def _sort_key(term: Term) -> str:
    return json.dumps(term.to_python(), sort_keys=True, default=str)


def _lookup(term: Term, key: Term) -> Optional[Term]:
    if term.is_object:
        if isinstance(key.value, (dict, list)):
            return None
        return term.value.get(key.value)
    if term.is_array:
        index = key.value
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(term.value):
            return term.value[index]
    return None


def _children(term: Term) -> Iterator[Tuple[Term, Term]]:
    if term.is_object:
        for key, value in term.value.items():
            yield Term(key), value
    elif term.is_array:
        for index, value in enumerate(term.value):
            yield Term(index), value


class Evaluator:
    """Evaluates one query against one module and input; not reusable across inputs."""

    def __init__(self, module: Module, input_term: Optional[Term], tracers: Sequence[QueryTracer] = ()):
        self.module = module
        self.input = input_term
        self._tracers = [t for t in tracers if t.enabled()]
        self._rule_values: Dict[str, Optional[Term]] = {}
        self._evaluating: Set[str] = set()

    # events

    def _emit(self, op: EventOp, node: Union[Expr, Rule], bindings: Bindings) -> None:
        if not self._tracers:
            return
        event = TraceEvent(op, node, bindings, self.plug)
        for tracer in self._tracers:
            tracer.on_event(event)

    # queries and rules

    def eval_query(self, node: Node) -> List[Term]:
        return [term for term, _ in self._resolve(node, {})]

    def rule_value(self, name: str) -> Optional[Term]:
        """Value of the named rule, or ``None`` when it is undefined."""
        if name in self._rule_values:
            return self._rule_values[name]
        rules = self.module.rules_named(name)
        if not rules:
            return None
        if name in self._evaluating:
            raise PolicyEvalError(f"rule {name} is recursive", *rules[0].pos)
        self._evaluating.add(name)
        try:
            value = self._eval_rules(name, rules)
        finally:
            self._evaluating.discard(name)
        self._rule_values[name] = value
        return value

    def _eval_rules(self, name: str, rules: List[Rule]) -> Optional[Term]:
        partial = [r for r in rules if r.is_partial_set]
        if partial and len(partial) != len(rules):
            raise PolicyEvalError(f"rule {name} mixes partial set and complete definitions", *rules[0].pos)

        if partial:
            members: Dict[Any, Term] = {}
            for rule in partial:
                self._emit(EventOp.ENTER, rule, {})
                for bindings in self._eval_body(rule.body, 0, {}):
                    for key, _ in self._resolve(rule.key, bindings):
                        members.setdefault(key.canonical(), key)
                self._emit(EventOp.EXIT, rule, {})
            return Term(sorted(members.values(), key=_sort_key))

        values: Dict[Any, Term] = {}
        default: Optional[Term] = None
        for rule in rules:
            if rule.default:
                for value, _ in self._resolve(rule.value, {}):
                    default = value
                continue
            self._emit(EventOp.ENTER, rule, {})
            for bindings in self._eval_body(rule.body, 0, {}):
                for value, _ in self._resolve(rule.value, bindings):
                    values.setdefault(value.canonical(), value)
            self._emit(EventOp.EXIT, rule, {})

        if len(values) > 1:
            raise PolicyEvalError(f"complete rule {name} produced conflicting values", *rules[0].pos)
        if values:
            return next(iter(values.values()))
        return default

    # bodies and expressions

    def _eval_body(self, body: List[Expr], index: int, bindings: Bindings) -> Iterator[Bindings]:
        if index == len(body):
            yield bindings
            return
        for extended in self._eval_expr(body[index], bindings):
            yield from self._eval_body(body, index + 1, extended)

    def _eval_expr(self, expr: Expr, bindings: Bindings) -> Iterator[Bindings]:
        produced = False
        if expr.negated:
            for _ in self._eval_negated(expr, bindings):
                produced = True
                break
            if produced:
                self._emit(EventOp.FAIL, expr, bindings)
            else:
                yield bindings
            return

        for extended in self._eval_positive(expr, bindings):
            produced = True
            yield extended
        if not produced:
            self._emit(EventOp.FAIL, expr, bindings)

    def _eval_negated(self, expr: Expr, bindings: Bindings) -> Iterator[Bindings]:
        for extended in self._eval_body(expr.prelude, 0, bindings):
            yield from self._eval_positive(expr, extended)

    def _eval_positive(self, expr: Expr, bindings: Bindings) -> Iterator[Bindings]:
        if expr.is_unify:
            self._emit(EventOp.EVAL, expr, bindings)
            left, right = expr.operands()
            for extended in self._unify(left, right, bindings):
                self._emit(EventOp.UNIFY, expr, extended)
                yield extended
            return

        if expr.is_call:
            builtin = BUILTINS[expr.operator]
            operands = expr.operands()
            output: Optional[Node] = None
            if len(operands) == builtin.arity + 1:
                operands, output = operands[:-1], operands[-1]
            for args, extended in self._resolve_all(operands, bindings):
                self._emit(EventOp.EVAL, expr, extended)
                result = self._call(builtin, args, expr)
                if result is None:
                    continue
                if output is None:
                    if result.value is not False:
                        yield extended
                else:
                    yield from self._match(output, result, extended)
            return

        for term, extended in self._resolve(expr.terms, bindings):
            self._emit(EventOp.EVAL, expr, extended)
            if term.value is not False:
                yield extended

    def _call(self, builtin: Builtin, args: List[Term], expr: Expr) -> Optional[Term]:
        try:
            if builtin.raw:
                result = builtin.fn(*args)
            else:
                result = builtin.fn(*[a.to_python() for a in args])
        except BuiltinError as e:
            raise BuiltinError(e.message, *expr.pos) from e
        if result is UNDEFINED:
            return None
        if isinstance(result, Term):
            return result
        return Term.from_python(result)

    # unification

    def _is_pattern(self, node: Node, bindings: Bindings) -> bool:
        if isinstance(node, Var):
            return node.name not in bindings and node.name not in _ROOTS
        if isinstance(node, ArrayNode):
            return any(self._is_pattern(item, bindings) for item in node.items)
        return False

    def _unify(self, left: Node, right: Node, bindings: Bindings) -> Iterator[Bindings]:
        if self._is_pattern(left, bindings):
            for term, extended in self._resolve(right, bindings):
                yield from self._match(left, term, extended)
        elif self._is_pattern(right, bindings):
            for term, extended in self._resolve(left, bindings):
                yield from self._match(right, term, extended)
        else:
            for a, extended in self._resolve(left, bindings):
                for b, final in self._resolve(right, extended):
                    if a == b:
                        yield final

    def _match(self, node: Node, term: Term, bindings: Bindings) -> Iterator[Bindings]:
        if isinstance(node, Var) and self._is_pattern(node, bindings):
            yield _bind(bindings, node.name, term)
            return
        if isinstance(node, ArrayNode) and self._is_pattern(node, bindings):
            if term.is_array and len(term.value) == len(node.items):
                yield from self._match_items(node.items, term.value, 0, bindings)
            return
        for resolved, extended in self._resolve(node, bindings):
            if resolved == term:
                yield extended

    def _match_items(
        self, nodes: Sequence[Node], terms: List[Term], index: int, bindings: Bindings
    ) -> Iterator[Bindings]:
        if index == len(nodes):
            yield bindings
            return
        for extended in self._match(nodes[index], terms[index], bindings):
            yield from self._match_items(nodes, terms, index + 1, extended)

    # term resolution

    def _resolve(self, node: Node, bindings: Bindings) -> Iterator[Tuple[Term, Bindings]]:
        if isinstance(node, Value):
            yield Term(node.value), bindings
        elif isinstance(node, Var):
            if node.name == "input":
                if self.input is not None:
                    yield self.input, bindings
            elif node.name == "data":
                yield self._package_term(()), bindings
            elif node.name in bindings:
                yield bindings[node.name], bindings
            else:
                raise PolicyEvalError(f"var {node.name} is unsafe", *node.pos)
        elif isinstance(node, Ref):
            yield from self._resolve_ref(node, bindings)
        elif isinstance(node, ArrayNode):
            for items, extended in self._resolve_all(list(node.items), bindings):
                yield Term(items), extended
        elif isinstance(node, ObjectNode):
            flat = [part for pair in node.items for part in pair]
            for parts, extended in self._resolve_all(flat, bindings):
                obj: Dict[Any, Term] = {}
                for key, value in zip(parts[::2], parts[1::2]):
                    if isinstance(key.value, (dict, list)):
                        raise PolicyEvalError("object keys must be scalars", *node.pos)
                    obj[key.value] = value
                yield Term(obj), extended
        else:
            raise PolicyEvalError(f"cannot evaluate {node}", *getattr(node, "pos", (None, None)))

    def _resolve_all(self, nodes: Sequence[Node], bindings: Bindings) -> Iterator[Tuple[List[Term], Bindings]]:
        if not nodes:
            yield [], bindings
            return
        for first, extended in self._resolve(nodes[0], bindings):
            for rest, final in self._resolve_all(nodes[1:], extended):
                yield [first] + rest, final

    def _resolve_ref(self, ref: Ref, bindings: Bindings) -> Iterator[Tuple[Term, Bindings]]:
        if isinstance(ref.head, Var) and ref.head.name == "data":
            yield from self._resolve_data(ref, bindings)
            return
        for base, extended in self._resolve(ref.head, bindings):
            yield from self._walk(base, ref.path, 0, extended)

    def _walk(self, term: Term, path: Sequence[Node], index: int, bindings: Bindings) -> Iterator[Tuple[Term, Bindings]]:
        if index == len(path):
            yield term, bindings
            return
        elem = path[index]
        if isinstance(elem, Var) and self._is_pattern(elem, bindings):
            for key, child in _children(term):
                yield from self._walk(child, path, index + 1, _bind(bindings, elem.name, key))
            return
        for key, extended in self._resolve(elem, bindings):
            child = _lookup(term, key)
            if child is not None:
                yield from self._walk(child, path, index + 1, extended)

    def _resolve_data(self, ref: Ref, bindings: Bindings) -> Iterator[Tuple[Term, Bindings]]:
        package = self.module.package
        for index, elem in enumerate(ref.path):
            if not (isinstance(elem, Value) and isinstance(elem.value, str)):
                raise PolicyEvalError("data references must use constant names", *ref.pos)
            if index < len(package):
                if elem.value != package[index]:
                    return
                continue
            value = self.rule_value(elem.value)
            if value is not None:
                yield from self._walk(value, ref.path, index + 1, bindings)
            return
        yield self._package_term(tuple(e.value for e in ref.path)), bindings

    def _package_term(self, prefix: Tuple[str, ...]) -> Term:
        package = self.module.package
        if package[: len(prefix)] != prefix:
            return Term({})
        rules: Dict[Any, Term] = {}
        for name in self.module.rule_names:
            value = self.rule_value(name)
            if value is not None:
                rules[name] = value
        term = Term(rules)
        for part in reversed(package[len(prefix):]):
            term = Term({part: term})
        return term

    # plugging

    def plug(self, node: Node, bindings: Mapping[str, Term]) -> Optional[Term]:
        """Resolve ``node`` without enumerating or evaluating rules."""
        if isinstance(node, Value):
            return Term(node.value)
        if isinstance(node, Var):
            if node.name == "input":
                return self.input
            return bindings.get(node.name)
        if isinstance(node, Ref):
            if isinstance(node.head, Var) and node.head.name == "data":
                return self._plug_data(node, bindings)
            base = self.plug(node.head, bindings)
            for elem in node.path:
                if base is None:
                    return None
                key = self.plug(elem, bindings)
                if key is None:
                    return None
                base = _lookup(base, key)
            return base
        if isinstance(node, ArrayNode):
            items = [self.plug(item, bindings) for item in node.items]
            if any(item is None for item in items):
                return None
            return Term(items)
        if isinstance(node, ObjectNode):
            obj: Dict[Any, Term] = {}
            for key_node, value_node in node.items:
                key = self.plug(key_node, bindings)
                value = self.plug(value_node, bindings)
                if key is None or value is None or isinstance(key.value, (dict, list)):
                    return None
                obj[key.value] = value
            return Term(obj)
        return None

    def _plug_data(self, ref: Ref, bindings: Mapping[str, Term]) -> Optional[Term]:
        package = self.module.package
        names = [e.value for e in ref.path if isinstance(e, Value)]
        depth = len(package) + 1
        if len(names) < depth or tuple(names[: len(package)]) != package:
            return None
        base = self._rule_values.get(names[len(package)])
        for elem in ref.path[depth:]:
            if base is None:
                return None
            key = self.plug(elem, bindings)
            if key is None:
                return None
            base = _lookup(base, key)
        return base


class Query:
    """
    A prepared query, in the spirit of ``rego.New(...).Eval()``.

    Args:
        query: ref to evaluate, e.g. ``data.policy.deny``
        module: compiled ``Module`` or policy source text
        input: input document as ``Term`` or plain Python value
        tracers: receivers of execution events
    """

    def __init__(
        self,
        query: str,
        module: Union[Module, str],
        input: Any = None,
        tracers: Sequence[QueryTracer] = (),
    ):
        self.text = query
        self.node = compile_query(query)
        self.module = compile_module(module) if isinstance(module, str) else module
        if input is None or isinstance(input, Term):
            self.input = input
        else:
            self.input = Term.from_python(input)
        self.tracers = list(tracers)

    def eval(self) -> List[Term]:
        self._check_package()
        evaluator = Evaluator(self.module, self.input, self.tracers)
        results = evaluator.eval_query(self.node)
        logger.debug(f"query {self.text} produced {len(results)} result(s)")
        return results

    def _check_package(self) -> None:
        node = self.node
        if not (isinstance(node, Ref) and isinstance(node.head, Var) and node.head.name == "data"):
            return
        package = self.module.package
        names = []
        for elem in node.path[: len(package)]:
            if not isinstance(elem, Value):
                break
            names.append(elem.value)
        if tuple(names) != package[: len(names)]:
            raise PolicyEvalError(
                f"query {self.text} does not refer to package {'.'.join(package)}"
            )
