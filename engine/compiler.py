"""
Module compilation.

Rewrites a parsed module so the evaluator only deals with flat expressions:

- bare references to rules of the module become ``data.<package>.<rule>`` refs;
- function applications nested inside terms are hoisted into their own call
  expressions writing a generated ``__localN__`` variable, so every built-in
  call is a separate expression in the trace;
- unknown functions and wrong arities are rejected.
"""

from typing import List, Set, Tuple

from .builtins import BUILTINS
from .errors import PolicyParseError
from .parser import parse_module, parse_query
from .terms import ArrayNode, Call, Expr, Module, Node, ObjectNode, Operator, Ref, Rule, Value, Var


class Compiler:
    def __init__(self, module: Module):
        self.module = module
        self.rule_names: Set[str] = set(module.rule_names)
        self._locals = 0

    def compile(self) -> Module:
        rules = [self._compile_rule(rule) for rule in self.module.rules]
        return Module(package=self.module.package, rules=rules)

    def compile_query(self, node: Node) -> Node:
        if _contains_call(node):
            raise PolicyParseError("function calls are not supported in queries")
        return node

    def _compile_rule(self, rule: Rule) -> Rule:
        if rule.default and rule.value is not None and _contains_call(rule.value):
            raise PolicyParseError(f"default value of {rule.name!r} must be a constant", *rule.pos)

        body: List[Expr] = []
        for expr in rule.body:
            body.extend(self._compile_expr(expr))

        # head terms are evaluated after the body succeeds
        tail: List[Expr] = []
        key = self._hoist(self._resolve_rules(rule.key), tail) if rule.key is not None else None
        value = self._hoist(self._resolve_rules(rule.value), tail) if rule.value is not None else None
        return Rule(
            name=rule.name,
            body=body + tail,
            key=key,
            value=value,
            default=rule.default,
            pos=rule.pos,
        )

    def _compile_expr(self, expr: Expr) -> List[Expr]:
        prelude: List[Expr] = []
        if expr.is_call:
            operator = expr.terms[0]
            operands = [self._hoist(self._resolve_rules(t), prelude) for t in expr.operands()]
            self._check_call(operator.name, len(operands), expr.pos)
            terms = [operator, *operands]
        else:
            terms = self._hoist(self._resolve_rules(expr.terms), prelude)
        compiled = Expr(terms, negated=expr.negated, pos=expr.pos)
        if expr.negated:
            compiled.prelude = prelude
            return [compiled]
        return prelude + [compiled]

    def _check_call(self, name: str, count: int, pos: Tuple[int, int]) -> None:
        builtin = BUILTINS.get(name)
        if builtin is None:
            raise PolicyParseError(f"undefined function {name}", *pos)
        if builtin.is_unification and count != 2:
            raise PolicyParseError(f"{name} takes exactly 2 operands", *pos)
        if count not in (builtin.arity, builtin.arity + 1):
            raise PolicyParseError(
                f"{name} expects {builtin.arity} arguments, got {count}", *pos
            )

    def _resolve_rules(self, node: Node) -> Node:
        if isinstance(node, Var) and node.name in self.rule_names:
            path = tuple(Value(part) for part in self.module.package) + (Value(node.name),)
            return Ref(Var("data", node.pos), path, node.pos)
        if isinstance(node, Ref):
            return Ref(
                self._resolve_rules(node.head),
                tuple(self._resolve_rules(p) for p in node.path),
                node.pos,
            )
        if isinstance(node, ArrayNode):
            return ArrayNode(tuple(self._resolve_rules(i) for i in node.items), node.pos)
        if isinstance(node, ObjectNode):
            items = tuple((self._resolve_rules(k), self._resolve_rules(v)) for k, v in node.items)
            return ObjectNode(items, node.pos)
        if isinstance(node, Call):
            return Call(node.operator, tuple(self._resolve_rules(a) for a in node.args), node.pos)
        return node

    def _hoist(self, node: Node, prelude: List[Expr]) -> Node:
        if isinstance(node, Call):
            args = [self._hoist(a, prelude) for a in node.args]
            self._check_call(node.operator, len(args), node.pos)
            self._locals += 1
            out = Var(f"__local{self._locals}__", node.pos)
            prelude.append(Expr([Operator(node.operator, node.pos), *args, out], pos=node.pos))
            return out
        if isinstance(node, Ref):
            head = self._hoist(node.head, prelude)
            return Ref(head, tuple(self._hoist(p, prelude) for p in node.path), node.pos)
        if isinstance(node, ArrayNode):
            return ArrayNode(tuple(self._hoist(i, prelude) for i in node.items), node.pos)
        if isinstance(node, ObjectNode):
            items = tuple((self._hoist(k, prelude), self._hoist(v, prelude)) for k, v in node.items)
            return ObjectNode(items, node.pos)
        return node


def _contains_call(node: Node) -> bool:
    if isinstance(node, Call):
        return True
    if isinstance(node, Ref):
        return _contains_call(node.head) or any(_contains_call(p) for p in node.path)
    if isinstance(node, ArrayNode):
        return any(_contains_call(i) for i in node.items)
    if isinstance(node, ObjectNode):
        return any(_contains_call(k) or _contains_call(v) for k, v in node.items)
    return False


def compile_module(text: str) -> Module:
    """Parse and compile policy text."""
    return Compiler(parse_module(text)).compile()


def compile_query(text: str) -> Node:
    return Compiler(Module(package=(), rules=[])).compile_query(parse_query(text))
