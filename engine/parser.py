"""
Recursive-descent parser for policy modules.

Grammar (informal)::

    module     := "package" name { import | default | rule }
    rule       := IDENT "[" term "]" ["if"] body
                | IDENT "contains" term ["if"] body
                | IDENT (":=" | "=") term [["if"] body]
                | IDENT ["if"] body
    default    := "default" IDENT (":=" | "=") term
    body       := "{" stmt { (NEWLINE | ";") stmt } "}"
    stmt       := "some" IDENT {"," IDENT}
                | ["not"] relation [(":=" | "=") relation]
    relation   := arith [("==" | "!=" | "<" | "<=" | ">" | ">=") arith]
    arith      := factor {("+" | "-") factor}
    factor     := unary {("*" | "/" | "%") unary}
    unary      := "-" unary | postfix
    postfix    := primary {"." IDENT | "[" relation "]" | "(" args ")"}
"""

from typing import List, Optional, Tuple

from .errors import PolicyParseError
from .lexer import EOF, IDENT, NEWLINE, NUMBER, OP, STRING, Token, tokenize
from .terms import (
    ASSIGN,
    EQ,
    ArrayNode,
    Call,
    Expr,
    Module,
    Node,
    ObjectNode,
    Operator,
    Ref,
    Rule,
    Value,
    Var,
)

COMPARISONS = {"==": "equal", "!=": "neq", "<": "lt", "<=": "lte", ">": "gt", ">=": "gte"}
ADDITIVE = {"+": "plus", "-": "minus"}
MULTIPLICATIVE = {"*": "mul", "/": "div", "%": "rem"}

_RESERVED_NAMES = {"package", "import", "default", "not", "some"}


class Parser:
    def __init__(self, text: str):
        self.tokens = tokenize(text)
        self.index = 0
        self._wildcards = 0

    # token helpers

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != EOF:
            self.index += 1
        return token

    def error(self, message: str, token: Optional[Token] = None) -> PolicyParseError:
        token = token or self.current
        found = token.text or "end of input"
        return PolicyParseError(f"{message} (found {found!r})", token.line, token.column)

    def expect_op(self, text: str) -> Token:
        if not self.current.is_op(text):
            raise self.error(f"expected {text!r}")
        return self.advance()

    def expect_ident(self) -> Token:
        if self.current.kind != IDENT or self.current.text in _RESERVED_NAMES:
            raise self.error("expected identifier")
        return self.advance()

    def skip_newlines(self) -> None:
        while self.current.kind == NEWLINE:
            self.advance()

    def end_of_statement(self) -> None:
        if self.current.kind in (NEWLINE, EOF):
            self.skip_newlines()
            return
        raise self.error("expected end of line")

    # module level

    def parse_module(self) -> Module:
        self.skip_newlines()
        if not self.current.is_keyword("package"):
            raise self.error("expected 'package' declaration")
        self.advance()
        package = self._parse_dotted_name()
        self.end_of_statement()

        rules: List[Rule] = []
        while self.current.kind != EOF:
            if self.current.is_keyword("import"):
                self._skip_import()
            elif self.current.is_keyword("default"):
                rules.append(self._parse_default())
            else:
                rules.append(self._parse_rule())
            self.end_of_statement()
        return Module(package=package, rules=rules)

    def parse_query(self) -> Node:
        self.skip_newlines()
        node = self.parse_relation()
        self.skip_newlines()
        if self.current.kind != EOF:
            raise self.error("unexpected trailing input in query")
        return node

    def _parse_dotted_name(self) -> Tuple[str, ...]:
        parts = [self.expect_ident().text]
        while self.current.is_op("."):
            self.advance()
            parts.append(self.expect_ident().text)
        return tuple(parts)

    def _skip_import(self) -> None:
        self.advance()
        while self.current.kind not in (NEWLINE, EOF):
            self.advance()

    def _parse_default(self) -> Rule:
        start = self.advance()
        name = self.expect_ident()
        if not (self.current.is_op("=") or self.current.is_op(":=")):
            raise self.error("expected '=' or ':=' after default rule name")
        self.advance()
        value = self.parse_term()
        return Rule(name=name.text, body=[], value=value, default=True, pos=(start.line, start.column))

    def _parse_rule(self) -> Rule:
        name = self.expect_ident()
        pos = (name.line, name.column)
        if self.current.is_op("["):
            self.advance()
            key = self.parse_term()
            self.expect_op("]")
            self._optional_if()
            return Rule(name=name.text, body=self._parse_body(), key=key, pos=pos)
        if self.current.is_keyword("contains"):
            self.advance()
            key = self.parse_term()
            self._optional_if()
            return Rule(name=name.text, body=self._parse_body(), key=key, pos=pos)
        if self.current.is_op("=") or self.current.is_op(":="):
            self.advance()
            value = self.parse_term()
            body: List[Expr] = []
            if self._optional_if() or self.current.is_op("{"):
                body = self._parse_body()
            return Rule(name=name.text, body=body, value=value, pos=pos)
        self._optional_if()
        if self.current.is_op("{"):
            return Rule(name=name.text, body=self._parse_body(), value=Value(True, pos), pos=pos)
        raise self.error(f"expected rule body for {name.text!r}")

    def _optional_if(self) -> bool:
        if self.current.is_keyword("if"):
            self.advance()
            return True
        return False

    def _parse_body(self) -> List[Expr]:
        self.expect_op("{")
        body: List[Expr] = []
        while True:
            while self.current.kind == NEWLINE or self.current.is_op(";"):
                self.advance()
            if self.current.is_op("}"):
                closing = self.advance()
                break
            if self.current.kind == EOF:
                raise self.error("unterminated rule body")
            body.extend(self._parse_statement())
            if not (self.current.kind == NEWLINE or self.current.is_op(";") or self.current.is_op("}")):
                raise self.error("expected newline, ';' or '}' after expression")
        if not body:
            raise self.error("rule body must not be empty", closing)
        return body

    def _parse_statement(self) -> List[Expr]:
        start = self.current
        pos = (start.line, start.column)
        if start.is_keyword("some"):
            self.advance()
            self.expect_ident()
            while self.current.is_op(","):
                self.advance()
                self.expect_ident()
            return []

        negated = False
        if start.is_keyword("not"):
            self.advance()
            negated = True

        left = self.parse_relation()
        if self.current.is_op(":=") or self.current.is_op("="):
            op = self.advance()
            if op.text == ":=" and not isinstance(left, (Var, ArrayNode)):
                raise self.error("cannot assign to non-variable", op)
            right = self.parse_relation()
            operator = Operator(ASSIGN if op.text == ":=" else EQ, (op.line, op.column))
            return [Expr([operator, left, right], negated=negated, pos=pos)]
        if isinstance(left, Call):
            return [Expr([Operator(left.operator, left.pos), *left.args], negated=negated, pos=pos)]
        return [Expr(left, negated=negated, pos=pos)]

    # terms

    def parse_term(self) -> Node:
        return self.parse_relation()

    def parse_relation(self) -> Node:
        left = self._parse_arith()
        if self.current.kind == OP and self.current.text in COMPARISONS:
            op = self.advance()
            right = self._parse_arith()
            return Call(COMPARISONS[op.text], (left, right), (op.line, op.column))
        return left

    def _parse_arith(self) -> Node:
        left = self._parse_factor()
        while self.current.kind == OP and self.current.text in ADDITIVE:
            op = self.advance()
            right = self._parse_factor()
            left = Call(ADDITIVE[op.text], (left, right), (op.line, op.column))
        return left

    def _parse_factor(self) -> Node:
        left = self._parse_unary()
        while self.current.kind == OP and self.current.text in MULTIPLICATIVE:
            op = self.advance()
            right = self._parse_unary()
            left = Call(MULTIPLICATIVE[op.text], (left, right), (op.line, op.column))
        return left

    def _parse_unary(self) -> Node:
        if self.current.is_op("-"):
            op = self.advance()
            if self.current.kind == NUMBER:
                number = self.advance()
                return Value(-number.value, (op.line, op.column))
            operand = self._parse_unary()
            return Call("minus", (Value(0), operand), (op.line, op.column))
        return self._parse_postfix()

    def _parse_postfix(self) -> Node:
        node = self._parse_primary()
        while True:
            if self.current.is_op("."):
                self.advance()
                field = self.expect_ident()
                node = _extend_ref(node, Value(field.text, (field.line, field.column)))
            elif self.current.is_op("["):
                self.advance()
                self.skip_newlines()
                elem = self.parse_relation()
                self.skip_newlines()
                self.expect_op("]")
                node = _extend_ref(node, elem)
            elif self.current.is_op("("):
                paren = self.advance()
                name = _function_name(node)
                if name is None:
                    raise self.error("expression is not callable", paren)
                args = self._parse_sequence(")")
                node = Call(name, tuple(args), node.pos)
            else:
                return node

    def _parse_primary(self) -> Node:
        token = self.current
        pos = (token.line, token.column)
        if token.kind in (STRING, NUMBER):
            self.advance()
            return Value(token.value, pos)
        if token.kind == IDENT:
            if token.text in _RESERVED_NAMES:
                raise self.error("unexpected keyword")
            self.advance()
            if token.text == "true":
                return Value(True, pos)
            if token.text == "false":
                return Value(False, pos)
            if token.text == "null":
                return Value(None, pos)
            if token.text == "_":
                self._wildcards += 1
                return Var(f"__wildcard{self._wildcards}__", pos)
            return Var(token.text, pos)
        if token.is_op("["):
            self.advance()
            return ArrayNode(tuple(self._parse_sequence("]")), pos)
        if token.is_op("{"):
            self.advance()
            return ObjectNode(tuple(self._parse_object_items()), pos)
        if token.is_op("("):
            self.advance()
            self.skip_newlines()
            node = self.parse_relation()
            self.skip_newlines()
            self.expect_op(")")
            return node
        raise self.error("expected term")

    def _parse_sequence(self, closing: str) -> List[Node]:
        items: List[Node] = []
        self.skip_newlines()
        while not self.current.is_op(closing):
            items.append(self.parse_relation())
            self.skip_newlines()
            if self.current.is_op(","):
                self.advance()
                self.skip_newlines()
            elif not self.current.is_op(closing):
                raise self.error(f"expected ',' or {closing!r}")
        self.advance()
        return items

    def _parse_object_items(self) -> List[Tuple[Node, Node]]:
        items: List[Tuple[Node, Node]] = []
        self.skip_newlines()
        while not self.current.is_op("}"):
            key = self.parse_relation()
            self.skip_newlines()
            self.expect_op(":")
            self.skip_newlines()
            value = self.parse_relation()
            items.append((key, value))
            self.skip_newlines()
            if self.current.is_op(","):
                self.advance()
                self.skip_newlines()
            elif not self.current.is_op("}"):
                raise self.error("expected ',' or '}'")
        self.advance()
        return items


def _extend_ref(node: Node, elem: Node) -> Ref:
    if isinstance(node, Ref):
        return Ref(node.head, node.path + (elem,), node.pos)
    return Ref(node, (elem,), node.pos)


def _function_name(node: Node) -> Optional[str]:
    if isinstance(node, Var):
        return node.name
    if isinstance(node, Ref) and isinstance(node.head, Var):
        parts = [node.head.name]
        for elem in node.path:
            if not (isinstance(elem, Value) and isinstance(elem.value, str)):
                return None
            parts.append(elem.value)
        return ".".join(parts)
    return None


def parse_module(text: str) -> Module:
    """Parse policy text into an uncompiled module."""
    return Parser(text).parse_module()


def parse_query(text: str) -> Node:
    return Parser(text).parse_query()
