"""Tokenizer for policy modules."""

import json
import re
from dataclasses import dataclass
from typing import List

from .errors import PolicyParseError

IDENT = "IDENT"
STRING = "STRING"
NUMBER = "NUMBER"
OP = "OP"
NEWLINE = "NEWLINE"
EOF = "EOF"

KEYWORDS = {"package", "import", "default", "not", "some", "if", "contains", "true", "false", "null"}

_TOKEN_SPEC = [
    ("COMMENT", r"#[^\n]*"),
    ("NEWLINE", r"\n"),
    ("SPACE", r"[ \t\r]+"),
    ("NUMBER", r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?"),
    ("STRING", r'"(?:[^"\\\n]|\\.)*"'),
    ("RAWSTRING", r"`[^`]*`"),
    ("IDENT", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("OP", r":=|==|!=|<=|>=|[<>=+\-*/%()\[\]{},;.:]"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    value: object
    line: int
    column: int

    def is_op(self, *texts: str) -> bool:
        return self.kind == OP and self.text in texts

    def is_keyword(self, *words: str) -> bool:
        return self.kind == IDENT and self.text in words


def tokenize(text: str) -> List[Token]:
    """Split policy text into tokens; consecutive newlines collapse to one."""
    tokens: List[Token] = []
    line = 1
    line_start = 0
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        column = pos - line_start + 1
        if match is None:
            raise PolicyParseError(f"unexpected character {text[pos]!r}", line, column)
        kind = match.lastgroup
        chunk = match.group()
        if kind == "NEWLINE":
            if tokens and tokens[-1].kind != NEWLINE:
                tokens.append(Token(NEWLINE, chunk, None, line, column))
            line += 1
            line_start = match.end()
        elif kind == "NUMBER":
            value = float(chunk) if any(c in chunk for c in ".eE") else int(chunk)
            tokens.append(Token(NUMBER, chunk, value, line, column))
        elif kind == "STRING":
            try:
                value = json.loads(chunk)
            except json.JSONDecodeError as e:
                raise PolicyParseError(f"invalid string literal: {e.msg}", line, column) from e
            tokens.append(Token(STRING, chunk, value, line, column))
        elif kind == "RAWSTRING":
            tokens.append(Token(STRING, chunk, chunk[1:-1], line, column))
            newlines = chunk.count("\n")
            if newlines:
                line += newlines
                line_start = pos + chunk.rfind("\n") + 1
        elif kind in ("IDENT", "OP"):
            tokens.append(Token(kind, chunk, chunk, line, column))
        pos = match.end()
    tokens.append(Token(EOF, "", None, line, pos - line_start + 1))
    return tokens
