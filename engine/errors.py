"""Errors raised by the policy engine."""

from typing import Optional


class PolicyError(Exception):
    """Base class for policy parsing and evaluation failures."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.line}:{self.column}: {self.message}"


class PolicyParseError(PolicyError):
    """The policy module text is malformed."""


class PolicyEvalError(PolicyError):
    """Evaluation hit a runtime error (type error, conflict, unsafe variable)."""


class BuiltinError(PolicyEvalError):
    """A built-in function was called with arguments it cannot handle."""
