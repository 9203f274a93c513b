"""Failures that abort a location inference run."""

from typing import Optional


class InferenceError(Exception):
    """Base class; ``source`` names the file or input that caused the failure."""

    kind = "inference"

    def __init__(self, message: str, source: Optional[str] = None):
        self.message = message
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class DocumentReadError(InferenceError):
    kind = "document_read"


class DocumentParseError(InferenceError):
    kind = "document_parse"


class PolicyReadError(InferenceError):
    kind = "policy_read"


class EvaluationError(InferenceError):
    """The policy is malformed or its evaluation raised an error."""

    kind = "evaluation"
