"""
Data structures for location inference results and requests.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Location(BaseModel):
    """A 1-based position in a source document"""

    file: str = Field(..., description="Document file name")
    line: int = Field(..., ge=1, description="Line number (1-based)")
    column: int = Field(..., ge=1, description="Column number (1-based)")
    path: List[str] = Field(default_factory=list, description="Document path the location was resolved from")
    exact: bool = Field(default=True, description="Whether every path segment was matched")
    unresolved: List[str] = Field(
        default_factory=list, description="Trailing path segments that could not be matched"
    )

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


class InferenceStats(BaseModel):
    """Counters collected during one run"""

    events: int = Field(default=0, description="Trace events observed")
    uses: int = Field(default=0, description="Values inspected by the tracer")
    recorded: int = Field(default=0, description="Uses that carried a document path")
    paths: int = Field(default=0, description="Distinct most-specific paths")
    partial_locations: int = Field(default=0, description="Paths resolved to an inexact location")
    elapsed_ms: int = Field(default=0, description="Total run time")


class InferenceReport(BaseModel):
    """Result of evaluating one policy against one document"""

    run_id: str = Field(..., description="Run ID")
    query: str = Field(..., description="Evaluated query")
    results: List[Any] = Field(default_factory=list, description="Query results as plain values")
    locations: List[Location] = Field(default_factory=list, description="Inspected locations, sorted")
    paths: List[List[str]] = Field(default_factory=list, description="Most-specific traced paths")
    stats: InferenceStats = Field(default_factory=InferenceStats, description="Run statistics")

    def describe(self) -> str:
        """Plain-text rendering used by the command line tool"""
        lines = [f"Results: {self.results}"]
        lines.extend(str(location) for location in self.locations)
        return "\n".join(lines)


class InferenceConfig(BaseModel):
    """Inference options"""

    query: str = Field(default="data.policy.deny", description="Query evaluated when none is given")
    include_partial_locations: bool = Field(
        default=True, description="Report locations whose path could only be partly matched"
    )
    max_document_kb: int = Field(default=2048, ge=1, description="Maximum document size (KB)")


class InferRequest(BaseModel):
    """Request body of POST /api/infer"""

    policy: str = Field(..., description="Policy module text")
    document: str = Field(..., description="YAML or JSON document text")
    query: Optional[str] = Field(default=None, description="Query, defaults to the configured one")
    filename: str = Field(default="document.yaml", description="File name used in locations")


class HealthStatus(BaseModel):
    """Health status"""

    status: str = Field(..., description="Overall status")
    version: str = Field(..., description="Service version")
    settings: Dict[str, Any] = Field(default_factory=dict, description="Effective inference settings")


def create_default_config() -> InferenceConfig:
    """Default inference options"""
    return InferenceConfig()
