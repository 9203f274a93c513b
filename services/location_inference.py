"""
Location inference.

Runs a policy against a document with a usage tracer attached and reports the
document locations the policy actually inspected:

1. parse the document into a value and a position tree;
2. annotate every value with its path;
3. evaluate the query, recording used paths;
4. collapse the paths to the most specific ones;
5. resolve each path to ``file:line:column``.
"""

import logging
import os
import time
from pathlib import Path as FilePath
from typing import List, Optional, Union

from engine import Module, PolicyError, Query, Term, compile_module
from schemas.locations import InferenceConfig, InferenceReport, InferenceStats, Location, create_default_config

from .annotator import annotate_document
from .documents import load_value, read_text
from .errors import DocumentParseError, DocumentReadError, EvaluationError, InferenceError
from .path_tree import Path
from .source_mapper import Source, locate_all
from .structured_logging import LoggingContextManager, ProcessingStage, get_business_logger
from .usage_tracer import UsageTracer

logger = logging.getLogger(__name__)


class LocationInferrer:
    """Location inference service; one instance can serve many runs."""

    def __init__(self, config: Optional[InferenceConfig] = None):
        self.config = config or create_default_config()
        self.logger = get_business_logger("inference")

    def infer(
        self,
        policy_file: Union[str, FilePath],
        document_file: Union[str, FilePath],
        query: Optional[str] = None,
    ) -> InferenceReport:
        """Read both files and run ``infer_text``."""
        try:
            policy_text = read_text(policy_file, policy=True)
            document_text = read_text(document_file)
        except InferenceError as e:
            self.logger.log_error_with_context(f"inference failed: {e}", e)
            raise
        return self.infer_text(
            policy_text,
            document_text,
            query=query,
            document_name=str(document_file),
            policy_name=str(policy_file),
        )

    def infer_text(
        self,
        policy_text: str,
        document_text: str,
        query: Optional[str] = None,
        document_name: str = "document.yaml",
        policy_name: str = "policy.rego",
    ) -> InferenceReport:
        query = query or self.config.query
        run_id = os.urandom(6).hex()
        start_time = time.time()

        with LoggingContextManager(run_id):
            try:
                self._check_size(document_text, document_name)

                with LoggingContextManager(run_id, ProcessingStage.PARSING) as ctx:
                    value = load_value(document_text, document_name)
                    source = Source.from_text(document_text, document_name)
                    module = self._compile(policy_text, policy_name)
                    self.logger.log_stage_end(ProcessingStage.PARSING, ctx.duration_ms)

                with LoggingContextManager(run_id, ProcessingStage.ANNOTATION) as ctx:
                    try:
                        input_term = annotate_document(value)
                    except TypeError as e:
                        raise DocumentParseError(str(e), document_name) from e
                    except RecursionError as e:
                        raise DocumentParseError("document is nested too deeply", document_name) from e
                    self.logger.log_stage_end(ProcessingStage.ANNOTATION, ctx.duration_ms)

                with LoggingContextManager(run_id, ProcessingStage.EVALUATION) as ctx:
                    tracer = UsageTracer()
                    results = self._evaluate(query, module, input_term, tracer, policy_name)
                    self.logger.log_stage_end(
                        ProcessingStage.EVALUATION, ctx.duration_ms, trace_events=tracer.stats["events"]
                    )
            except InferenceError as e:
                with LoggingContextManager(run_id, ProcessingStage.ERROR):
                    self.logger.log_error_with_context(f"inference failed: {e}", e)
                raise

            with LoggingContextManager(run_id, ProcessingStage.PATH_EXTRACTION) as ctx:
                paths = used_paths(tracer)
                self.logger.log_stage_end(ProcessingStage.PATH_EXTRACTION, ctx.duration_ms, traced_paths=len(paths))

            with LoggingContextManager(run_id, ProcessingStage.LOCATION_RESOLUTION) as ctx:
                locations = locate_all(source, paths)
                partial = [loc for loc in locations if not loc.exact]
                if partial and not self.config.include_partial_locations:
                    logger.info(f"omitting {len(partial)} partially matched location(s)")
                    locations = [loc for loc in locations if loc.exact]
                self.logger.log_stage_end(ProcessingStage.LOCATION_RESOLUTION, ctx.duration_ms)

            stats = InferenceStats(
                events=tracer.stats["events"],
                uses=tracer.stats["uses"],
                recorded=tracer.stats["recorded"],
                paths=len(paths),
                partial_locations=len(partial),
                elapsed_ms=int((time.time() - start_time) * 1000),
            )

            with LoggingContextManager(run_id, ProcessingStage.COMPLETED):
                self.logger.log_inference_result(
                    trace_events=stats.events,
                    traced_paths=stats.paths,
                    locations=len(locations),
                    partial_locations=stats.partial_locations,
                    duration_ms=stats.elapsed_ms,
                )

        return InferenceReport(
            run_id=run_id,
            query=query,
            results=[term.to_python() for term in results],
            locations=locations,
            paths=[list(path) for path in sorted(paths)],
            stats=stats,
        )

    def _check_size(self, text: str, name: str) -> None:
        limit = self.config.max_document_kb
        if len(text.encode("utf-8")) > limit * 1024:
            raise DocumentReadError(f"document is larger than {limit} KB", name)

    @staticmethod
    def _compile(policy_text: str, policy_name: str) -> Module:
        try:
            return compile_module(policy_text)
        except PolicyError as e:
            raise EvaluationError(str(e), policy_name) from e

    @staticmethod
    def _evaluate(
        query: str, module: Module, input_term: Term, tracer: UsageTracer, policy_name: str
    ) -> List[Term]:
        try:
            return Query(query, module, input=input_term, tracers=[tracer]).eval()
        except PolicyError as e:
            raise EvaluationError(str(e), policy_name) from e


def used_paths(tracer: UsageTracer) -> List[Path]:
    """Most specific paths recorded by ``tracer``; the bare root is dropped."""
    return [path for path in tracer.tree.list() if path]


def infer_locations(
    policy_file: Union[str, FilePath],
    document_file: Union[str, FilePath],
    query: Optional[str] = None,
    config: Optional[InferenceConfig] = None,
) -> List[Location]:
    """Locations in ``document_file`` inspected by ``query`` over ``policy_file``."""
    return LocationInferrer(config).infer(policy_file, document_file, query=query).locations
