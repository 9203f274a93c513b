"""
Structured logging.

Records run id, stage, duration and inference counters (traced paths,
resolved locations) as one JSON object per line.
"""

import json
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "policy_locate"

# context variables
current_run_id: ContextVar[Optional[str]] = ContextVar('current_run_id', default=None)
current_stage: ContextVar[Optional[str]] = ContextVar('current_stage', default=None)


class ProcessingStage(Enum):
    """Stages of one inference run"""
    PARSING = "parsing"
    ANNOTATION = "annotation"
    EVALUATION = "evaluation"
    PATH_EXTRACTION = "path_extraction"
    LOCATION_RESOLUTION = "location_resolution"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class StructuredLogEntry:
    """One structured log line"""
    timestamp: str
    level: str
    message: str
    logger: Optional[str] = None
    run_id: Optional[str] = None
    stage: Optional[str] = None

    duration_ms: Optional[float] = None

    # inference counters
    trace_events: Optional[int] = None
    traced_paths: Optional[int] = None
    locations: Optional[int] = None
    partial_locations: Optional[int] = None

    # error information
    error_type: Optional[str] = None
    error_details: Optional[str] = None
    stack_trace: Optional[str] = None

    extra_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # drop unset fields
        return {k: v for k, v in data.items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(',', ':'), default=str)


_COUNTER_FIELDS = ('duration_ms', 'trace_events', 'traced_paths', 'locations', 'partial_locations', 'extra_data')


class StructuredFormatter(logging.Formatter):
    """Formats records as ``StructuredLogEntry`` JSON"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = StructuredLogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            message=record.getMessage(),
            logger=record.name,
            run_id=getattr(record, 'run_id', None) or current_run_id.get(),
            stage=getattr(record, 'stage', None) or current_stage.get(),
        )

        for field_name in _COUNTER_FIELDS:
            if hasattr(record, field_name):
                setattr(log_entry, field_name, getattr(record, field_name))

        if record.exc_info:
            log_entry.error_type = record.exc_info[0].__name__ if record.exc_info[0] else None
            log_entry.error_details = str(record.exc_info[1]) if record.exc_info[1] else None
            log_entry.stack_trace = ''.join(traceback.format_exception(*record.exc_info))

        return log_entry.to_json()


class BusinessLoggerAdapter(logging.LoggerAdapter):
    """Adds stage and result helpers to a logger"""

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        # keep per-call extra instead of replacing it with the adapter's
        return msg, kwargs

    def log_stage_start(self, stage: ProcessingStage, **kwargs):
        current_stage.set(stage.value)
        self.debug(f"start {stage.value}", extra=kwargs)

    def log_stage_end(self, stage: ProcessingStage, duration_ms: float, **kwargs):
        self.debug(f"done {stage.value} in {duration_ms:.1f}ms", extra={
            'duration_ms': duration_ms,
            **kwargs
        })

    def log_inference_result(self, trace_events: int, traced_paths: int, locations: int,
                             partial_locations: int = 0, **kwargs):
        self.info(
            f"inference done: {traced_paths} paths, {locations} locations "
            f"({partial_locations} partial) from {trace_events} events",
            extra={
                'trace_events': trace_events,
                'traced_paths': traced_paths,
                'locations': locations,
                'partial_locations': partial_locations,
                **kwargs
            })

    def log_error_with_context(self, message: str, error: Exception, **kwargs):
        self.error(message, exc_info=(type(error), error, error.__traceback__), extra=kwargs)


class LoggingContextManager:
    """Binds a run id (and optionally a stage) for the duration of a block"""

    def __init__(self, run_id: str, stage: Optional[ProcessingStage] = None):
        self.run_id = run_id
        self.stage = stage.value if stage else None
        self.start_time = time.time()
        self._run_token = None
        self._stage_token = None

    def __enter__(self):
        self.start_time = time.time()
        self._run_token = current_run_id.set(self.run_id)
        if self.stage:
            self._stage_token = current_stage.set(self.stage)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._stage_token:
            current_stage.reset(self._stage_token)
        if self._run_token:
            current_run_id.reset(self._run_token)

    @property
    def duration_ms(self) -> float:
        return (time.time() - self.start_time) * 1000


def setup_structured_logging(log_file: Optional[str] = None,
                             log_level: str = "INFO",
                             enable_console: bool = True) -> BusinessLoggerAdapter:
    """
    Configure the ``policy_locate`` logger.

    Args:
        log_file: JSON-lines log file, none to skip
        log_level: level name
        enable_console: also log human-readable lines to stderr

    Returns:
        business logger adapter over the configured logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger(LOGGER_NAME)
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)8s] [%(name)s] %(message)s',
            datefmt='%H:%M:%S'
        ))
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    return BusinessLoggerAdapter(root_logger)


def get_business_logger(name: str = "inference") -> BusinessLoggerAdapter:
    """Adapter over a child of the ``policy_locate`` logger"""
    return BusinessLoggerAdapter(logging.getLogger(f"{LOGGER_NAME}.{name}"))


class LogAnalyzer:
    """Summarizes the JSON-lines log written by ``setup_structured_logging``"""

    def __init__(self, log_file: str):
        self.log_file = Path(log_file)

    def _entries(self):
        with open(self.log_file, 'r', encoding='utf-8') as f:
            for line in f:
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue

    def analyze_run(self, run_id: str) -> Dict[str, Any]:
        """
        Per-stage durations and outcome of one run.

        Args:
            run_id: run ID

        Returns:
            summary dict, or ``{"error": ...}`` when nothing is found
        """
        if not self.log_file.exists():
            return {"error": "log file does not exist"}

        run_logs = [entry for entry in self._entries() if entry.get('run_id') == run_id]
        if not run_logs:
            return {"error": f"no log entries for run {run_id}"}

        stages: Dict[str, float] = {}
        error_count = 0
        result: Dict[str, Any] = {}
        for log in run_logs:
            stage = log.get('stage')
            if stage and log.get('duration_ms') is not None:
                stages[stage] = stages.get(stage, 0.0) + log['duration_ms']
            if log.get('level') == 'ERROR':
                error_count += 1
            if log.get('traced_paths') is not None:
                result = {
                    "traced_paths": log['traced_paths'],
                    "locations": log.get('locations', 0),
                    "partial_locations": log.get('partial_locations', 0),
                }

        return {
            "run_id": run_id,
            "stages": stages,
            "total_duration_ms": sum(stages.values()),
            "error_count": error_count,
            "completed": bool(result) and error_count == 0,
            **result,
            "log_entries_count": len(run_logs),
        }
