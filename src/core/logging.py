"""
Structured Logging Configuration with structlog

Every event emitted while a pipeline run is in flight carries the run's
coordinates (run_id, stage, stage_index, job_id), so one run can be followed
across its stages and provider jobs in any log aggregator.

Provider credentials and job status URLs are scrubbed from events below
WARNING level.
"""

import sys
import logging
from contextvars import ContextVar
from typing import Optional, Any, Dict

import structlog

# Coordinates of the run currently executing in this task
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
stage_var: ContextVar[Optional[str]] = ContextVar("stage", default=None)
stage_index_var: ContextVar[Optional[int]] = ContextVar("stage_index", default=None)
job_id_var: ContextVar[Optional[str]] = ContextVar("job_id", default=None)

PIPELINE_CONTEXT = {
    "run_id": run_id_var,
    "stage": stage_var,
    "stage_index": stage_index_var,
    "job_id": job_id_var,
}

SENSITIVE_FIELDS = ("api_token", "authorization", "api_secret", "status_url")

_QUIET_LEVELS = ("debug", "info")


def add_pipeline_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Attach the current run coordinates; explicit event fields win."""
    for key, var in PIPELINE_CONTEXT.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def scrub_sensitive_fields(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Drop credentials and status URLs from routine events."""
    if method_name in _QUIET_LEVELS:
        for key in SENSITIVE_FIELDS:
            event_dict.pop(key, None)
    return event_dict


def stamp_version(version: str):
    """Processor stamping the application version on every event."""
    def processor(logger, method_name, event_dict):
        event_dict["version"] = version
        return event_dict
    return processor


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    app_version: Optional[str] = None
):
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; if False, output colored console logs
        app_version: Stamped on every event when given
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Every poll is an HTTP call; keep transport chatter out of the run logs
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_pipeline_context,
        scrub_sensitive_fields,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]
    if app_version:
        processors.append(stamp_version(app_version))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=True),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LogContext:
    """
    Bind run coordinates for the duration of a block.

    Only the coordinates given are changed; nested contexts narrow the outer
    one and restore it on exit.

        with LogContext(run_id=run.run_id):
            with LogContext(stage="restoration", stage_index=1):
                logger.info("stage_started")
    """

    def __init__(self, **coordinates: Any):
        unknown = set(coordinates) - set(PIPELINE_CONTEXT)
        if unknown:
            raise TypeError(f"Unknown log coordinates: {', '.join(sorted(unknown))}")
        self.coordinates = {k: v for k, v in coordinates.items() if v is not None}
        self._tokens = []

    def __enter__(self):
        for key, value in self.coordinates.items():
            self._tokens.append((PIPELINE_CONTEXT[key], PIPELINE_CONTEXT[key].set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False
