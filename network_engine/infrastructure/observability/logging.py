"""
Structured logging setup for the network engine.
Provides JSON-formatted logs with consistent fields for batch jobs and workers.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_job_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)


def _add_job_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag entries emitted inside a background job with the job name."""
    job = structlog.contextvars.get_contextvars().get("job")
    if job and "job" not in event_dict:
        event_dict["job"] = job
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_batch_summary(job: str, summary: dict[str, Any], duration_seconds: float) -> None:
    """Log the result of a batch run with consistent fields."""
    logger = get_logger("jobs")

    errors = summary.get("errors") or []
    log_data = {
        "job": job,
        "duration_seconds": round(duration_seconds, 2),
        "error_count": len(errors),
        **{key: value for key, value in summary.items() if key != "errors"},
    }

    if errors:
        logger.warning("Batch completed with errors", sample_errors=errors[:5], **log_data)
    else:
        logger.info("Batch completed", **log_data)
