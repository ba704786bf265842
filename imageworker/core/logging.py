"""
Structured logging for the worker.

One JSON object per event on stdout. The run's job id (the source filename)
and the driver's current state are carried in context variables and stamped
onto every event, so a single `jq 'select(.job_id == "poster.jpg")'` pulls a
whole run out of an aggregated log.
"""

import asyncio
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Iterator, Optional

import structlog

from imageworker import __version__

job_id_var: ContextVar[Optional[str]] = ContextVar("job_id", default=None)
stage_var: ContextVar[Optional[str]] = ContextVar("stage", default=None)

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "PIL", "azure", "celery.redirected")


def add_run_context(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp worker version, job id and stage; an explicit `stage=` kwarg is left alone."""
    event_dict["version"] = __version__

    job_id = job_id_var.get()
    if job_id:
        event_dict["job_id"] = job_id

    stage = stage_var.get()
    if stage:
        event_dict.setdefault("stage", stage)
    return event_dict


def add_utc_timestamp(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Route structlog through the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON lines when True, coloured console output otherwise
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            add_utc_timestamp,
            add_run_context,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """
    Bind job id and stage for the duration of a block.

        with LogContext(job_id="poster.jpg", stage="idle"):
            logger.info("worker_started")

    Both variables are restored on exit, even when the block raises.
    """

    def __init__(self, job_id: Optional[str] = None, stage: Optional[str] = None):
        self.job_id = job_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        if self.job_id:
            self._tokens.append((job_id_var, job_id_var.set(self.job_id)))
        if self.stage:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


def clear_job_context():
    """Forget the job id and stage; celery reuses the process for the next task."""
    job_id_var.set(None)
    stage_var.set(None)


@contextmanager
def _timed_stage(logger: structlog.stdlib.BoundLogger, stage: str) -> Iterator[None]:
    stage_var.set(stage)
    logger.info("stage_started", stage=stage)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(
            "stage_failed",
            stage=stage,
            duration_ms=int((time.perf_counter() - start) * 1000),
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    logger.info("stage_completed", stage=stage, duration_ms=int((time.perf_counter() - start) * 1000))


def with_logging(stage: str):
    """
    Run the decorated function as a named stage: the stage is bound for its
    events and its start, duration and failure are logged.

        @with_logging("cleanup")
        def _cleanup(self, source_key): ...
    """
    def decorator(func):
        logger = get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _timed_stage(logger, stage):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with _timed_stage(logger, stage):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator
