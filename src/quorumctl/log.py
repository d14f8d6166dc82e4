"""
Structured logging configuration for quorumctl

Everything is logged through structlog to stdout, as console lines or as one
JSON object per line. Reconciles run inside reconcile_context(), so every line
emitted for a cluster carries its name and a per-reconcile id, including lines
from worker threads.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import structlog

# Below DEBUG; emitted through debug() only when -vv is given
TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")

_LEVELS = {0: logging.INFO, 1: logging.DEBUG}

_trace_enabled = False


def drop_trace_events(logger, method_name, event_dict):
    """Drop events marked as trace unless -vv was given"""
    if event_dict.pop("_trace", False) and not _trace_enabled:
        raise structlog.DropEvent
    return event_dict


def setup_logging(verbose: int = 0, json_output: bool = False):
    """
    Configure structured logging for the application

    Args:
        verbose: 0 for INFO, 1 for DEBUG, 2 or more for DEBUG plus trace
        json_output: Render JSON lines, for log shippers
    """
    global _trace_enabled

    log_level = _LEVELS.get(min(verbose, 1), logging.INFO)
    _trace_enabled = verbose >= 2

    # Third-party libraries (httpx, psycopg_pool) log through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors = [
        drop_trace_events,
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def reconcile_context(cluster: str) -> Iterator[str]:
    """Bind the cluster and a fresh reconcile id to every log line inside"""
    reconcile_id = uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(
        cluster=cluster, reconcile_id=reconcile_id
    ):
        yield reconcile_id


class TracingBoundLogger:
    """structlog logger with an extra trace() level"""

    def __init__(self, logger: structlog.BoundLogger):
        self._logger = logger

    def trace(self, msg: str, **kwargs):
        if _trace_enabled:
            self._logger.debug(msg, _trace=True, **kwargs)

    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_logger(name: str) -> TracingBoundLogger:
    """
    Get a structured logger with a trace() method

    Args:
        name: Logger name (typically __name__)
    """
    return TracingBoundLogger(structlog.get_logger(name))
