"""
Structured logging for the HubSpot deal sync engine.

structlog renders JSON (LOG_JSON=true) or coloured console output. Every
public syncer call runs inside ``logging_context`` so its log lines carry a
trace id plus the pipeline or deal being worked on.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import get_settings

_CONTEXT: dict[str, ContextVar[str | None]] = {
    'trace_id': ContextVar('trace_id', default=None),
    'pipeline_id': ContextVar('pipeline_id', default=None),
    'deal_id': ContextVar('deal_id', default=None),
}


def current_context() -> dict[str, str]:
    """Context values currently set (unset keys omitted)."""
    return {key: var.get() for key, var in _CONTEXT.items() if var.get()}


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that stamps the current sync context onto each event."""
    event_dict.update(current_context())
    return event_dict


def configure_logging(
    json_output: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: JSON lines when True, console renderer otherwise
        log_level: Override log level (defaults to LOG_LEVEL setting)
    """
    level = log_level or get_settings().LOG_LEVEL
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level_num)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**values: str | None) -> Generator[None, None, None]:
    """
    Set trace_id / pipeline_id / deal_id for the duration of a block.

    Usage:
        with logging_context(trace_id=str(uuid4()), pipeline_id='default'):
            logger.info('sync.started')
    """
    unknown = set(values) - set(_CONTEXT)
    if unknown:
        raise TypeError(f'Unknown logging context keys: {sorted(unknown)}')

    tokens = [
        (_CONTEXT[key], _CONTEXT[key].set(value))
        for key, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class PipelineTimer:
    """Wall-clock timings (ms) of the named stages of one sync run."""

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time: float = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - started) * 1000

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }


# Development console output unless LOG_JSON is set
configure_logging(json_output=get_settings().LOG_JSON)
