"""
Logging configuration for lecturecast.

Provides:
- Plain or JSON structured output
- Session/step context tracking
- Performance logging
"""

import asyncio
import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Optional

# Context variables for request tracking
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)
step_id_var: ContextVar[Optional[int]] = ContextVar('step_id', default=None)

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'session_id', 'step_id',
}


class ContextFilter(logging.Filter):
    """Copies the current session/step context onto every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = session_id_var.get()
        record.step_id = step_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        session_id = getattr(record, 'session_id', None)
        if session_id:
            log_data['session_id'] = session_id

        step_id = getattr(record, 'step_id', None)
        if step_id is not None:
            log_data['step_id'] = step_id

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # Custom attributes passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class PerformanceLogger:
    """Logger for performance metrics"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.metrics: Dict[str, list] = {}

    def log_operation(self, operation: str, duration: float, **kwargs):
        """Log an operation's performance"""
        self.logger.info(
            f"Operation {operation} completed",
            extra={
                'operation': operation,
                'duration_ms': round(duration * 1000, 2),
                'performance': True,
                **kwargs
            }
        )
        self.metrics.setdefault(operation, []).append(duration)

    def summary(self) -> Dict[str, Dict[str, float]]:
        out = {}
        for operation, durations in self.metrics.items():
            if durations:
                out[operation] = {
                    'avg_ms': round(sum(durations) / len(durations) * 1000, 2),
                    'max_ms': round(max(durations) * 1000, 2),
                    'count': len(durations),
                }
        return out


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not any(isinstance(f, ContextFilter) for h in root.handlers for f in h.filters):
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(ContextFilter())
        if fmt == 'json':
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(
                logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            )
        root.addHandler(handler)

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Reduce noise from third-party libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('openai').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a module logger with a `.perf` PerformanceLogger attached."""
    logger = logging.getLogger(name)
    if not hasattr(logger, 'perf'):
        logger.perf = PerformanceLogger(logger)
    return logger


def bind_context(session_id: Optional[str] = None, step_id: Optional[int] = None):
    """Set session/step context for the current task; returns reset tokens."""
    tokens = []
    if session_id:
        tokens.append((session_id_var, session_id_var.set(session_id)))
    if step_id is not None:
        tokens.append((step_id_var, step_id_var.set(step_id)))
    return tokens


def reset_context(tokens) -> None:
    for var, token in reversed(tokens):
        var.reset(token)


def log_performance(operation: str):
    """Decorator to log coroutine or function duration via the module logger"""
    def decorator(func):
        logger = get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    logger.perf.log_operation(operation, time.perf_counter() - start)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                logger.perf.log_operation(operation, time.perf_counter() - start)
        return sync_wrapper

    return decorator
