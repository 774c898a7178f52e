"""Logging utilities for consistent, context-rich logs across the system."""

import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any, TypeVar, cast

# Type variable for decorator pattern
F = TypeVar("F", bound=Callable[..., Any])


class ContextLogger:
    """Logger that automatically includes context data in all log entries.

    Context is stored per thread, so account workers running side by side in
    a thread pool never see each other's ``account_id`` or ``run_id``.

    Usage:
        logger = ContextLogger(__name__)
        logger.set_context(request_id='123', account_id=456)
        logger.info("Processing started")  # Will include the context automatically

        # Scope extra context to a block:
        with logger.context(run_id="abc"):
            logger.info("Inside the run")

        # To add one-time context for a specific log:
        logger.info("Special operation", extra_context={'operation_id': 789})
    """

    def __init__(self, name: str):
        """Initialize with a standard logger name."""
        self.logger = logging.getLogger(name)
        self._local = threading.local()

    @property
    def _context(self) -> dict[str, Any]:
        ctx = getattr(self._local, "context", None)
        if ctx is None:
            ctx = {}
            self._local.context = ctx
        return ctx

    def get_context(self) -> dict[str, Any]:
        """Return a copy of the current thread's context."""
        return dict(self._context)

    def set_context(self, **kwargs) -> None:
        """Set persistent context data for all subsequent log calls."""
        self._context.update(kwargs)

    def clear_context(self, *keys) -> None:
        """Clear specific keys from context, or all if no keys specified."""
        if not keys:
            self._context.clear()
        else:
            for key in keys:
                self._context.pop(key, None)

    @contextmanager
    def context(self, **kwargs) -> Iterator["ContextLogger"]:
        """Temporarily add context keys, restoring the previous values on exit."""
        previous = self.get_context()
        self._context.update(kwargs)
        try:
            yield self
        finally:
            self._local.context = previous

    def _log(
        self,
        level: int,
        msg: str,
        *args,
        extra_context: dict[str, Any] | None = None,
        **kwargs,
    ) -> None:
        """Internal method to enrich logs with context."""
        log_context = self.get_context()
        if extra_context:
            log_context.update(extra_context)

        kwargs["extra"] = {**(kwargs.get("extra", {})), "context": log_context}

        self.logger.log(level, msg, *args, **kwargs)

    def debug(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log a debug message with context."""
        self._log(logging.DEBUG, msg, *args, extra_context=extra_context, **kwargs)

    def info(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an info message with context."""
        self._log(logging.INFO, msg, *args, extra_context=extra_context, **kwargs)

    def warning(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log a warning message with context."""
        self._log(logging.WARNING, msg, *args, extra_context=extra_context, **kwargs)

    def error(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an error message with context."""
        self._log(logging.ERROR, msg, *args, extra_context=extra_context, **kwargs)

    def exception(
        self, msg: str, *args, extra_context: dict[str, Any] | None = None, **kwargs,
    ) -> None:
        """Log an exception message with context."""
        self._log(
            logging.ERROR,
            msg,
            *args,
            extra_context=extra_context,
            exc_info=True,
            **kwargs,
        )


class ContextFilter(logging.Filter):
    """Make sure every record carries a ``context`` attribute for formatters."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = {}
        return True


def with_request_id(func: F) -> F:
    """Decorator to add a unique request_id to the function's keyword arguments.

    Usage:
        @with_request_id
        def my_task(account_id, _request_id=None):
            logger.set_context(request_id=_request_id)
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        kwargs.setdefault("_request_id", str(uuid.uuid4()))
        return func(*args, **kwargs)

    return cast(F, wrapper)
