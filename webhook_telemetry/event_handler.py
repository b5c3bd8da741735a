# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Decorator that reports exceptions escaping an event handler."""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional

from .error_reporter import Field

logger = logging.getLogger(__name__)


def reported_handler(
    event_name: str,
    error_reporter: Optional[Any] = None,
    extra_fields: Optional[Callable[..., Iterable[Field]]] = None,
):
    """Decorator for event handlers whose failures must be reported, not raised.

    Args:
        event_name: Name of the event being handled (shown on the summary)
        error_reporter: Reporter to use; when None, the bound instance's
            ``error_reporter`` attribute is used
        extra_fields: Optional callable receiving the handler's arguments and
            returning extra summary fields

    Returns:
        Decorated function that returns None when the handler raised

    Example:
        class Listener:
            def __init__(self, error_reporter):
                self.error_reporter = error_reporter

            @reported_handler("MessageCreate")
            def on_message(self, message):
                ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                # The traceback goes to the failure summary, not the log channel
                logger.error(f"Error handling {event_name} event: {e!r}")

                reporter = error_reporter
                if reporter is None and args and hasattr(args[0], "error_reporter"):
                    reporter = args[0].error_reporter

                if reporter is not None:
                    fields = list(extra_fields(*args, **kwargs)) if extra_fields else []
                    reporter.report_safely(event_name, e, extra_fields=fields)
                return None

        return wrapper
    return decorator
