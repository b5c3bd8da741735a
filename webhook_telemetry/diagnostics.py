# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Process-local diagnostic output.

Failures of the telemetry machinery itself (a scheduler tick that raised, a
report that could not be delivered) are written here as structured JSON lines
on stdout. Records from this logger are never forwarded to webhooks, so a
broken webhook cannot feed itself.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

DIAGNOSTIC_LOGGER_NAME = "webhook_telemetry.diagnostics"


class DiagnosticLogger:
    """Logger that outputs structured JSON logs to stdout."""

    def __init__(self, level: str = "INFO", name: str = DIAGNOSTIC_LOGGER_NAME):
        """Initialize diagnostic logger.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            name: Logger name; also the stdlib logger records are mirrored to
        """
        self.level = level.upper()
        self.name = name

        self._level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
        }

        if self.level not in self._level_map:
            raise ValueError(f"Invalid log level: {level}. Must be one of {list(self._level_map.keys())}")

        # Mirror to stdlib so caplog and handlers can capture records
        self._stdlib_logger = logging.getLogger(self.name)
        self._stdlib_logger.setLevel(logging.NOTSET)

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        if self._level_map[level] < self._level_map[self.level]:
            return

        exc_info = kwargs.pop("exc_info", None)

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }
        if kwargs:
            log_entry["extra"] = kwargs

        try:
            print(json.dumps(log_entry, default=str), file=sys.stdout, flush=True)
        except Exception as e:
            print(f"{level}: {message} (JSON serialization failed: {e})", file=sys.stderr, flush=True)

        extra = {"extra": kwargs} if kwargs else None
        self._stdlib_logger.log(self._level_map[level], message, exc_info=exc_info, extra=extra)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error-level message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)


_default_logger: DiagnosticLogger | None = None


def get_diagnostic_logger() -> DiagnosticLogger:
    """Return the process-wide diagnostic logger, creating it on first use."""
    global _default_logger
    if _default_logger is None:
        _default_logger = DiagnosticLogger()
    return _default_logger


def delivery_logger(module_name: str) -> logging.Logger:
    """Stdlib logger for modules on the webhook delivery path.

    Their records live under the diagnostic namespace so that delivering a log
    chunk never produces another one.
    """
    return logging.getLogger(f"{DIAGNOSTIC_LOGGER_NAME}.{module_name.rsplit('.', 1)[-1]}")
