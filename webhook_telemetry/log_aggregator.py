# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Buffered log aggregation with periodic, size-bounded webhook delivery.

Producers call :meth:`WebhookLogAggregator.record` (directly or through
:class:`WebhookLogHandler`) from any thread. The scheduler calls
:meth:`WebhookLogAggregator.flush` once per tick, which swaps the buffer for an
empty one and delivers each severity's lines in chunks of at most
``MESSAGE_CONTENT_LIMIT`` bytes.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from .chunking import chunk_lines, format_lines
from .diagnostics import DIAGNOSTIC_LOGGER_NAME, get_diagnostic_logger
from .metrics import MetricsCollector
from .retry_helper import retry_with_backoff
from .scheduler import PeriodicTask
from .severity import Severity
from .webhook import MESSAGE_CONTENT_LIMIT, Webhook, WebhookDeliveryError, WebhookError, WebhookMessage

PACKAGE_LOGGER_PREFIX = "webhook_telemetry"


@dataclass(frozen=True)
class LogEvent:
    """A single buffered log emission."""

    severity: Severity
    source: str
    text: str


class WebhookLogAggregator(PeriodicTask):
    """Buffers log events and flushes them to the normal and error webhooks."""

    name = "Logging"
    interval_seconds = 1.1

    def __init__(
        self,
        normal_webhook: Webhook,
        error_webhook: Webhook,
        webhook_name: str = "Telemetry",
        metrics_collector: Optional[MetricsCollector] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        chunk_limit: int = MESSAGE_CONTENT_LIMIT,
        interval_seconds: Optional[float] = None,
    ):
        """Initialize the aggregator.

        Args:
            normal_webhook: Destination for severities below ERROR
            error_webhook: Destination for ERROR
            webhook_name: Display name prefix; the severity is appended
            metrics_collector: Optional metrics collector
            max_attempts: Delivery attempts per chunk before the flush aborts
            backoff_seconds: Base backoff between delivery attempts
            chunk_limit: Maximum chunk size in bytes
            interval_seconds: Tick interval override
        """
        self.normal_webhook = normal_webhook
        self.error_webhook = error_webhook
        self.webhook_name = webhook_name
        self.metrics_collector = metrics_collector
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.chunk_limit = chunk_limit
        if interval_seconds is not None:
            self.interval_seconds = interval_seconds

        self._pending: Dict[Severity, List[LogEvent]] = {}
        self._lock = threading.Lock()

    def record(self, source: str, text: str, severity: Severity = Severity.INFO) -> None:
        """Buffer one log event for the next flush. Safe from any thread."""
        event = LogEvent(severity=severity, source=source, text=text)
        with self._lock:
            self._pending.setdefault(severity, []).append(event)

    def pending_count(self) -> int:
        """Number of events waiting for the next flush."""
        with self._lock:
            return sum(len(events) for events in self._pending.values())

    def _drain(self) -> Dict[Severity, List[LogEvent]]:
        with self._lock:
            pending, self._pending = self._pending, {}
        return pending

    def run_once(self) -> None:
        self.flush()

    def flush(self) -> None:
        """Drain the buffer and deliver every severity's lines.

        Raises:
            WebhookError: If a chunk still fails after all delivery attempts.
                The flush stops there and the undelivered lines of this tick
                are dropped.
        """
        started = time.monotonic()
        pending = self._drain()
        severities = sorted(pending)

        for position, severity in enumerate(severities):
            lines = [
                line
                for event in pending[severity]
                for line in format_lines(event.source, event.text)
            ]
            chunks = chunk_lines(lines, self.chunk_limit)

            if severity.is_error:
                webhook, destination = self.error_webhook, "error"
            else:
                webhook, destination = self.normal_webhook, "normal"

            if self.metrics_collector:
                self.metrics_collector.increment(
                    "webhook_log_events_total",
                    value=len(pending[severity]),
                    tags={"severity": severity.display_name},
                )

            for index, chunk in enumerate(chunks):
                message = WebhookMessage(
                    content=chunk,
                    username=f"{self.webhook_name} [{severity.display_name}]",
                    avatar_url=severity.icon_url,
                )
                try:
                    self._deliver(webhook, message, destination)
                except WebhookError:
                    dropped = sum(c.count("\n") for c in chunks[index:]) + sum(
                        len(format_lines(event.source, event.text))
                        for later in severities[position + 1:]
                        for event in pending[later]
                    )
                    get_diagnostic_logger().error(
                        f"Dropping {dropped} undelivered log lines",
                        destination=destination,
                        severity=severity.display_name,
                    )
                    if self.metrics_collector:
                        self.metrics_collector.increment("webhook_log_lines_dropped_total", value=dropped)
                    raise

                if self.metrics_collector:
                    self.metrics_collector.increment(
                        "webhook_log_chunks_total", tags={"destination": destination}
                    )

        if self.metrics_collector:
            self.metrics_collector.observe("webhook_log_flush_seconds", time.monotonic() - started)

    def _deliver(self, webhook: Webhook, message: WebhookMessage, destination: str) -> None:
        def count_retry(error: Exception, attempt: int) -> None:
            if self.metrics_collector:
                self.metrics_collector.increment(
                    "webhook_log_delivery_retries_total", tags={"destination": destination}
                )

        retry_with_backoff(
            lambda: webhook.execute(message, wait=False),
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            should_retry=lambda e: isinstance(e, WebhookDeliveryError) and e.is_transient,
            delay_hint=lambda e: getattr(e, "retry_after", None),
            on_retry=count_retry,
        )


class WebhookLogHandler(logging.Handler):
    """Forward stdlib log records into a :class:`WebhookLogAggregator`.

    Records from this package or from loggers under *log_prefix* are forwarded
    down to *max_verbosity*; records from any other logger only from WARNING
    up. The diagnostic logger is never forwarded.
    """

    def __init__(
        self,
        aggregator: WebhookLogAggregator,
        max_verbosity: Severity = Severity.INFO,
        log_prefix: Optional[str] = None,
    ):
        super().__init__(level=logging.NOTSET)
        self.aggregator = aggregator
        self.max_verbosity = max_verbosity
        self.prefixes = tuple(p for p in (PACKAGE_LOGGER_PREFIX, log_prefix) if p)

    def _matches_prefix(self, name: str) -> bool:
        return any(name == prefix or name.startswith(prefix + ".") for prefix in self.prefixes)

    def enabled(self, record: logging.LogRecord) -> bool:
        """Whether *record* should be forwarded to the webhooks."""
        if record.name == DIAGNOSTIC_LOGGER_NAME or record.name.startswith(DIAGNOSTIC_LOGGER_NAME + "."):
            return False

        severity = Severity.from_logging_level(record.levelno)
        if self._matches_prefix(record.name):
            return severity >= self.max_verbosity
        return severity >= Severity.WARN

    def emit(self, record: logging.LogRecord) -> None:
        if not self.enabled(record):
            return
        try:
            self.aggregator.record(
                record.name,
                self.format(record),
                Severity.from_logging_level(record.levelno),
            )
        except Exception:
            self.handleError(record)
