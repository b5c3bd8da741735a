# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Deduplicating error reporter that publishes failure summaries to a webhook.

Every distinct failure gets one summary message on the error webhook and one
:class:`FailureRecord` keyed by the SHA-256 of its full text. Repeats only
bump the record's occurrence counter and edit the summary's footer. The full
text is never posted; it is served on demand through the message's
"View Traceback" button (see :mod:`webhook_telemetry.interactions`).
"""

import copy
import hashlib
import threading
import time
import traceback
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import psutil

from .diagnostics import get_diagnostic_logger
from .failure_store import FailureRecord, FailureStore, FailureStoreError
from .metrics import MetricsCollector
from .retry_helper import retry_with_backoff
from .webhook import (
    Webhook,
    WebhookDeliveryError,
    WebhookError,
    WebhookMessage,
    WebhookMessageNotFoundError,
)

VIEW_TRACEBACK_CUSTOM_ID = "error::traceback::view"
SHORT_SUMMARY_LIMIT = 256
BLANK = "\u200b"
RED = 0xFF0000

Field = Tuple[str, str, bool]


def blank_field() -> Field:
    """An empty inline field, used to break embed field rows."""
    return (BLANK, BLANK, True)


def render_failure(error: Any) -> str:
    """Render a failure to its canonical full text.

    Exceptions render as their complete traceback, chained causes included.
    Any other value renders with ``str()``.
    """
    if isinstance(error, BaseException):
        return "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return str(error)


def failure_signature(full_text: str) -> str:
    """Hex SHA-256 digest of the canonical failure text."""
    return hashlib.sha256(full_text.encode("utf-8", errors="replace")).hexdigest()


def truncate_utf8(text: str, limit: int = SHORT_SUMMARY_LIMIT) -> str:
    """Cut *text* to at most *limit* UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= limit:
        return encoded.decode("utf-8")
    # Decoding with "ignore" drops only the incomplete trailing sequence
    return encoded[:limit].decode("utf-8", errors="ignore")


def short_summary(error: Any) -> str:
    """One-line description of a failure, at most ``SHORT_SUMMARY_LIMIT`` bytes."""
    if isinstance(error, BaseException):
        # Built directly: format_exception_only appends __notes__ after the message
        error_type = type(error)
        name = error_type.__qualname__
        if error_type.__module__ not in ("builtins", "__main__"):
            name = f"{error_type.__module__}.{name}"
        detail = str(error)
        message = f"{name}: {detail}" if detail else name
    else:
        message = str(error)
    return truncate_utf8(message or "Unknown error")


def footer_text(occurrences: int) -> str:
    if occurrences == 1:
        return "This error has occurred 1 time!"
    return f"This error has occurred {occurrences} times!"


def collect_environment_fields() -> List[Field]:
    """Live host telemetry appended to every new failure summary."""
    load_five = psutil.getloadavg()[1]
    memory_mib = psutil.virtual_memory().used // (1024 * 1024)
    return [
        ("CPU Usage (5 minutes)", f"{load_five:.2f}", True),
        ("System Memory Usage", f"{memory_mib} MiB", True),
        ("Active Threads", str(threading.active_count()), True),
    ]


def traceback_button_row() -> Dict[str, Any]:
    """Action row with the single "View Traceback" button."""
    return {
        "type": 1,
        "components": [
            {
                "type": 2,
                "style": 4,
                "label": "View Traceback",
                "custom_id": VIEW_TRACEBACK_CUSTOM_ID,
            }
        ],
    }


def with_footer(summary: Dict[str, Any], occurrences: int) -> Dict[str, Any]:
    """Copy of a stored summary embed carrying the occurrence footer."""
    embed = copy.deepcopy(summary)
    embed["footer"] = {"text": footer_text(occurrences)}
    return embed


class WebhookErrorReporter:
    """Reports failures to a webhook, one message per distinct failure."""

    def __init__(
        self,
        webhook: Webhook,
        store: FailureStore,
        service_name: str = "service",
        metrics_collector: Optional[MetricsCollector] = None,
        environment_fields: Callable[[], List[Field]] = collect_environment_fields,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ):
        """Initialize the reporter.

        Args:
            webhook: The error webhook summaries are posted to
            store: Failure store holding deduplication state
            service_name: Shown in the "Service" field of each summary
            metrics_collector: Optional metrics collector
            environment_fields: Provider of the live telemetry fields
            max_attempts: Attempts when deleting a superseded summary
            backoff_seconds: Base backoff between those attempts
        """
        self.webhook = webhook
        self.store = store
        self.service_name = service_name
        self.metrics_collector = metrics_collector
        self.environment_fields = environment_fields
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def report(
        self,
        error: Any,
        event_name: str,
        extra_fields: Iterable[Field] = (),
        author_name: Optional[str] = None,
        author_icon: Optional[str] = None,
    ) -> FailureRecord:
        """Report one occurrence of a failure.

        Args:
            error: Exception or error value
            event_name: Name of the event that triggered the failure
            extra_fields: (name, value, inline) fields shown after the fixed
                context fields of a new summary
            author_name: Optional author shown on a new summary
            author_icon: Optional author icon URL

        Returns:
            The failure record after this occurrence was counted

        Raises:
            FailureStoreError: If the store is unavailable
            WebhookError: If the summary could not be created or updated
        """
        started = time.monotonic()
        full_text = render_failure(error)
        signature = failure_signature(full_text)

        record = self.store.increment_if_exists(signature)
        if record is not None:
            self._push_occurrences(record)
            self._count("updated", started)
            return record

        summary = self._build_summary(error, event_name, extra_fields, author_name, author_icon)
        message_id = self.webhook.execute(
            WebhookMessage(embeds=[with_footer(summary, 1)], components=[traceback_button_row()]),
            wait=True,
        )

        record = FailureRecord(
            signature=signature,
            full_text=full_text,
            message_id=message_id,
            occurrences=1,
            summary=summary,
        )
        try:
            stored = self.store.insert_or_increment(record)
        except FailureStoreError:
            self._discard(message_id, "a store failure")
            raise

        if stored.message_id != message_id:
            # Lost the insert race: another reporter's message is authoritative
            self._discard(message_id, "losing the insert race")
            self._push_occurrences(stored)
            self._count("merged", started)
            return stored

        self._count("created", started)
        return stored

    def report_result(self, event_name: str, error: Any, **kwargs: Any) -> Optional[FailureRecord]:
        """Report *error* unless it is None."""
        if error is None:
            return None
        return self.report(error, event_name, **kwargs)

    def report_safely(self, event_name: str, error: Any, **kwargs: Any) -> Optional[FailureRecord]:
        """Report *error*, writing any failure of the reporter to the diagnostic output.

        For callers with nobody to propagate to (thread hooks, listeners).
        """
        try:
            return self.report_result(event_name, error, **kwargs)
        except Exception as e:
            get_diagnostic_logger().exception(
                f"Failed to report {event_name} error: {e!r}",
                event=event_name,
                original_error=repr(error),
            )
            return None

    def get_full_text(self, message_id: str) -> Optional[str]:
        """Full failure text behind a summary message, or None if unknown."""
        return self.store.get_full_text(str(message_id))

    def _build_summary(
        self,
        error: Any,
        event_name: str,
        extra_fields: Iterable[Field],
        author_name: Optional[str],
        author_icon: Optional[str],
    ) -> Dict[str, Any]:
        fields: List[Field] = [
            ("Event", event_name, True),
            ("Service", self.service_name, True),
            blank_field(),
        ]
        fields.extend(extra_fields)
        fields.extend(self.environment_fields())

        embed: Dict[str, Any] = {
            "title": short_summary(error),
            "color": RED,
            "fields": [
                {
                    "name": name,
                    "value": value if value == BLANK else f"`{value}`",
                    "inline": inline,
                }
                for name, value, inline in fields
            ],
        }
        if author_name:
            embed["author"] = {"name": author_name}
            if author_icon:
                embed["author"]["icon_url"] = author_icon
        return embed

    def _push_occurrences(self, record: FailureRecord) -> None:
        if record.summary is not None:
            embed = with_footer(record.summary, record.occurrences)
        else:
            # Records written without a stored summary: patch the live message
            message = self.webhook.get_message(record.message_id)
            embed = message["embeds"][0]
            embed["footer"] = {"text": footer_text(record.occurrences)}

        self.webhook.edit_message(record.message_id, WebhookMessage(embeds=[embed]))

    def _discard(self, message_id: str, reason: str) -> None:
        """Delete a summary that must not stay live, retrying transient failures.

        A delete that still fails is written to the diagnostic output; the
        caller carries on so the authoritative summary is still updated.
        """
        try:
            retry_with_backoff(
                lambda: self.webhook.delete_message(message_id),
                max_attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
                should_retry=lambda e: isinstance(e, WebhookDeliveryError) and e.is_transient,
                delay_hint=lambda e: getattr(e, "retry_after", None),
            )
        except WebhookMessageNotFoundError:
            # Already gone
            pass
        except WebhookError as e:
            get_diagnostic_logger().error(
                f"Could not delete summary {message_id} after {reason}: {e!r}",
                message_id=message_id,
            )

    def _count(self, outcome: str, started: float) -> None:
        if self.metrics_collector:
            self.metrics_collector.increment("webhook_failures_reported_total", tags={"outcome": outcome})
            self.metrics_collector.observe(
                "webhook_failure_report_seconds",
                time.monotonic() - started,
                tags={"outcome": outcome},
            )
