# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Webhook telemetry for long-running services.

Buffers log records and flushes them to webhooks in size-bounded chunks, and
collapses repeated failures into a single webhook message with a live
occurrence counter.

Example:
    >>> from webhook_telemetry import Telemetry, TelemetryConfig
    >>>
    >>> telemetry = Telemetry.from_config(TelemetryConfig.from_env())
    >>> telemetry.start()
    >>> try:
    ...     do_work()
    ... except Exception as e:
    ...     telemetry.reporter.report(e, "do_work")
"""

__version__ = "0.1.0"

from .chunking import chunk_lines, format_lines
from .config import BotListTokens, EnvConfigProvider, TelemetryConfig
from .diagnostics import DiagnosticLogger, get_diagnostic_logger
from .error_reporter import (
    VIEW_TRACEBACK_CUSTOM_ID,
    WebhookErrorReporter,
    blank_field,
    failure_signature,
    render_failure,
    truncate_utf8,
)
from .event_handler import reported_handler
from .failure_store import (
    FailureRecord,
    FailureStore,
    FailureStoreConnectionError,
    FailureStoreError,
    FailureStoreNotConnectedError,
    create_failure_store,
)
from .inmemory_failure_store import InMemoryFailureStore
from .interactions import (
    InteractionResponder,
    InteractionResponse,
    TracebackButtonListener,
    handle_component_interaction,
)
from .log_aggregator import LogEvent, WebhookLogAggregator, WebhookLogHandler
from .metrics import MetricsCollector, NoOpMetricsCollector, PrometheusMetricsCollector
from .mongo_failure_store import MongoFailureStore
from .scheduler import PeriodicTask, run_forever, start_in_thread
from .severity import Severity
from .stat_pusher import BotStats, StatPusher
from .telemetry import Telemetry
from .webhook import (
    DiscordWebhook,
    InMemoryWebhook,
    Webhook,
    WebhookDeliveryError,
    WebhookError,
    WebhookFile,
    WebhookMessage,
    WebhookMessageNotFoundError,
    create_webhook,
)

__all__ = [
    # Version
    "__version__",
    # Composition
    "Telemetry",
    "TelemetryConfig",
    "BotListTokens",
    "EnvConfigProvider",
    # Scheduling
    "PeriodicTask",
    "run_forever",
    "start_in_thread",
    # Logging
    "Severity",
    "LogEvent",
    "WebhookLogAggregator",
    "WebhookLogHandler",
    "chunk_lines",
    "format_lines",
    "DiagnosticLogger",
    "get_diagnostic_logger",
    # Error reporting
    "WebhookErrorReporter",
    "VIEW_TRACEBACK_CUSTOM_ID",
    "blank_field",
    "failure_signature",
    "render_failure",
    "truncate_utf8",
    "reported_handler",
    "InteractionResponder",
    "InteractionResponse",
    "TracebackButtonListener",
    "handle_component_interaction",
    # Failure stores
    "FailureRecord",
    "FailureStore",
    "InMemoryFailureStore",
    "MongoFailureStore",
    "create_failure_store",
    # Webhooks
    "Webhook",
    "DiscordWebhook",
    "InMemoryWebhook",
    "WebhookMessage",
    "WebhookFile",
    "create_webhook",
    # Stat push
    "BotStats",
    "StatPusher",
    # Metrics
    "MetricsCollector",
    "NoOpMetricsCollector",
    "PrometheusMetricsCollector",
    # Exceptions
    "WebhookError",
    "WebhookDeliveryError",
    "WebhookMessageNotFoundError",
    "FailureStoreError",
    "FailureStoreNotConnectedError",
    "FailureStoreConnectionError",
]
