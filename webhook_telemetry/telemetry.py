# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Composition root: wires webhooks, store, aggregator and reporter together.

A service creates one :class:`Telemetry` at startup, calls :meth:`start`, and
hands ``telemetry.reporter`` to whatever needs to report failures. Logging
needs no handle at all: once started, stdlib log records are buffered through
the root logger.
"""

import logging
import sys
import threading
from typing import Callable, Dict, List, Optional

from .config import TelemetryConfig
from .diagnostics import get_diagnostic_logger
from .error_reporter import WebhookErrorReporter
from .failure_store import FailureStore, create_failure_store
from .log_aggregator import PACKAGE_LOGGER_PREFIX, WebhookLogAggregator, WebhookLogHandler
from .metrics import MetricsCollector
from .scheduler import start_in_thread
from .stat_pusher import BotStats, StatPusher
from .webhook import Webhook, WebhookError, create_webhook


class Telemetry:
    """Owns the telemetry components and their background threads."""

    def __init__(
        self,
        config: TelemetryConfig,
        normal_webhook: Webhook,
        error_webhook: Webhook,
        store: FailureStore,
        metrics_collector: Optional[MetricsCollector] = None,
        stats_provider: Optional[Callable[[], BotStats]] = None,
    ):
        self.config = config
        self.store = store
        self.aggregator = WebhookLogAggregator(
            normal_webhook,
            error_webhook,
            webhook_name=config.webhook_name,
            metrics_collector=metrics_collector,
            max_attempts=config.delivery_max_attempts,
            backoff_seconds=config.delivery_backoff_seconds,
            interval_seconds=config.flush_interval,
        )
        self.reporter = WebhookErrorReporter(
            error_webhook,
            store,
            service_name=config.service_name,
            metrics_collector=metrics_collector,
            max_attempts=config.delivery_max_attempts,
            backoff_seconds=config.delivery_backoff_seconds,
        )
        self.log_handler = WebhookLogHandler(
            self.aggregator,
            max_verbosity=config.max_verbosity,
            log_prefix=config.log_prefix,
        )

        tokens = config.bot_list_tokens
        has_tokens = any((tokens.top_gg, tokens.discord_bots_gg, tokens.bots_on_discord))
        self.stat_pusher = (
            StatPusher(
                stats_provider,
                tokens,
                timeout=config.http_timeout,
                interval_seconds=config.stat_push_interval,
            )
            if stats_provider is not None and has_tokens
            else None
        )

        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._previous_excepthook = None
        self._previous_threading_excepthook = None
        self._previous_levels: Dict[str, int] = {}
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: Optional[TelemetryConfig] = None,
        store: Optional[FailureStore] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        stats_provider: Optional[Callable[[], BotStats]] = None,
    ) -> "Telemetry":
        """Build telemetry from configuration.

        Args:
            config: Configuration (defaults to ``TelemetryConfig.from_env()``)
            store: Failure store (defaults to ``create_failure_store()``)
            metrics_collector: Optional metrics collector
            stats_provider: Enables the stat pusher when tokens are configured

        Returns:
            Unstarted Telemetry instance
        """
        config = config or TelemetryConfig.from_env()
        return cls(
            config,
            normal_webhook=create_webhook(config.normal_webhook_url, timeout=config.http_timeout),
            error_webhook=create_webhook(config.error_webhook_url, timeout=config.http_timeout),
            store=store or create_failure_store(),
            metrics_collector=metrics_collector,
            stats_provider=stats_provider,
        )

    @property
    def threads(self) -> List[threading.Thread]:
        return list(self._threads)

    def start(self) -> None:
        """Connect the store, capture logs and failures, start periodic tasks."""
        if self._started:
            return

        self.store.connect()

        level = self.config.max_verbosity.logging_level
        for prefix in (PACKAGE_LOGGER_PREFIX, self.config.log_prefix):
            if prefix and prefix not in self._previous_levels:
                prefix_logger = logging.getLogger(prefix)
                self._previous_levels[prefix] = prefix_logger.level
                if prefix_logger.level == logging.NOTSET or prefix_logger.level > level:
                    prefix_logger.setLevel(level)
        logging.getLogger().addHandler(self.log_handler)

        self._install_excepthooks()

        self._stop_event = threading.Event()

        self._threads.append(start_in_thread(self.aggregator, stop_event=self._stop_event))
        if self.stat_pusher is not None:
            self._threads.append(start_in_thread(self.stat_pusher, stop_event=self._stop_event))

        self._started = True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop periodic tasks, deliver what is still buffered, release resources."""
        if not self._started:
            return

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

        logging.getLogger().removeHandler(self.log_handler)
        for prefix, previous_level in self._previous_levels.items():
            logging.getLogger(prefix).setLevel(previous_level)
        self._previous_levels.clear()
        self._restore_excepthooks()

        try:
            self.aggregator.flush()
        except WebhookError as e:
            get_diagnostic_logger().error(f"Final log flush failed: {e!r}")

        self.store.disconnect()
        self._started = False

    def _install_excepthooks(self) -> None:
        self._previous_excepthook = sys.excepthook
        self._previous_threading_excepthook = threading.excepthook
        previous_excepthook = self._previous_excepthook
        previous_threading_excepthook = self._previous_threading_excepthook

        def excepthook(exc_type, exc_value, exc_traceback):
            if not issubclass(exc_type, KeyboardInterrupt):
                self.reporter.report_safely("UnhandledException", exc_value)
            previous_excepthook(exc_type, exc_value, exc_traceback)

        def threading_excepthook(args):
            if args.exc_value is not None and not isinstance(args.exc_value, SystemExit):
                thread_name = args.thread.name if args.thread is not None else "unknown"
                self.reporter.report_safely(
                    "ThreadException",
                    args.exc_value,
                    extra_fields=[("Thread", thread_name, True)],
                )
            previous_threading_excepthook(args)

        sys.excepthook = excepthook
        threading.excepthook = threading_excepthook

    def _restore_excepthooks(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if self._previous_threading_excepthook is not None:
            threading.excepthook = self._previous_threading_excepthook
        self._previous_excepthook = None
        self._previous_threading_excepthook = None
