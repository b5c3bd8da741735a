# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Tests for the log aggregator and the stdlib logging handler."""

import logging
import threading
from unittest.mock import patch

import pytest

from webhook_telemetry import (
    Severity,
    WebhookDeliveryError,
    WebhookLogAggregator,
    WebhookLogHandler,
)
from webhook_telemetry.diagnostics import DIAGNOSTIC_LOGGER_NAME


class TestWebhookLogAggregator:
    """Tests for WebhookLogAggregator."""

    def test_flush_sends_one_chunk_per_severity(self, aggregator, normal_webhook):
        """Test that buffered lines of one severity share a message."""
        aggregator.record("a", "hello")
        aggregator.record("b", "world")

        aggregator.flush()

        assert normal_webhook.contents == ["[a]: hello\n[b]: world\n"]
        message = normal_webhook.executed[0]
        assert message.username == "Test [INFO]"
        assert message.avatar_url == Severity.INFO.icon_url

    def test_errors_go_to_error_webhook(self, aggregator, normal_webhook, error_webhook):
        """Test destination routing by severity."""
        aggregator.record("a", "fine", Severity.WARN)
        aggregator.record("a", "broken", Severity.ERROR)

        aggregator.flush()

        assert normal_webhook.contents == ["[a]: fine\n"]
        assert error_webhook.contents == ["[a]: broken\n"]
        assert error_webhook.executed[0].username == "Test [ERROR]"

    def test_severities_are_flushed_in_order(self, aggregator, normal_webhook):
        """Test that lower severities are delivered first."""
        aggregator.record("a", "warn", Severity.WARN)
        aggregator.record("a", "debug", Severity.DEBUG)
        aggregator.record("a", "info", Severity.INFO)

        aggregator.flush()

        assert [m.username for m in normal_webhook.executed] == [
            "Test [DEBUG]",
            "Test [INFO]",
            "Test [WARN]",
        ]

    def test_flush_empties_the_buffer(self, aggregator, normal_webhook):
        """Test that delivered events are not sent twice."""
        aggregator.record("a", "once")

        aggregator.flush()
        aggregator.flush()

        assert normal_webhook.contents == ["[a]: once\n"]
        assert aggregator.pending_count() == 0

    def test_empty_flush_sends_nothing(self, aggregator, normal_webhook, error_webhook):
        """Test that nothing is sent when nothing was recorded."""
        aggregator.flush()

        assert normal_webhook.executed == []
        assert error_webhook.executed == []

    def test_large_volume_is_chunked_under_limit(self, aggregator, normal_webhook):
        """Test that many lines are split across messages under 2000 bytes."""
        for index in range(200):
            aggregator.record("worker", f"processed item {index:04d} " + "x" * 40)

        aggregator.flush()

        assert len(normal_webhook.executed) > 1
        assert all(len(c.encode("utf-8")) <= 2000 for c in normal_webhook.contents)
        delivered = "".join(normal_webhook.contents).splitlines()
        assert len(delivered) == 200
        assert delivered[0].startswith("[worker]: processed item 0000")
        assert delivered[-1].startswith("[worker]: processed item 0199")

    def test_concurrent_records_are_all_delivered(self, aggregator, normal_webhook):
        """Test that records from many threads land in the buffer exactly once."""
        def produce(thread_index):
            for index in range(50):
                aggregator.record(f"t{thread_index}", f"line {index}")

        threads = [threading.Thread(target=produce, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert aggregator.pending_count() == 400
        aggregator.flush()

        delivered = "".join(normal_webhook.contents).splitlines()
        assert len(delivered) == 400
        assert len(set(delivered)) == 400

    def test_records_during_flush_wait_for_next_tick(self, aggregator, normal_webhook):
        """Test that an event recorded while delivering is kept for the next flush."""
        original_execute = normal_webhook.execute

        def execute_and_record(message, wait=True):
            if len(normal_webhook.executed) == 0:
                aggregator.record("late", "arrived during flush")
            return original_execute(message, wait=wait)

        aggregator.record("early", "first")
        with patch.object(normal_webhook, "execute", side_effect=execute_and_record):
            aggregator.flush()

        assert normal_webhook.contents == ["[early]: first\n"]
        assert aggregator.pending_count() == 1

        aggregator.flush()
        assert normal_webhook.contents[-1] == "[late]: arrived during flush\n"

    def test_transient_failure_is_retried(self, normal_webhook, error_webhook, metrics):
        """Test that a rate-limited chunk is retried with the server delay."""
        aggregator = WebhookLogAggregator(
            normal_webhook, error_webhook, metrics_collector=metrics, max_attempts=3, backoff_seconds=0
        )
        original_execute = normal_webhook.execute
        failures = [WebhookDeliveryError("slow down", status_code=429, retry_after=0.01)]

        def flaky_execute(message, wait=True):
            if failures:
                raise failures.pop()
            return original_execute(message, wait=wait)

        aggregator.record("a", "eventually")
        with patch.object(normal_webhook, "execute", side_effect=flaky_execute), \
                patch("webhook_telemetry.retry_helper.time.sleep") as mock_sleep:
            aggregator.flush()

        assert normal_webhook.contents == ["[a]: eventually\n"]
        mock_sleep.assert_called_once_with(0.01)
        assert metrics.get_counter_total("webhook_log_delivery_retries_total", {"destination": "normal"}) == 1

    def test_failed_delivery_aborts_flush_and_counts_drops(
        self, aggregator, normal_webhook, error_webhook, metrics, caplog
    ):
        """Test that a permanent failure raises and the tick's lines are dropped."""
        normal_webhook.fail_with = WebhookDeliveryError("gone", status_code=401)
        aggregator.record("a", "one\ntwo", Severity.INFO)
        aggregator.record("a", "three", Severity.ERROR)

        with caplog.at_level(logging.ERROR, logger=DIAGNOSTIC_LOGGER_NAME):
            with pytest.raises(WebhookDeliveryError):
                aggregator.flush()

        assert error_webhook.executed == []
        assert aggregator.pending_count() == 0
        assert metrics.get_counter_total("webhook_log_lines_dropped_total") == 3
        assert any("Dropping 3 undelivered log lines" in r.getMessage() for r in caplog.records)

    def test_run_once_flushes(self, aggregator, normal_webhook):
        """Test that a scheduler tick flushes the buffer."""
        aggregator.record("a", "tick")

        aggregator.run_once()

        assert normal_webhook.contents == ["[a]: tick\n"]

    def test_metrics(self, aggregator, metrics):
        """Test event, chunk and flush duration metrics."""
        aggregator.record("a", "x")
        aggregator.record("a", "y")
        aggregator.record("a", "z", Severity.ERROR)

        aggregator.flush()

        assert metrics.get_counter_total("webhook_log_events_total", {"severity": "INFO"}) == 2
        assert metrics.get_counter_total("webhook_log_events_total", {"severity": "ERROR"}) == 1
        assert metrics.get_counter_total("webhook_log_chunks_total", {"destination": "normal"}) == 1
        assert metrics.get_counter_total("webhook_log_chunks_total", {"destination": "error"}) == 1
        assert [name for name, _, _ in metrics.observations] == ["webhook_log_flush_seconds"]
        assert metrics.get_counter_total("webhook_log_delivery_retries_total") == 0


def make_record(name, level, message):
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


class TestWebhookLogHandler:
    """Tests for WebhookLogHandler."""

    def test_forwards_prefixed_logger_down_to_max_verbosity(self, aggregator):
        """Test that application loggers are forwarded at the configured verbosity."""
        handler = WebhookLogHandler(aggregator, max_verbosity=Severity.DEBUG, log_prefix="myapp")

        handler.handle(make_record("myapp.db", logging.DEBUG, "query"))
        handler.handle(make_record("myapp", logging.INFO, "ready"))

        assert aggregator.pending_count() == 2

    def test_drops_prefixed_records_below_max_verbosity(self, aggregator):
        """Test that verbosity filters application loggers."""
        handler = WebhookLogHandler(aggregator, max_verbosity=Severity.INFO, log_prefix="myapp")

        handler.handle(make_record("myapp", logging.DEBUG, "noise"))

        assert aggregator.pending_count() == 0

    def test_prefix_matches_whole_segments(self, aggregator):
        """Test that a prefix does not match a longer logger name."""
        handler = WebhookLogHandler(aggregator, max_verbosity=Severity.DEBUG, log_prefix="myapp")

        handler.handle(make_record("myapplication", logging.INFO, "other"))

        assert aggregator.pending_count() == 0

    def test_other_loggers_need_warning(self, aggregator):
        """Test that third-party loggers are forwarded only from WARNING."""
        handler = WebhookLogHandler(aggregator, max_verbosity=Severity.TRACE)

        handler.handle(make_record("urllib3", logging.INFO, "connection"))
        handler.handle(make_record("urllib3", logging.WARNING, "retrying"))

        assert aggregator.pending_count() == 1

    def test_never_forwards_diagnostics(self, aggregator):
        """Test that the diagnostic logger and its children are excluded."""
        handler = WebhookLogHandler(aggregator, max_verbosity=Severity.TRACE)

        handler.handle(make_record(DIAGNOSTIC_LOGGER_NAME, logging.ERROR, "flush failed"))
        handler.handle(make_record(f"{DIAGNOSTIC_LOGGER_NAME}.webhook", logging.ERROR, "404"))

        assert aggregator.pending_count() == 0

    def test_record_uses_logger_name_and_severity(self, aggregator, error_webhook):
        """Test that records are attributed to their logger."""
        handler = WebhookLogHandler(aggregator)

        handler.handle(make_record("myapp.jobs", logging.ERROR, "job failed"))
        aggregator.flush()

        assert error_webhook.contents == ["[myapp.jobs]: job failed\n"]
