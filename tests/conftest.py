# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Shared fixtures for webhook-telemetry tests."""

import pytest

from webhook_telemetry import (
    InMemoryFailureStore,
    InMemoryWebhook,
    NoOpMetricsCollector,
    WebhookErrorReporter,
    WebhookLogAggregator,
)


def fixed_environment_fields():
    """Deterministic stand-in for live host telemetry."""
    return [
        ("CPU Usage (5 minutes)", "0.50", True),
        ("System Memory Usage", "1024 MiB", True),
        ("Active Threads", "4", True),
    ]


@pytest.fixture
def environment_fields():
    """Provider of deterministic environment fields."""
    return fixed_environment_fields


@pytest.fixture
def normal_webhook():
    """Webhook receiving non-error log chunks."""
    return InMemoryWebhook()


@pytest.fixture
def error_webhook():
    """Webhook receiving error log chunks and failure summaries."""
    return InMemoryWebhook()


@pytest.fixture
def metrics():
    """In-memory metrics collector."""
    return NoOpMetricsCollector()


@pytest.fixture
def store():
    """Connected in-memory failure store."""
    failure_store = InMemoryFailureStore()
    failure_store.connect()
    yield failure_store
    failure_store.disconnect()


@pytest.fixture
def aggregator(normal_webhook, error_webhook, metrics):
    """Aggregator that gives up on the first failed delivery."""
    return WebhookLogAggregator(
        normal_webhook,
        error_webhook,
        webhook_name="Test",
        metrics_collector=metrics,
        max_attempts=1,
        backoff_seconds=0,
    )


@pytest.fixture
def reporter(error_webhook, store, metrics, environment_fields):
    """Error reporter with deterministic environment fields."""
    return WebhookErrorReporter(
        error_webhook,
        store,
        service_name="test-service",
        metrics_collector=metrics,
        environment_fields=environment_fields,
    )
