# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Environment-backed configuration for the telemetry subsystem."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .severity import Severity


class EnvConfigProvider:
    """Configuration provider that reads from environment variables."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, default: Any = None) -> Any:
        value = self._environ.get(key)
        if value is None or value == "":
            return default
        return value

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            return default


@dataclass(frozen=True)
class BotListTokens:
    """Credentials for the bot-list directories; ``None`` disables one."""

    top_gg: str | None = None
    discord_bots_gg: str | None = None
    bots_on_discord: str | None = None


@dataclass(frozen=True)
class TelemetryConfig:
    """Settings for webhooks, verbosity and task cadence."""

    normal_webhook_url: str | None = None
    error_webhook_url: str | None = None
    webhook_name: str = "Telemetry"
    service_name: str = "service"
    log_prefix: str | None = None
    max_verbosity: Severity = Severity.INFO
    flush_interval: float = 1.1
    stat_push_interval: float = 60 * 60
    delivery_max_attempts: int = 3
    delivery_backoff_seconds: float = 1.0
    http_timeout: float = 10.0
    bot_list_tokens: BotListTokens = field(default_factory=BotListTokens)

    @classmethod
    def from_env(cls, provider: EnvConfigProvider | None = None) -> "TelemetryConfig":
        """Build a TelemetryConfig from environment variables.

        Args:
            provider: Optional provider (defaults to one over ``os.environ``)

        Returns:
            TelemetryConfig with unset variables falling back to defaults

        Raises:
            ValueError: If TELEMETRY_MAX_VERBOSITY is not a known severity
        """
        provider = provider or EnvConfigProvider()
        return cls(
            normal_webhook_url=provider.get("TELEMETRY_NORMAL_WEBHOOK_URL"),
            error_webhook_url=provider.get("TELEMETRY_ERROR_WEBHOOK_URL"),
            webhook_name=provider.get("TELEMETRY_WEBHOOK_NAME", cls.webhook_name),
            service_name=provider.get("TELEMETRY_SERVICE_NAME", cls.service_name),
            log_prefix=provider.get("TELEMETRY_LOG_PREFIX"),
            max_verbosity=Severity.parse(
                provider.get("TELEMETRY_MAX_VERBOSITY", cls.max_verbosity.name)
            ),
            flush_interval=provider.get_float("TELEMETRY_FLUSH_INTERVAL", cls.flush_interval),
            stat_push_interval=provider.get_float(
                "TELEMETRY_STAT_PUSH_INTERVAL", cls.stat_push_interval
            ),
            delivery_max_attempts=provider.get_int(
                "TELEMETRY_DELIVERY_MAX_ATTEMPTS", cls.delivery_max_attempts
            ),
            delivery_backoff_seconds=provider.get_float(
                "TELEMETRY_DELIVERY_BACKOFF_SECONDS", cls.delivery_backoff_seconds
            ),
            http_timeout=provider.get_float("TELEMETRY_HTTP_TIMEOUT", cls.http_timeout),
            bot_list_tokens=BotListTokens(
                top_gg=provider.get("TOP_GG_TOKEN"),
                discord_bots_gg=provider.get("DISCORD_BOTS_GG_TOKEN"),
                bots_on_discord=provider.get("BOTS_ON_DISCORD_TOKEN"),
            ),
        )
