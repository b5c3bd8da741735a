# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Hourly push of server counts to bot-list directories."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import BotListTokens
from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BotStats:
    """Counts reported to the directories."""

    bot_id: int
    guild_count: int
    shard_count: int


@dataclass(frozen=True)
class StatRequest:
    """One prepared POST to a directory."""

    url: str
    token: str
    body: Dict[str, Any]


class StatPusher(PeriodicTask):
    """Posts bot statistics to every directory that has a token configured."""

    name = "Bot List Updater"
    interval_seconds = 60 * 60

    def __init__(
        self,
        stats_provider: Callable[[], BotStats],
        tokens: BotListTokens,
        timeout: float = 15.0,
        session: requests.Session | None = None,
        interval_seconds: Optional[float] = None,
    ):
        """Initialize the stat pusher.

        Args:
            stats_provider: Returns the current counts at push time
            tokens: Directory credentials; a missing token disables that directory
            timeout: Per-request timeout in seconds
            session: Optional requests session
            interval_seconds: Tick interval override
        """
        self.stats_provider = stats_provider
        self.tokens = tokens
        self.timeout = timeout
        self.session = session or requests.Session()
        if interval_seconds is not None:
            self.interval_seconds = interval_seconds

    def build_requests(self, stats: BotStats) -> List[StatRequest]:
        """Prepare one request per configured directory."""
        prepared: List[StatRequest] = []

        if self.tokens.bots_on_discord:
            prepared.append(StatRequest(
                url=f"https://bots.ondiscord.xyz/bot-api/bots/{stats.bot_id}/guilds",
                token=self.tokens.bots_on_discord,
                body={"guildCount": stats.guild_count},
            ))
        if self.tokens.top_gg:
            prepared.append(StatRequest(
                url=f"https://top.gg/api/bots/{stats.bot_id}/stats",
                token=self.tokens.top_gg,
                body={"server_count": stats.guild_count, "shard_count": stats.shard_count},
            ))
        if self.tokens.discord_bots_gg:
            prepared.append(StatRequest(
                url=f"https://discord.bots.gg/api/v1/bots/{stats.bot_id}/stats",
                token=self.tokens.discord_bots_gg,
                body={"guildCount": stats.guild_count, "shardCount": stats.shard_count},
            ))

        return prepared

    def run_once(self) -> None:
        """Push the current stats; a failing directory does not stop the others."""
        stats = self.stats_provider()

        for request in self.build_requests(stats):
            try:
                response = self.session.post(
                    request.url,
                    json=request.body,
                    headers={"Authorization": request.token},
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                logger.error(f"{self.name} Error: {e}")
