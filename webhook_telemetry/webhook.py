# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Webhook delivery endpoints.

A webhook is the only way out of the process: every log chunk and every
failure summary is posted, edited or deleted through one. Messages are capped
at ``MESSAGE_CONTENT_LIMIT`` bytes of content and carry an author name and
icon, optional embeds, at most one row of interactive components, and
optional file attachments.
"""

import copy
import itertools
import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .diagnostics import delivery_logger

logger = delivery_logger(__name__)

MESSAGE_CONTENT_LIMIT = 2000


class WebhookError(Exception):
    """Base exception for webhook errors."""
    pass


class WebhookDeliveryError(WebhookError):
    """Raised when the remote endpoint rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None, retry_after: float | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_transient(self) -> bool:
        """Network failures, rate limits and server errors are worth retrying."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class WebhookMessageNotFoundError(WebhookError):
    """Raised when a message id does not exist on the webhook."""
    pass


@dataclass
class WebhookFile:
    """A file attached to an outbound message."""

    filename: str
    data: bytes


@dataclass
class WebhookMessage:
    """One outbound webhook message."""

    content: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    embeds: List[Dict[str, Any]] = field(default_factory=list)
    components: List[Dict[str, Any]] = field(default_factory=list)
    files: List[WebhookFile] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON body of an execute or edit request."""
        payload: Dict[str, Any] = {}
        if self.content is not None:
            payload["content"] = self.content
        if self.username is not None:
            payload["username"] = self.username
        if self.avatar_url is not None:
            payload["avatar_url"] = self.avatar_url
        if self.embeds:
            payload["embeds"] = copy.deepcopy(self.embeds)
        if self.components:
            payload["components"] = copy.deepcopy(self.components)
        if self.files:
            payload["attachments"] = [
                {"id": index, "filename": attachment.filename}
                for index, attachment in enumerate(self.files)
            ]
        return payload


class Webhook(ABC):
    """Abstract base class for webhook endpoints."""

    @abstractmethod
    def execute(self, message: WebhookMessage, wait: bool = True) -> Optional[str]:
        """Post a new message.

        Args:
            message: Message to post
            wait: Wait for the endpoint to confirm and return the message id

        Returns:
            The new message id when ``wait`` is True, otherwise None

        Raises:
            WebhookDeliveryError: If the endpoint rejects the message
        """
        pass

    @abstractmethod
    def get_message(self, message_id: str) -> Dict[str, Any]:
        """Fetch a previously posted message.

        Raises:
            WebhookMessageNotFoundError: If the message does not exist
            WebhookDeliveryError: If the request fails
        """
        pass

    @abstractmethod
    def edit_message(self, message_id: str, message: WebhookMessage) -> None:
        """Replace the content of a previously posted message.

        Raises:
            WebhookMessageNotFoundError: If the message does not exist
            WebhookDeliveryError: If the request fails
        """
        pass

    @abstractmethod
    def delete_message(self, message_id: str) -> None:
        """Delete a previously posted message.

        Raises:
            WebhookMessageNotFoundError: If the message does not exist
            WebhookDeliveryError: If the request fails
        """
        pass


class DiscordWebhook(Webhook):
    """Webhook backed by the Discord webhook REST API."""

    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None):
        """Initialize Discord webhook.

        Args:
            url: Full webhook URL (``https://discord.com/api/webhooks/<id>/<token>``)
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse connections
        """
        if not url:
            raise ValueError("Webhook URL is required.")

        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise WebhookDeliveryError(f"{method} {self._redacted(url)} failed: {e}") from e

        if response.status_code == 404:
            raise WebhookMessageNotFoundError(f"{method} {self._redacted(url)} returned 404")

        if response.status_code == 429:
            raise WebhookDeliveryError(
                f"{method} {self._redacted(url)} was rate limited",
                status_code=429,
                retry_after=_retry_after(response),
            )

        if response.status_code >= 400:
            raise WebhookDeliveryError(
                f"{method} {self._redacted(url)} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        return response

    def _redacted(self, url: str) -> str:
        # The trailing path segment of a webhook URL is its secret token
        base, _, _ = self.url.rpartition("/")
        return url.replace(self.url, f"{base}/<token>")

    def _send_kwargs(self, message: WebhookMessage) -> Dict[str, Any]:
        payload = message.to_payload()
        if not message.files:
            return {"json": payload}

        files = {"payload_json": (None, json.dumps(payload), "application/json")}
        for index, attachment in enumerate(message.files):
            files[f"files[{index}]"] = (attachment.filename, attachment.data, "application/octet-stream")
        return {"files": files}

    def execute(self, message: WebhookMessage, wait: bool = True) -> Optional[str]:
        params = {"wait": "true" if wait else "false"}
        if message.components:
            params["with_components"] = "true"

        response = self._request("POST", self.url, params=params, **self._send_kwargs(message))
        if not wait:
            return None

        message_id = str(response.json()["id"])
        logger.debug(f"DiscordWebhook: posted message {message_id}")
        return message_id

    def get_message(self, message_id: str) -> Dict[str, Any]:
        response = self._request("GET", f"{self.url}/messages/{message_id}")
        return response.json()

    def edit_message(self, message_id: str, message: WebhookMessage) -> None:
        params = {"with_components": "true"} if message.components else None
        self._request(
            "PATCH", f"{self.url}/messages/{message_id}", params=params, **self._send_kwargs(message)
        )
        logger.debug(f"DiscordWebhook: edited message {message_id}")

    def delete_message(self, message_id: str) -> None:
        self._request("DELETE", f"{self.url}/messages/{message_id}")
        logger.debug(f"DiscordWebhook: deleted message {message_id}")


def _retry_after(response: requests.Response) -> float | None:
    try:
        return float(response.json()["retry_after"])
    except (ValueError, KeyError, TypeError):
        pass
    header = response.headers.get("Retry-After")
    try:
        return float(header) if header is not None else None
    except ValueError:
        return None


class InMemoryWebhook(Webhook):
    """Webhook that keeps messages in memory for testing and local development."""

    def __init__(self):
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.executed: List[WebhookMessage] = []
        self.edits: List[tuple[str, Dict[str, Any]]] = []
        self.deleted: List[str] = []
        self.fail_with: Optional[Exception] = None
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def execute(self, message: WebhookMessage, wait: bool = True) -> Optional[str]:
        self._check_failure()
        with self._lock:
            message_id = str(next(self._ids))
            stored = message.to_payload()
            stored["id"] = message_id
            self.messages[message_id] = stored
            self.executed.append(message)
        return message_id if wait else None

    def get_message(self, message_id: str) -> Dict[str, Any]:
        self._check_failure()
        with self._lock:
            if message_id not in self.messages:
                raise WebhookMessageNotFoundError(f"Message {message_id} not found")
            return copy.deepcopy(self.messages[message_id])

    def edit_message(self, message_id: str, message: WebhookMessage) -> None:
        self._check_failure()
        with self._lock:
            if message_id not in self.messages:
                raise WebhookMessageNotFoundError(f"Message {message_id} not found")
            patch = message.to_payload()
            self.messages[message_id].update(patch)
            self.edits.append((message_id, patch))

    def delete_message(self, message_id: str) -> None:
        self._check_failure()
        with self._lock:
            if self.messages.pop(message_id, None) is None:
                raise WebhookMessageNotFoundError(f"Message {message_id} not found")
            self.deleted.append(message_id)

    @property
    def contents(self) -> List[Optional[str]]:
        """Content of every executed message, in order."""
        return [message.content for message in self.executed]


def create_webhook(url: str | None, timeout: float = 10.0) -> Webhook:
    """Create a webhook for a configured URL.

    Args:
        url: Webhook URL; None, empty or ``memory://`` selects the in-memory webhook
        timeout: Per-request timeout for HTTP webhooks

    Returns:
        Webhook instance
    """
    if not url or url.startswith("memory://"):
        return InMemoryWebhook()
    if url.startswith(("http://", "https://")):
        return DiscordWebhook(url, timeout=timeout)
    raise ValueError(f"Unsupported webhook URL scheme: {url}")
