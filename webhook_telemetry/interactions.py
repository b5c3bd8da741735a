# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Handling of the "View Traceback" button on failure summaries."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .error_reporter import VIEW_TRACEBACK_CUSTOM_ID, WebhookErrorReporter
from .webhook import WebhookDeliveryError, WebhookFile

logger = logging.getLogger(__name__)

MESSAGE_COMPONENT_INTERACTION = 3
CHANNEL_MESSAGE_WITH_SOURCE = 4
EPHEMERAL_FLAG = 1 << 6
TRACEBACK_NOT_FOUND = "No traceback found."
TRACEBACK_FILENAME = "traceback.txt"


@dataclass
class InteractionResponse:
    """A private reply to a component interaction."""

    content: Optional[str] = None
    files: List[WebhookFile] = field(default_factory=list)
    ephemeral: bool = True

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        if self.content is not None:
            data["content"] = self.content
        if self.files:
            data["attachments"] = [
                {"id": index, "filename": attachment.filename}
                for index, attachment in enumerate(self.files)
            ]
        return {"type": CHANNEL_MESSAGE_WITH_SOURCE, "data": data}


def is_traceback_request(interaction: Dict[str, Any]) -> bool:
    """Whether *interaction* is a click on a summary's traceback button."""
    return (
        interaction.get("type") == MESSAGE_COMPONENT_INTERACTION
        and interaction.get("data", {}).get("custom_id") == VIEW_TRACEBACK_CUSTOM_ID
    )


def handle_component_interaction(
    interaction: Dict[str, Any], reporter: WebhookErrorReporter
) -> Optional[InteractionResponse]:
    """Build the reply to a traceback button click.

    Args:
        interaction: Interaction payload as received from the gateway
        reporter: Reporter whose store holds the full failure texts

    Returns:
        A private reply with the full text attached, or with a not-found
        notice when the record is gone; None for unrelated interactions
    """
    if not is_traceback_request(interaction):
        return None

    message_id = str(interaction["message"]["id"])
    full_text = reporter.get_full_text(message_id)
    if full_text is None:
        return InteractionResponse(content=TRACEBACK_NOT_FOUND)

    return InteractionResponse(
        files=[WebhookFile(filename=TRACEBACK_FILENAME, data=full_text.encode("utf-8"))]
    )


class InteractionResponder:
    """Sends interaction replies through the callback endpoint."""

    def __init__(
        self,
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def respond(self, interaction: Dict[str, Any], response: InteractionResponse) -> None:
        """Send *response* for *interaction*.

        Raises:
            WebhookDeliveryError: If the callback request fails
        """
        url = f"{self.api_base}/interactions/{interaction['id']}/{interaction['token']}/callback"
        payload = response.to_payload()

        if response.files:
            files = {"payload_json": (None, json.dumps(payload), "application/json")}
            for index, attachment in enumerate(response.files):
                files[f"files[{index}]"] = (attachment.filename, attachment.data, "text/plain")
            kwargs: Dict[str, Any] = {"files": files}
        else:
            kwargs = {"json": payload}

        try:
            resp = self.session.post(url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise WebhookDeliveryError(
                f"Interaction callback failed: {e}", status_code=e.response.status_code
            ) from e
        except requests.exceptions.RequestException as e:
            raise WebhookDeliveryError(f"Interaction callback failed: {e}") from e

        logger.debug(f"Answered interaction {interaction['id']}")


class TracebackButtonListener:
    """Answers traceback button clicks; failures are reported, never raised."""

    def __init__(self, reporter: WebhookErrorReporter, responder: InteractionResponder | None = None):
        self.reporter = reporter
        self.responder = responder or InteractionResponder()

    def on_interaction(self, interaction: Dict[str, Any]) -> bool:
        """Handle one incoming interaction.

        Returns:
            True if the interaction was a traceback request and was answered
        """
        try:
            response = handle_component_interaction(interaction, self.reporter)
            if response is None:
                return False
            self.responder.respond(interaction, response)
            return True
        except Exception as e:
            self.reporter.report_safely("InteractionCreate", e)
            return False
