"""Delivery transports, one per channel kind: send(message, destination) -> bool."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol

import httpx

from autorecovery.models import RenderedMessage, Severity

logger = logging.getLogger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

_PAGERDUTY_SEVERITY = {
    Severity.CRITICAL: "critical",
    Severity.WARNING: "warning",
    Severity.INFO: "info",
}


class Transport(Protocol):
    def send(self, message: RenderedMessage, destination: str) -> bool: ...


class EmailTransport:
    """Plain-text email through Amazon SES."""

    def __init__(self, sender: str, region_name: str = "us-east-1", client: Any | None = None) -> None:
        self._sender = sender
        self._region_name = region_name
        self._client = client

    def send(self, message: RenderedMessage, destination: str) -> bool:
        if self._client is None:
            import boto3

            self._client = boto3.client("ses", region_name=self._region_name)
        self._client.send_email(
            Source=self._sender,
            Destination={"ToAddresses": [destination]},
            Message={
                "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                "Body": {"Text": {"Data": message.body, "Charset": "UTF-8"}},
            },
        )
        return True


class SmsTransport:
    """Direct SMS through Amazon SNS."""

    def __init__(self, region_name: str = "us-east-1", client: Any | None = None) -> None:
        self._region_name = region_name
        self._client = client

    def send(self, message: RenderedMessage, destination: str) -> bool:
        if self._client is None:
            import boto3

            self._client = boto3.client("sns", region_name=self._region_name)
        self._client.publish(PhoneNumber=destination, Message=message.body)
        return True


class SlackTransport:
    """
    Posts via slack_sdk: an incoming-webhook URL destination uses WebhookClient,
    anything else is treated as a channel id for WebClient with the bot token.
    """

    def __init__(self, bot_token: str = "") -> None:
        self.bot_token = bot_token

    def send(self, message: RenderedMessage, destination: str) -> bool:
        if destination.startswith("https://"):
            from slack_sdk.webhook import WebhookClient

            response = WebhookClient(destination).send(text=message.body, blocks=message.blocks or None)
            if response.status_code != 200:
                logger.warning("Slack webhook returned %s: %s", response.status_code, response.body)
                return False
            return True
        if not self.bot_token or not destination:
            logger.info(
                "Slack publish skipped: no token or channel",
                extra={"subject": message.subject[:80]},
            )
            return False
        from slack_sdk import WebClient

        client = WebClient(token=self.bot_token)
        client.chat_postMessage(channel=destination, text=message.body, blocks=message.blocks or None)
        return True


class PagerDutyTransport:
    """PagerDuty Events API v2 trigger."""

    def __init__(self, routing_key: str = "", timeout_seconds: float = 10.0) -> None:
        self._routing_key = routing_key
        self._timeout = timeout_seconds

    def send(self, message: RenderedMessage, destination: str) -> bool:
        if not self._routing_key:
            logger.info("PagerDuty publish skipped: no routing key")
            return False
        details = message.payload.get("details") or {}
        event = {
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "dedup_key": details.get("triggerId"),
            "payload": {
                "summary": message.subject,
                "severity": _PAGERDUTY_SEVERITY[message.severity],
                "source": "todo-autorecovery",
                "custom_details": message.payload or {"body": message.body},
            },
        }
        with httpx.Client(timeout=self._timeout) as client:
            r = client.post(destination or PAGERDUTY_EVENTS_URL, json=event)
            r.raise_for_status()
        return True


class WebhookTransport:
    """Generic JSON webhook."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._timeout = timeout_seconds

    def send(self, message: RenderedMessage, destination: str) -> bool:
        body = message.payload or {
            "severity": message.severity.value,
            "summary": message.subject,
            "body": message.body,
        }
        with httpx.Client(timeout=self._timeout) as client:
            r = client.post(destination, json=body)
            r.raise_for_status()
        return True


class LogTransport:
    """Stub transport: logs instead of delivering. Keeps the most recent messages it 'sent'."""

    def __init__(self, max_kept: int = 1000) -> None:
        self.sent: deque[tuple[str, RenderedMessage]] = deque(maxlen=max_kept)

    def send(self, message: RenderedMessage, destination: str) -> bool:
        self.sent.append((destination, message))
        logger.info(
            "Notification (stub) to %s: %s",
            destination,
            message.subject,
            extra={"severity": message.severity.value},
        )
        return True
