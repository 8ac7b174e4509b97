"""Notification dispatch.

Provides a protocol for pushing notifications and two implementations:
- NtfyNotifier: publishes to an ntfy server over HTTP (production)
- MemoryNotifier: records and logs, no network calls (dry-run and tests)
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from . import conventions
from .errors import NotificationDeliveryError
from .models import NotificationRequest
from .schema import AccountConfig

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol for delivering a notification to one topic."""

    async def send(self, request: NotificationRequest) -> None:
        """Deliver *request*. Raises NotificationDeliveryError on failure."""
        ...


def build_payload(topic: str, request: NotificationRequest) -> dict[str, Any]:
    """ntfy JSON publish body."""
    payload: dict[str, Any] = {
        "topic": topic,
        "title": request.title,
        "message": request.body,
        "priority": int(request.priority),
    }
    if request.tags:
        payload["tags"] = list(request.tags)
    if request.click:
        payload["click"] = request.click
    return payload


class NtfyNotifier:
    """Publishes to ``<url>`` with the topic in the JSON body.

    Stateless apart from its target, so several watchers may send at once.
    """

    def __init__(
        self,
        url: str,
        topic: str,
        timeout: float = conventions.NOTIFY_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._topic = topic
        self._timeout = timeout
        self._transport = transport

    async def send(self, request: NotificationRequest) -> None:
        payload = build_payload(self._topic, request)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationDeliveryError(
                f"ntfy rejected message for {self._topic}: "
                f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(
                f"cannot reach ntfy at {self._url}: {exc}"
            ) from exc
        logger.debug("Published %r to %s/%s", request.title, self._url, self._topic)


class MemoryNotifier:
    """In-memory notifier for dry-run mode and testing.

    Records every request for inspection and logs it. No network calls.
    """

    def __init__(self, topic: str = "") -> None:
        self._topic = topic
        self.sent: list[NotificationRequest] = []

    async def send(self, request: NotificationRequest) -> None:
        self.sent.append(request)
        logger.info(
            "[dry-run] %s -> %s: %s", self._topic or "-", request.title, request.body
        )


def new_mail(account: AccountConfig, subject: str) -> NotificationRequest:
    return NotificationRequest(
        title=conventions.NEW_MAIL_TITLE.format(name=account.name),
        body=subject,
        click=account.ntfy_clickable_url,
    )


def connection_failed(account: AccountConfig, detail: str) -> NotificationRequest:
    return NotificationRequest(
        title=conventions.CONNECTION_FAILED_TITLE.format(name=account.name),
        body=detail,
        tags=[conventions.WARNING_TAG],
    )


def notifier_for(account: AccountConfig, dry_run: bool = False) -> Notifier:
    """Pick the notifier implementation for *account*."""
    if dry_run:
        return MemoryNotifier(topic=account.ntfy_topic)
    return NtfyNotifier(account.ntfy_url, account.ntfy_topic)
