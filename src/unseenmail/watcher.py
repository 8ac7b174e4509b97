"""Per-account watcher state machine.

    DISCONNECTED -> CONNECTING -> SELECTING -> ACTIVE{DETECTING <-> PUSH_WAITING}
         ^              |             |              |
         +--- BACKOFF <-+-------------+--------------+  (TransportError)

A watcher owns its session, watermark and backoff exclusively and runs
until cancelled. Errors never leave the watcher: connection failures back
off and reconnect, message failures are handled inside the detector.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from . import transport
from .detector import UnseenMailDetector
from .errors import NotificationDeliveryError, TransportError
from .notifier import Notifier, connection_failed
from .push_wait import PushWaitController
from .schema import AccountConfig, WatcherSettings

logger = logging.getLogger(__name__)

Connector = Callable[[str, int, float], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


class WatcherState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SELECTING = "selecting"
    DETECTING = "detecting"
    PUSH_WAITING = "push_waiting"
    BACKOFF = "backoff"


@dataclass
class Backoff:
    """Reconnect delay: initial, doubled per consecutive failure."""

    initial: float
    delay: float = field(init=False)

    def __post_init__(self) -> None:
        self.delay = self.initial

    def advance(self) -> None:
        self.delay *= 2

    def reset(self) -> None:
        self.delay = self.initial


class AccountWatcher:
    """Watches one mailbox forever and notifies about new mail."""

    def __init__(
        self,
        account: AccountConfig,
        settings: WatcherSettings,
        notifier: Notifier,
        connect: Connector = transport.connect,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._account = account
        self._settings = settings
        self._notifier = notifier
        self._connect = connect
        self._sleep = sleep
        self._detector = UnseenMailDetector(account, notifier)
        self._push_wait = PushWaitController(
            max_wait=settings.idle_max_wait_seconds, label=account.name
        )
        self._interrupt = asyncio.Event()
        self._watermark = 0
        self.backoff = Backoff(settings.initial_backoff_seconds)
        self.state = WatcherState.DISCONNECTED

    @property
    def name(self) -> str:
        return self._account.name

    @property
    def watermark(self) -> int:
        return self._watermark

    def wake(self) -> None:
        """Cut the current IDLE short so the mailbox is checked right away."""
        self._interrupt.set()

    async def run(self) -> None:
        """Connect, watch, back off, reconnect. Returns only when cancelled."""
        logger.info(
            "[%s] watching %s on %s:%d",
            self.name,
            self._account.mailbox,
            self._account.server,
            self._account.port,
        )
        while True:
            session = await self._establish()
            if session is None:
                await self._back_off()
                continue

            self.backoff.reset()
            try:
                await self._watch(session)
            except TransportError as exc:
                logger.warning("[%s] connection lost: %s", self.name, exc)
            except asyncio.CancelledError:
                await transport.close_quietly(session)
                raise
            except Exception:
                logger.exception("[%s] unexpected error while watching", self.name)
            self.state = WatcherState.DISCONNECTED
            await transport.close_quietly(session)
            await self._back_off()

    async def _establish(self) -> Any | None:
        """Connect, authenticate and select; None after a reported failure."""
        account = self._account
        session = None
        self.state = WatcherState.CONNECTING
        try:
            session = await self._connect(
                account.server, account.port, self._settings.command_timeout_seconds
            )
            await session.authenticate(account.username, account.password)
            self.state = WatcherState.SELECTING
            await session.select(account.mailbox)
        except Exception as exc:
            if not isinstance(exc, TransportError):
                logger.exception("[%s] unexpected error while connecting", self.name)
            await transport.close_quietly(session)
            self.state = WatcherState.DISCONNECTED
            await self._report_failure(exc)
            return None
        logger.info("[%s] connected, %s selected", self.name, account.mailbox)
        return session

    async def _report_failure(self, exc: Exception) -> None:
        delay = self.backoff.delay
        message = f"connection failed: {exc}; trying to reconnect after {delay:g}s ..."
        logger.warning("[%s] %s", self.name, message)
        if delay < self._settings.escalation_threshold_seconds:
            return
        try:
            await self._notifier.send(connection_failed(self._account, message))
        except NotificationDeliveryError as err:
            logger.warning("[%s] could not send failure warning: %s", self.name, err)

    async def _back_off(self) -> None:
        self.state = WatcherState.BACKOFF
        await self._sleep(self.backoff.delay)
        self.backoff.advance()

    async def _watch(self, session: Any) -> None:
        """Detect, then IDLE, forever; exits only by exception."""
        while True:
            self.state = WatcherState.DETECTING
            fresh, self._watermark = await self._detector.find_new(
                session, self._watermark
            )
            await self._detector.notify(session, fresh, self._watermark)

            self.state = WatcherState.PUSH_WAITING
            await self._push_wait.wait(session, self._interrupt)
            self._interrupt.clear()
