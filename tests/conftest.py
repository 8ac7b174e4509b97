"""Shared test fixtures for unseenmail tests."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import pytest

from unseenmail.errors import TransportError
from unseenmail.models import FetchedHeader
from unseenmail.notifier import MemoryNotifier
from unseenmail.schema import AccountConfig, WatcherSettings


def make_header(subject: str | None = "Hello", sender: str = "a@example.com") -> bytes:
    """Build a raw RFC 822 header block."""
    lines = [f"From: {sender}", "To: me@example.com"]
    if subject is not None:
        lines.append(f"Subject: {subject}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode()


class StopWatcher(Exception):
    """Raised by fake sleepers to break a watcher out of its forever loop."""


class FakeSession:
    """In-memory stand-in for transport.ImapSession.

    ``messages`` maps UID -> raw header block. ``pushes`` feeds wait_push():
    a list of lines, None (library ended IDLE), an exception to raise, or a
    zero-argument callable returning one of those.
    """

    def __init__(
        self,
        messages: dict[int, bytes] | None = None,
        search_result: list[int] | None = None,
    ) -> None:
        self.messages: dict[int, bytes] = dict(messages or {})
        self.search_result = search_result
        self.pushes: asyncio.Queue[Any] = asyncio.Queue()
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, Any]] = []
        self.logged_out = False
        self.host = "imap.example.com"

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if name in self.failures:
            raise self.failures[name]

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def authenticate(self, username: str, password: str) -> FakeSession:
        self._record("authenticate", username)
        return self

    async def select(self, mailbox: str) -> FakeSession:
        self._record("select", mailbox)
        return self

    async def search(self, criteria: str) -> list[int]:
        self._record("search", criteria)
        if self.search_result is not None:
            return list(self.search_result)
        return sorted(self.messages)

    async def fetch_headers(self, uids: list[int]) -> list[FetchedHeader]:
        self._record("fetch_headers", list(uids))
        return [
            FetchedHeader(uid=uid, raw=self.messages[uid])
            for uid in uids
            if uid in self.messages
        ]

    async def idle_start(self, max_wait: float) -> None:
        self._record("idle_start", max_wait)

    async def wait_push(self) -> list[str] | None:
        item = await self.pushes.get()
        if callable(item):
            item = item()
        if isinstance(item, Exception):
            raise item
        return item

    async def idle_done(self) -> None:
        self._record("idle_done")

    async def logout(self) -> None:
        self.logged_out = True
        self._record("logout")


def fake_connector(
    sessions: Callable[[str], Any] | list[Any],
) -> tuple[Callable[..., Any], list[tuple[str, int]]]:
    """Build a connect() replacement.

    ``sessions`` is either a per-host factory or a list consumed in order;
    an Exception entry is raised instead of returning a session.
    """
    attempts: list[tuple[str, int]] = []
    queue = list(sessions) if isinstance(sessions, list) else None

    async def connect(host: str, port: int, timeout: float) -> Any:
        attempts.append((host, port))
        item = queue.pop(0) if queue is not None else sessions(host)  # type: ignore[operator]
        if isinstance(item, TransportError):
            raise item
        return item

    return connect, attempts


def recording_sleeper(stop_after: int) -> tuple[Callable[[float], Any], list[float]]:
    """Fake asyncio.sleep that records delays and stops the watcher."""
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)
        if len(delays) >= stop_after:
            raise StopWatcher
        await asyncio.sleep(0)

    return sleep, delays


@pytest.fixture
def account() -> AccountConfig:
    return AccountConfig(
        name="work",
        server="imap.example.com",
        port=993,
        username="me@example.com",
        password="secret",  # noqa: S106
        ntfy_url="https://ntfy.example.com",
        ntfy_topic="mail",
        ntfy_clickable_url="https://mail.example.com",
    )


@pytest.fixture
def settings() -> WatcherSettings:
    return WatcherSettings(
        initial_backoff_seconds=2,
        escalation_threshold_seconds=256,
        idle_max_wait_seconds=5,
        command_timeout_seconds=1,
    )


@pytest.fixture
def notifier() -> MemoryNotifier:
    return MemoryNotifier(topic="mail")


@pytest.fixture(autouse=True)
async def _cancel_stray_tasks():
    """Cancel any tasks that leaked from a test."""
    yield
    await asyncio.sleep(0)
    current = asyncio.current_task()
    for task in asyncio.all_tasks():
        if task is not current and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                await asyncio.wait_for(asyncio.shield(task), timeout=0.1)
