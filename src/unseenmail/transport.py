"""IMAP session transport.

Thin adapter around aioimaplib that the watcher drives step by step:

    session = await connect(host, port)
    await session.authenticate(user, password)   # also checks IDLE
    await session.select("INBOX")
    uids = await session.search("ALL")
    headers = await session.fetch_headers(uids)
    await session.idle_start(max_wait)
    lines = await session.wait_push()
    await session.idle_done()
    await session.logout()

Library and socket failures are translated into the TransportError family
so callers only ever see domain exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Iterable
from typing import Any, TypeVar

from aioimaplib import aioimaplib

from . import conventions
from .errors import (
    AuthError,
    NetworkError,
    ProtocolError,
    TransportError,
    UnsupportedServerError,
)
from .models import FetchedHeader

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FETCH_LINE = re.compile(rb"^\d+\s+FETCH\s*\(", re.IGNORECASE)
_UID_ITEM = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)

# UIDs are unsigned 32-bit (RFC 3501 section 2.3.1.1)
MAX_UID = 2**32 - 1


def _as_bytes(item: Any) -> bytes:
    if isinstance(item, (bytes, bytearray)):
        return bytes(item)
    return str(item).encode("utf-8", errors="replace")


def parse_search_response(lines: list[Any]) -> list[int]:
    """Extract UIDs from the lines of a UID SEARCH response.

    The last line is the tagged completion text and is ignored; an
    untagged line may or may not keep its ``SEARCH`` keyword depending on
    the library version.
    """
    uids: list[int] = []
    for item in lines[:-1]:
        for token in _as_bytes(item).split():
            if token.isdigit():
                uid = int(token)
                if 0 < uid <= MAX_UID:
                    uids.append(uid)
    return uids


def parse_header_fetch(lines: list[Any]) -> list[FetchedHeader]:
    """Pair each ``n FETCH (UID x RFC822.HEADER {size}`` with its literal.

    aioimaplib hands literals back as ``bytearray`` items right after the
    line announcing them. The UID item may precede or follow the literal.
    Messages that came back without a header literal are dropped.
    """
    headers: list[FetchedHeader] = []
    uid: int | None = None
    raw: bytes | None = None

    for item in lines:
        if isinstance(item, bytearray):
            raw = bytes(item)
            continue
        line = _as_bytes(item)
        if _FETCH_LINE.match(line):
            if uid is not None and raw is not None:
                headers.append(FetchedHeader(uid=uid, raw=raw))
            uid, raw = None, None
        match = _UID_ITEM.search(line)
        if match:
            uid = int(match.group(1))

    if uid is not None and raw is not None:
        headers.append(FetchedHeader(uid=uid, raw=raw))
    return headers


def format_uid_set(uids: Iterable[int]) -> str:
    """``[3, 1, 2]`` -> ``"1,2,3"`` (sorted, de-duplicated)."""
    return ",".join(str(u) for u in sorted(set(uids)))


class ImapSession:
    """A single IMAP connection owned by exactly one watcher.

    Created by connect(); becomes usable for search/fetch/idle after
    authenticate() and select(). Not safe for concurrent commands.
    """

    def __init__(
        self,
        client: Any,
        host: str,
        timeout: float = conventions.COMMAND_TIMEOUT,
    ) -> None:
        self._client = client
        self._host = host
        self._timeout = timeout
        self._idle_task: asyncio.Future[Any] | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def is_idling(self) -> bool:
        return self._idle_task is not None

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        """Await an aioimaplib command with a timeout and error translation."""
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except TimeoutError as exc:
            raise NetworkError(f"{what} timed out on {self._host}") from exc
        except aioimaplib.Abort as exc:
            raise NetworkError(f"{what} aborted by {self._host}: {exc}") from exc
        except aioimaplib.Error as exc:
            raise ProtocolError(f"{what} failed on {self._host}: {exc}") from exc
        except OSError as exc:
            raise NetworkError(f"{what} failed on {self._host}: {exc}") from exc

    @staticmethod
    def _check(what: str, response: Any) -> Any:
        if response.result != "OK":
            detail = b" ".join(_as_bytes(line) for line in response.lines)
            raise ProtocolError(
                f"{what} returned {response.result}: "
                f"{detail.decode('utf-8', errors='replace')}"
            )
        return response

    async def authenticate(self, username: str, password: str) -> ImapSession:
        """LOGIN, then refresh capabilities and require IDLE.

        Raises:
            AuthError: credentials rejected.
            UnsupportedServerError: no IDLE capability.
        """
        try:
            response = await self._call("LOGIN", self._client.login(username, password))
        except ProtocolError as exc:
            raise AuthError(str(exc)) from exc
        if response.result != "OK":
            raise AuthError(f"login as {username} rejected by {self._host}")
        logger.debug("Logged in to %s as %s", self._host, username)

        await self._call("CAPABILITY", self._client.capability())
        if not self._client.has_capability(conventions.IDLE_CAPABILITY):
            raise UnsupportedServerError(
                f"{self._host} does not support {conventions.IDLE_CAPABILITY}"
            )
        return self

    async def select(self, mailbox: str) -> ImapSession:
        response = await self._call("SELECT", self._client.select(mailbox))
        self._check(f"SELECT {mailbox}", response)
        logger.debug("Selected %s on %s", mailbox, self._host)
        return self

    async def search(self, criteria: str) -> list[int]:
        """UID SEARCH; UIDs in server order."""
        response = await self._call(
            "UID SEARCH", self._client.uid_search(criteria, charset=None)
        )
        self._check(f"UID SEARCH {criteria}", response)
        return parse_search_response(response.lines)

    async def fetch_headers(self, uids: Iterable[int]) -> list[FetchedHeader]:
        """UID FETCH the RFC 822 header block of each UID."""
        uid_set = format_uid_set(uids)
        if not uid_set:
            return []
        response = await self._call(
            "UID FETCH",
            self._client.uid("fetch", uid_set, conventions.HEADER_FETCH_ITEMS),
        )
        self._check(f"UID FETCH {uid_set}", response)
        return parse_header_fetch(response.lines)

    async def idle_start(self, max_wait: float) -> None:
        """Send IDLE and wait for the server's continuation.

        The library's own IDLE timer is set slightly past *max_wait* as a
        backstop; the push-wait controller normally ends the IDLE first.
        """
        self._idle_task = await self._call(
            "IDLE",
            self._client.idle_start(timeout=max_wait + conventions.IDLE_DONE_TIMEOUT),
        )

    async def wait_push(self) -> list[str] | None:
        """Block until the server pushes untagged data.

        Returns the pushed lines, or None when the library ended the IDLE
        by itself. Not bounded here; callers bound it.
        """
        try:
            lines = await self._client.wait_server_push()
        except aioimaplib.Abort as exc:
            raise NetworkError(f"IDLE aborted by {self._host}: {exc}") from exc
        except OSError as exc:
            raise NetworkError(f"IDLE failed on {self._host}: {exc}") from exc
        if lines == aioimaplib.STOP_WAIT_SERVER_PUSH:
            return None
        if not isinstance(lines, list):
            lines = [lines]
        return [_as_bytes(line).decode("utf-8", errors="replace") for line in lines]

    async def idle_done(self) -> None:
        """Send DONE and wait for the tagged completion of IDLE."""
        if not self.is_idling:
            return
        idle_task, self._idle_task = self._idle_task, None
        if self._client.has_pending_idle():
            self._client.idle_done()
        response = await self._call("DONE", idle_task)
        self._check("IDLE", response)

    async def logout(self) -> None:
        response = await self._call("LOGOUT", self._client.logout())
        if response.result not in ("OK", "BYE"):
            raise ProtocolError(f"LOGOUT returned {response.result} on {self._host}")


async def connect(
    host: str,
    port: int,
    timeout: float = conventions.COMMAND_TIMEOUT,
) -> ImapSession:
    """Open a TLS connection and wait for the server greeting.

    Raises:
        NetworkError: DNS, TCP or TLS failure, or no greeting in time.
    """
    try:
        client = aioimaplib.IMAP4_SSL(host=host, port=port, timeout=timeout)
    except (OSError, ValueError) as exc:
        raise NetworkError(f"cannot connect to {host}:{port}: {exc}") from exc

    session = ImapSession(client, host, timeout=timeout)
    try:
        await session._call("greeting", client.wait_hello_from_server())
    except ProtocolError as exc:
        raise NetworkError(f"bad greeting from {host}:{port}: {exc}") from exc
    logger.debug("Connected to %s:%d", host, port)
    return session


async def close_quietly(session: ImapSession | None) -> None:
    """Best-effort LOGOUT; a broken connection is expected here."""
    if session is None:
        return
    try:
        await session.logout()
    except TransportError as exc:
        logger.debug("Logout failed: %s", exc)
