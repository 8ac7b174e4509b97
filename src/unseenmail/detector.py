"""Unseen-mail detection.

One pass over a selected mailbox: find UIDs above the watermark, fetch
their headers, and send one notification per message. The watermark is
passed in and the new value handed back, so the caller owns it.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .errors import HeaderParseError, NotificationDeliveryError
from .headers import parse_subject
from .models import DetectionResult, FetchedHeader
from .notifier import Notifier, new_mail
from .schema import AccountConfig

logger = logging.getLogger(__name__)


class SearchableSession(Protocol):
    async def search(self, criteria: str) -> list[int]: ...

    async def fetch_headers(self, uids: list[int]) -> list[FetchedHeader]: ...


def advance_watermark(watermark: int, uids: list[int]) -> int:
    """max(watermark, max(uids)); an empty pass leaves it unchanged."""
    return max(watermark, max(uids, default=watermark))


class UnseenMailDetector:
    """Turns "UIDs above the watermark" into notifications for one account.

    A pass has two steps so the caller can store the advanced watermark
    before any header is fetched: find_new() searches and advances,
    notify() fetches and announces. check_once() runs both.
    """

    def __init__(self, account: AccountConfig, notifier: Notifier) -> None:
        self._account = account
        self._notifier = notifier

    async def find_new(
        self, session: SearchableSession, watermark: int
    ) -> tuple[list[int], int]:
        """Search; return the sorted UIDs above *watermark* and the new watermark."""
        uids = await session.search(self._account.search_criteria)
        fresh = sorted({uid for uid in uids if uid > watermark})
        return fresh, advance_watermark(watermark, uids)

    async def notify(
        self, session: SearchableSession, fresh: list[int], watermark: int
    ) -> DetectionResult:
        """Fetch headers for *fresh* and send one notification per message.

        Transport errors propagate (the session is gone); header parse and
        notification errors are logged per message and never abort the pass.
        """
        name = self._account.name
        result = DetectionResult(watermark=watermark)

        if not fresh:
            logger.debug("[%s] no new mail (watermark %d)", name, watermark)
            return result

        headers = await session.fetch_headers(fresh)
        logger.debug("[%s] fetched %d header block(s)", name, len(headers))

        wanted = set(fresh)
        for header in sorted(headers, key=lambda h: h.uid):
            if header.uid not in wanted:
                continue
            wanted.discard(header.uid)
            try:
                subject = parse_subject(header.raw)
            except HeaderParseError as exc:
                logger.warning("[%s] skipping UID %d: %s", name, header.uid, exc)
                result.skipped.append(header.uid)
                continue

            logger.info("[%s] new mail: %s", name, subject)
            try:
                await self._notifier.send(new_mail(self._account, subject))
            except NotificationDeliveryError as exc:
                logger.warning(
                    "[%s] notification for UID %d failed: %s", name, header.uid, exc
                )
                result.failed.append(header.uid)
                continue
            result.notified.append(header.uid)

        if wanted:
            logger.debug(
                "[%s] no header returned for UID(s) %s", name, sorted(wanted)
            )
        return result

    async def check_once(
        self, session: SearchableSession, watermark: int
    ) -> DetectionResult:
        """Run one full detection pass."""
        fresh, watermark = await self.find_new(session, watermark)
        return await self.notify(session, fresh, watermark)
