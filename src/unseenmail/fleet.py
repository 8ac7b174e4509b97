"""Fleet runner: one independent watcher task per account."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from . import transport
from .notifier import Notifier, notifier_for
from .schema import AccountConfig, UnseenMailConfig
from .watcher import AccountWatcher, Connector

logger = logging.getLogger(__name__)

NotifierFactory = Callable[[AccountConfig], Notifier]


class Fleet:
    """Runs every configured watcher concurrently.

    Watchers share nothing; each owns its session, watermark and backoff.
    A watcher that dies from an unexpected error is logged and does not
    take the others down.
    """

    def __init__(
        self,
        config: UnseenMailConfig,
        notifier_factory: NotifierFactory | None = None,
        dry_run: bool = False,
        connect: Connector = transport.connect,
    ) -> None:
        if notifier_factory is None:

            def notifier_factory(account: AccountConfig) -> Notifier:
                return notifier_for(account, dry_run=dry_run)

        self.watchers = [
            AccountWatcher(
                account, config.watcher, notifier_factory(account), connect=connect
            )
            for account in config.accounts
        ]

    def wake_all(self) -> None:
        """Make every watcher re-check its mailbox now."""
        for watcher in self.watchers:
            watcher.wake()

    async def run(self) -> None:
        """Run until cancelled; under normal operation this never returns."""
        logger.info("Starting %d watcher(s)", len(self.watchers))
        results = await asyncio.gather(
            *(self._guard(w) for w in self.watchers), return_exceptions=True
        )
        for watcher, result in zip(self.watchers, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("[%s] watcher exited: %r", watcher.name, result)

    async def _guard(self, watcher: AccountWatcher) -> None:
        try:
            await watcher.run()
        except asyncio.CancelledError:
            logger.debug("[%s] watcher cancelled", watcher.name)
            raise
        except Exception:
            logger.exception("[%s] watcher crashed", watcher.name)
            raise
