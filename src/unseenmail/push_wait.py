"""IDLE push-wait controller.

One call is one IDLE cycle:

    Idle-Init --IDLE--> Waiting --(timeout | push | interrupt)--> Done --DONE-->

The session is returned to the caller ready for the next command. The
controller never re-enters IDLE by itself; the watcher loops.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

from . import conventions
from .models import PushWaitResult, WaitReason

logger = logging.getLogger(__name__)


class IdleSession(Protocol):
    async def idle_start(self, max_wait: float) -> None: ...

    async def wait_push(self) -> list[str] | None: ...

    async def idle_done(self) -> None: ...


class PushWaitController:
    """Bounded IDLE wait with an optional external interrupt."""

    def __init__(
        self,
        max_wait: float = conventions.IDLE_MAX_WAIT,
        label: str = "",
    ) -> None:
        self._max_wait = max_wait
        self._label = label

    async def wait(
        self,
        session: IdleSession,
        interrupt: asyncio.Event | None = None,
    ) -> PushWaitResult:
        """Idle until the server pushes, *max_wait* elapses, or *interrupt* is set.

        Raises whatever the session raises (TransportError family); the
        caller treats that as a lost connection.
        """
        logger.debug("[%s] entering IDLE (max %ss)", self._label, self._max_wait)
        await session.idle_start(self._max_wait)

        push_task = asyncio.ensure_future(session.wait_push())
        waiters: set[asyncio.Future[object]] = {push_task}
        interrupt_task = None
        if interrupt is not None:
            interrupt_task = asyncio.ensure_future(interrupt.wait())
            waiters.add(interrupt_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self._max_wait,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

        if push_task in done:
            lines = push_task.result()
            if lines is None:
                result = PushWaitResult(WaitReason.TIMEOUT)
            else:
                result = PushWaitResult(WaitReason.SERVER_PUSH, data=lines)
        elif interrupt_task is not None and interrupt_task in done:
            result = PushWaitResult(WaitReason.INTERRUPTED)
        else:
            result = PushWaitResult(WaitReason.TIMEOUT)

        if result.reason is WaitReason.SERVER_PUSH:
            logger.debug("[%s] IDLE data: %s", self._label, result.data)
        else:
            logger.debug("[%s] IDLE ended: %s", self._label, result.reason)

        await session.idle_done()
        return result
