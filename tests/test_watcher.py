"""Tests for the per-account watcher: backoff, escalation, reconnect."""

from __future__ import annotations

import asyncio

import pytest
from conftest import (
    FakeSession,
    StopWatcher,
    fake_connector,
    make_header,
    recording_sleeper,
)

from unseenmail.errors import (
    AuthError,
    NetworkError,
    NotificationDeliveryError,
    ProtocolError,
    UnsupportedServerError,
)
from unseenmail.models import NotificationRequest
from unseenmail.notifier import MemoryNotifier
from unseenmail.schema import WatcherSettings
from unseenmail.watcher import AccountWatcher, Backoff, WatcherState


def _settings(initial: float = 2, threshold: float = 256) -> WatcherSettings:
    return WatcherSettings(
        initial_backoff_seconds=initial,
        escalation_threshold_seconds=threshold,
        idle_max_wait_seconds=5,
        command_timeout_seconds=1,
    )


def _warnings(notifier: MemoryNotifier) -> list[NotificationRequest]:
    return [r for r in notifier.sent if "warning" in r.tags]


class TestBackoff:
    def test_doubles(self):
        b = Backoff(2)
        seen = []
        for _ in range(4):
            seen.append(b.delay)
            b.advance()
        assert seen == [2, 4, 8, 16]

    def test_reset(self):
        b = Backoff(1)
        b.advance()
        b.advance()
        b.reset()
        assert b.delay == 1


class TestConnectFailures:
    async def test_delays_double(self, account, notifier):
        connect, attempts = fake_connector(lambda host: NetworkError("refused"))
        sleep, delays = recording_sleeper(stop_after=3)
        watcher = AccountWatcher(
            account, _settings(initial=2), notifier, connect=connect, sleep=sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2, 4, 8]
        assert len(attempts) == 3
        assert watcher.state is WatcherState.BACKOFF

    async def test_no_warning_below_threshold(self, account, notifier):
        connect, _ = fake_connector(lambda host: NetworkError("refused"))
        sleep, delays = recording_sleeper(stop_after=4)
        watcher = AccountWatcher(
            account, _settings(initial=2, threshold=256), notifier, connect, sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2, 4, 8, 16]
        assert _warnings(notifier) == []

    async def test_warning_at_threshold(self, account, notifier):
        connect, _ = fake_connector(lambda host: NetworkError("refused"))
        sleep, _ = recording_sleeper(stop_after=3)
        watcher = AccountWatcher(
            account, _settings(initial=2, threshold=8), notifier, connect, sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        (warning,) = _warnings(notifier)
        assert warning.title == "@work connection failed"
        assert "refused" in warning.body
        assert "8s" in warning.body

    async def test_every_failure_past_threshold_warns(self, account, notifier):
        connect, _ = fake_connector(lambda host: NetworkError("refused"))
        sleep, _ = recording_sleeper(stop_after=5)
        watcher = AccountWatcher(
            account, _settings(initial=2, threshold=8), notifier, connect, sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        # delays 2, 4, 8, 16, 32: the last three reach the threshold
        assert len(_warnings(notifier)) == 3

    async def test_warning_delivery_failure_is_contained(self, account):
        class DownNotifier(MemoryNotifier):
            async def send(self, request):
                raise NotificationDeliveryError("ntfy unreachable")

        connect, _ = fake_connector(lambda host: NetworkError("refused"))
        sleep, delays = recording_sleeper(stop_after=2)
        watcher = AccountWatcher(
            account, _settings(initial=300, threshold=256), DownNotifier(), connect, sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [300, 600]

    @pytest.mark.parametrize(
        "step,error",
        [
            ("authenticate", AuthError("bad password")),
            ("authenticate", UnsupportedServerError("no IDLE")),
            ("select", ProtocolError("no such mailbox")),
        ],
    )
    async def test_session_failures_back_off(self, account, notifier, step, error):
        session = FakeSession()
        session.failures[step] = error
        connect, _ = fake_connector([session])
        sleep, delays = recording_sleeper(stop_after=1)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2]
        assert session.logged_out
        assert watcher.watermark == 0

    async def test_unexpected_error_while_connecting_is_contained(
        self, account, notifier
    ):
        async def connect(host, port, timeout):
            raise RuntimeError("bug")

        sleep, delays = recording_sleeper(stop_after=2)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2, 4]


class TestActive:
    async def test_success_resets_backoff(self, account, notifier):
        session = FakeSession()
        session.pushes.put_nowait(NetworkError("connection reset"))
        connect, _ = fake_connector(
            [NetworkError("down"), NetworkError("down"), session]
        )
        sleep, delays = recording_sleeper(stop_after=3)
        watcher = AccountWatcher(
            account, _settings(initial=2), notifier, connect=connect, sleep=sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2, 4, 2]

    async def test_detect_then_idle_loop(self, account, notifier):
        session = FakeSession({1: make_header("one"), 2: make_header("two")})

        def new_arrival():
            session.messages[3] = make_header("three")
            return ["3 EXISTS"]

        session.pushes.put_nowait(["* OK still here"])
        session.pushes.put_nowait(new_arrival)
        session.pushes.put_nowait(NetworkError("connection reset"))
        connect, _ = fake_connector([session])
        sleep, _ = recording_sleeper(stop_after=1)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert [r.body for r in notifier.sent] == ["one", "two", "three"]
        assert watcher.watermark == 3
        assert session.call_names()[:3] == ["authenticate", "select", "search"]
        assert session.call_names().count("search") == 3
        assert session.logged_out

    async def test_watermark_survives_reconnect(self, account, notifier):
        mailbox = {1: make_header("one"), 2: make_header("two")}
        first, second = FakeSession(mailbox), FakeSession(mailbox)
        first.pushes.put_nowait(NetworkError("connection reset"))
        second.pushes.put_nowait(ProtocolError("IDLE returned NO"))
        connect, attempts = fake_connector([first, second])
        sleep, delays = recording_sleeper(stop_after=2)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert len(attempts) == 2
        assert [r.body for r in notifier.sent] == ["one", "two"]
        assert "fetch_headers" not in second.call_names()
        assert delays == [2, 2]

    async def test_failed_logout_is_ignored(self, account, notifier):
        session = FakeSession()
        session.failures["logout"] = NetworkError("already closed")
        session.pushes.put_nowait(NetworkError("connection reset"))
        connect, _ = fake_connector([session])
        sleep, delays = recording_sleeper(stop_after=1)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert delays == [2]

    async def test_active_failure_does_not_escalate(self, account, notifier):
        session = FakeSession()
        session.pushes.put_nowait(NetworkError("connection reset"))
        connect, _ = fake_connector([session])
        sleep, _ = recording_sleeper(stop_after=1)
        watcher = AccountWatcher(
            account, _settings(initial=512, threshold=256), notifier, connect, sleep
        )

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert _warnings(notifier) == []

    async def test_wake_interrupts_idle(self, account, notifier):
        session = FakeSession({1: make_header("one")})
        connect, _ = fake_connector([session])
        watcher = AccountWatcher(account, _settings(), notifier, connect=connect)

        task = asyncio.create_task(watcher.run())
        for _ in range(100):
            if watcher.state is WatcherState.PUSH_WAITING:
                break
            await asyncio.sleep(0.01)
        session.messages[2] = make_header("two")
        watcher.wake()
        for _ in range(100):
            if len(notifier.sent) == 2:
                break
            await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [r.body for r in notifier.sent] == ["one", "two"]
        assert session.logged_out

    async def test_cancel_logs_out(self, account, notifier):
        session = FakeSession()
        connect, _ = fake_connector([session])
        watcher = AccountWatcher(account, _settings(), notifier, connect=connect)

        task = asyncio.create_task(watcher.run())
        for _ in range(100):
            if watcher.state is WatcherState.PUSH_WAITING:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.logged_out

    async def test_fetch_failure_still_advances_watermark(self, account, notifier):
        mailbox = {11: make_header("a"), 12: make_header("b")}
        first, second = FakeSession(mailbox), FakeSession(mailbox)
        for session in (first, second):
            session.failures["fetch_headers"] = ProtocolError("UID FETCH returned NO")
        second.pushes.put_nowait(NetworkError("connection reset"))
        connect, _ = fake_connector([first, second])
        sleep, _ = recording_sleeper(stop_after=2)
        watcher = AccountWatcher(account, _settings(), notifier, connect, sleep)

        with pytest.raises(StopWatcher):
            await watcher.run()

        assert watcher.watermark == 12
        assert "fetch_headers" in first.call_names()
        assert "fetch_headers" not in second.call_names()
        assert "idle_start" in second.call_names()
        assert notifier.sent == []
