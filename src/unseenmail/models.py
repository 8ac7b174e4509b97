"""Data models passed between the watcher components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum


class Priority(IntEnum):
    """ntfy message priority."""

    MIN = 1
    LOW = 2
    DEFAULT = 3
    HIGH = 4
    MAX = 5


@dataclass(frozen=True)
class NotificationRequest:
    """A single push notification, built and handed to a notifier."""

    title: str
    body: str
    priority: Priority = Priority.DEFAULT
    click: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FetchedHeader:
    """Raw RFC 822 header block of one message."""

    uid: int
    raw: bytes


class WaitReason(StrEnum):
    """Why a push-wait returned."""

    TIMEOUT = "timeout"
    SERVER_PUSH = "server_push"
    INTERRUPTED = "interrupted"


@dataclass
class PushWaitResult:
    """Outcome of one IDLE cycle."""

    reason: WaitReason
    data: list[str] = field(default_factory=list)


@dataclass
class DetectionResult:
    """Outcome of one detection pass."""

    watermark: int
    notified: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)  # unparseable headers
    failed: list[int] = field(default_factory=list)  # delivery errors
