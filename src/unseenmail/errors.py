"""Exception hierarchy.

Scope decides handling:
- ConfigError: process-level, fatal at startup
- TransportError and subclasses: account-scoped, the watcher backs off
  and reconnects
- HeaderParseError: message-scoped, the message is skipped
- NotificationDeliveryError: best effort, logged and dropped
"""

from __future__ import annotations


class UnseenMailError(Exception):
    """Base exception for unseenmail."""


class ConfigError(UnseenMailError):
    """Configuration file is missing, unreadable or invalid."""


class TransportError(UnseenMailError):
    """A connection-level failure; the session must be discarded."""


class NetworkError(TransportError):
    """DNS, TCP, TLS or socket failure, or a command timed out."""


class AuthError(TransportError):
    """The server rejected the credentials."""


class ProtocolError(TransportError):
    """The server answered a command with something other than OK."""


class UnsupportedServerError(TransportError):
    """The server lacks a capability the watcher depends on (IDLE)."""


class HeaderParseError(UnseenMailError):
    """A fetched header block could not be parsed."""


class NotificationDeliveryError(UnseenMailError):
    """The notification endpoint could not be reached or refused the message."""
