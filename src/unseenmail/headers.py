"""Subject extraction from raw RFC 822 header blocks."""

from __future__ import annotations

import email.errors
import email.parser
import email.policy

from . import conventions
from .errors import HeaderParseError

_parser = email.parser.BytesHeaderParser(policy=email.policy.default)


def parse_subject(raw: bytes) -> str:
    """Return the decoded Subject of *raw*, or the placeholder when absent.

    Raises:
        HeaderParseError: the block is empty, has no header fields, or the
            Subject cannot be decoded.
    """
    if not raw or not raw.strip():
        raise HeaderParseError("empty header block")
    try:
        message = _parser.parsebytes(raw)
        if not message.keys():
            raise HeaderParseError("no header fields found")
        subject = message.get("Subject")
    except (email.errors.MessageError, ValueError, LookupError) as exc:
        raise HeaderParseError(f"malformed header block: {exc}") from exc

    if subject is None:
        return conventions.NO_SUBJECT
    text = " ".join(str(subject).split())
    return text or conventions.NO_SUBJECT
