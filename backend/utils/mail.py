"""
Gmail message parsing.

Turns the JSON returned by users.messages.get(format="full") into headers,
label ids and decoded plain-text / HTML bodies.
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ParsedHeaders:
    from_: str = ""
    to: str = ""
    subject: str = ""
    date: str = ""
    cc: Optional[str] = None
    list_unsubscribe: Optional[str] = None


@dataclass
class ParsedMessage:
    """
    A Gmail message with its payload flattened.

    Attributes:
        id: Gmail message ID
        thread_id: Gmail thread ID
        label_ids: Gmail label IDs (e.g. INBOX, UNREAD, SENT)
        headers: The headers this service cares about
        text_plain: First decoded text/plain part, if any
        text_html: First decoded text/html part, if any
        size_estimate: Gmail's size estimate in bytes
        internal_date: Gmail's receive time in epoch milliseconds
    """
    id: str
    thread_id: str
    label_ids: List[str] = field(default_factory=list)
    headers: ParsedHeaders = field(default_factory=ParsedHeaders)
    text_plain: Optional[str] = None
    text_html: Optional[str] = None
    size_estimate: int = 0
    internal_date: Optional[int] = None


def get_header(headers: List[Dict[str, str]], name: str) -> Optional[str]:
    """Case-insensitive lookup of the first header called `name`."""
    name = name.lower()
    for header in headers:
        if header.get("name", "").lower() == name:
            return header.get("value", "")
    return None


def decode_body(data: Optional[str]) -> str:
    """Decode a base64url body as sent by Gmail (padding is often stripped)."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _collect_bodies(part: Dict[str, Any], bodies: Dict[str, str]) -> None:
    mime_type = part.get("mimeType", "")
    # Attachments carry a filename and an attachmentId instead of inline data
    if mime_type in ("text/plain", "text/html") and not part.get("filename"):
        data = part.get("body", {}).get("data")
        if data and mime_type not in bodies:
            bodies[mime_type] = decode_body(data)

    for child in part.get("parts", []) or []:
        _collect_bodies(child, bodies)


def parse_message(message: Dict[str, Any]) -> ParsedMessage:
    """
    Parse a full Gmail message.

    Example:
        >>> parsed = parse_message(service.users().messages().get(...).execute())
        >>> parsed.headers.subject
        'Your weekly digest'
    """
    payload = message.get("payload", {}) or {}
    raw_headers = payload.get("headers", []) or []

    headers = ParsedHeaders(
        from_=get_header(raw_headers, "From") or "",
        to=get_header(raw_headers, "To") or "",
        subject=get_header(raw_headers, "Subject") or "",
        date=get_header(raw_headers, "Date") or "",
        cc=get_header(raw_headers, "Cc"),
        list_unsubscribe=get_header(raw_headers, "List-Unsubscribe"),
    )

    bodies: Dict[str, str] = {}
    _collect_bodies(payload, bodies)

    internal_date = message.get("internalDate")

    return ParsedMessage(
        id=message.get("id", ""),
        thread_id=message.get("threadId", ""),
        label_ids=list(message.get("labelIds", []) or []),
        headers=headers,
        text_plain=bodies.get("text/plain"),
        text_html=bodies.get("text/html"),
        size_estimate=int(message.get("sizeEstimate", 0) or 0),
        internal_date=int(internal_date) if internal_date else None,
    )


def parse_date_ms(date_header: str, fallback: Optional[int] = None) -> Optional[int]:
    """
    Convert an RFC 2822 Date header into epoch milliseconds.

    Returns `fallback` when the header is missing or unparseable. Dates
    without a timezone are read as UTC.
    """
    if not date_header:
        return fallback
    try:
        parsed = parsedate_to_datetime(date_header)
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Unparseable Date header: {date_header!r}")
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
