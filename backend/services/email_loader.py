"""
Backfill of a user's Gmail history into Tinybird.

Pages through the mailbox (newest to oldest, strictly older than what was
already published), normalizes every message into a TinybirdEmail and
publishes one batch per page.
"""

import logging
from typing import Any, Dict, Optional

from gmail_client import GmailClient, GmailNotFoundError
from tinybird_client import TinybirdClient, TinybirdEmail
from utils.async_utils import gather_defined, retry_async
from utils.mail import parse_date_ms, parse_message
from utils.unsubscribe import find_unsubscribe_link

logger = logging.getLogger(__name__)

PAGE_SIZE = 200
RETRY_DELAY_SECONDS = 10.0
MISSING_RECIPIENT = "Missing"


def build_before_query(before: Optional[int]) -> Optional[str]:
    """Gmail search clause for messages older than `before` (epoch ms), inclusive of that second."""
    if before is None:
        return None
    return f"before:{before // 1000 + 1}"


async def fetch_email(
    owner_email: str,
    gmail: GmailClient,
    summary: Dict[str, Any],
) -> Optional[TinybirdEmail]:
    """
    Fetch, parse and normalize one listed message.

    Returns None for summaries without ids and for messages deleted since
    they were listed.
    """
    message_id = summary.get("id")
    thread_id = summary.get("threadId")
    if not message_id or not thread_id:
        return None

    logger.debug(f"Fetching message {message_id}")

    try:
        message = await gmail.get_message(message_id)
    except GmailNotFoundError:
        logger.info(f"Message {message_id} disappeared before it could be fetched")
        return None

    parsed = parse_message(message)
    labels = set(parsed.label_ids)

    return TinybirdEmail(
        owner_email=owner_email,
        thread_id=thread_id,
        gmail_message_id=message_id,
        from_=parsed.headers.from_,
        to=parsed.headers.to or MISSING_RECIPIENT,
        subject=parsed.headers.subject,
        timestamp=parse_date_ms(parsed.headers.date, fallback=parsed.internal_date) or 0,
        unsubscribe_link=find_unsubscribe_link(parsed.text_html) if parsed.text_html else None,
        read="UNREAD" not in labels,
        sent="SENT" in labels,
        draft="DRAFT" in labels,
        inbox="INBOX" in labels,
        size_estimate=parsed.size_estimate,
    )


async def save_batch(
    owner_email: str,
    gmail: GmailClient,
    tinybird: TinybirdClient,
    page_token: Optional[str] = None,
    before: Optional[int] = None,
    page_size: int = PAGE_SIZE,
    fetch_concurrency: Optional[int] = None,
) -> Dict[str, Any]:
    """
    List one page of messages, publish them to Tinybird and return the raw
    list response so the caller can follow `nextPageToken`.

    Errors from listing, fetching or publishing propagate.
    """
    res = await gmail.list_messages_page(
        query=build_before_query(before),
        max_results=page_size,
        page_token=page_token,
    )

    async def fetch(summary: Dict[str, Any]) -> Optional[TinybirdEmail]:
        return await fetch_email(owner_email, gmail, summary)

    emails = await gather_defined(fetch, res.get("messages") or [], limit=fetch_concurrency)

    logger.info(f"Publishing {len(emails)} emails")
    await tinybird.publish_emails(emails)

    return res


async def get_oldest_timestamp(owner_email: str, tinybird: TinybirdClient) -> Optional[int]:
    """Timestamp (epoch ms) of the oldest email already published for the owner."""
    rows = await tinybird.get_last_email(owner_email, direction="oldest")
    if not rows:
        return None
    timestamp = rows[0].get("timestamp")
    return int(timestamp) if timestamp is not None else None


async def publish_all_emails(
    owner_email: str,
    gmail: GmailClient,
    tinybird: TinybirdClient,
    page_size: int = PAGE_SIZE,
    retry_delay: float = RETRY_DELAY_SECONDS,
    fetch_concurrency: Optional[int] = None,
) -> Dict[str, int]:
    """
    Publish every email older than the oldest one already in Tinybird.

    Each page is retried once after `retry_delay` seconds; a second failure
    aborts the run.

    Returns:
        {"pages": n} where n counts the full pages processed
    """
    page_token: Optional[str] = None
    pages = 0

    before = await get_oldest_timestamp(owner_email, tinybird)
    logger.info(f"Loading emails before: {before}")

    while True:
        logger.info(f"Page {pages}")

        res = await retry_async(
            lambda: save_batch(
                owner_email,
                gmail,
                tinybird,
                page_token=page_token,
                before=before,
                page_size=page_size,
                fetch_concurrency=fetch_concurrency,
            ),
            attempts=2,
            delay=retry_delay,
            log=logger,
        )

        page_token = res.get("nextPageToken")
        messages = res.get("messages") or []

        if len(messages) < page_size:
            break

        pages += 1

        # A full last page comes without a token; an empty cursor would restart the listing
        if not page_token:
            break

    return {"pages": pages}
