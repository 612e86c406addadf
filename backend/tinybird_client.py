"""
Tinybird client for the email analytics datasource.

Publishes normalized email records through the Events API (NDJSON) and
reads back the oldest/newest record stored for an owner through a pipe
endpoint.
"""

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from config import settings

logger = logging.getLogger(__name__)


class TinybirdError(Exception):
    """Raised when Tinybird rejects a request."""
    pass


class TinybirdRateLimitError(TinybirdError):
    """Raised when Tinybird answers 429."""
    pass


class TinybirdEmail(BaseModel):
    """
    One row of the `email` datasource.

    Field names follow the datasource columns (camelCase); booleans are
    stored as UInt8 so they serialize as 1/0.
    """
    model_config = ConfigDict(populate_by_name=True)

    owner_email: str = Field(..., alias="ownerEmail")
    thread_id: str = Field(..., alias="threadId")
    gmail_message_id: str = Field(..., alias="gmailMessageId")
    from_: str = Field(..., alias="from")
    to: str
    subject: str
    timestamp: int  # epoch milliseconds
    unsubscribe_link: Optional[str] = Field(None, alias="unsubscribeLink")
    read: bool
    sent: bool
    draft: bool
    inbox: bool
    size_estimate: int = Field(..., alias="sizeEstimate")

    @field_serializer("read", "sent", "draft", "inbox")
    def _serialize_flag(self, value: bool) -> int:
        return 1 if value else 0


class TinybirdClient:
    """
    Minimal async Tinybird API client.

    Args:
        base_url: API host, e.g. https://api.tinybird.co
        token: Token with append rights on the datasource and read rights on the pipe
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        email_datasource: Optional[str] = None,
        last_email_pipe: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or settings.TINYBIRD_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.TINYBIRD_TOKEN
        self.email_datasource = email_datasource or settings.TINYBIRD_EMAIL_DATASOURCE
        self.last_email_pipe = last_email_pipe or settings.TINYBIRD_LAST_EMAIL_PIPE
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code == 429:
            raise TinybirdRateLimitError(f"Tinybird rate limit exceeded while trying to {action}")
        if response.is_error:
            raise TinybirdError(
                f"Failed to {action}: HTTP {response.status_code} {response.text[:500]}"
            )

    @retry(
        retry=retry_if_exception_type(TinybirdRateLimitError),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        stop=stop_after_attempt(3),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def publish_emails(self, emails: Sequence[TinybirdEmail]) -> Dict[str, Any]:
        """
        Append a batch of email rows to the datasource.

        Returns:
            Tinybird's ingestion summary ({} for an empty batch)

        Raises:
            TinybirdRateLimitError: If still rate limited after retries
            TinybirdError: For any other rejected request
        """
        if not emails:
            return {}

        body = "\n".join(
            json.dumps(email.model_dump(by_alias=True, exclude_none=True))
            for email in emails
        )

        async with self._client() as client:
            response = await client.post(
                "/v0/events",
                params={"name": self.email_datasource},
                content=body.encode(),
                headers={"Content-Type": "application/x-ndjson"},
            )

        self._raise_for_status(response, f"publish {len(emails)} emails")
        return response.json() if response.content else {}

    @retry(
        retry=retry_if_exception_type(TinybirdRateLimitError),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        stop=stop_after_attempt(3),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def get_last_email(
        self,
        owner_email: str,
        direction: Literal["oldest", "newest"] = "newest",
    ) -> List[Dict[str, Any]]:
        """
        Fetch the oldest or newest stored email row for an owner.

        Returns:
            The pipe's `data` rows (at most one; empty when nothing is stored),
            each with at least `timestamp` and `gmailMessageId`
        """
        async with self._client() as client:
            response = await client.get(
                f"/v0/pipes/{self.last_email_pipe}.json",
                params={"ownerEmail": owner_email, "direction": direction},
            )

        self._raise_for_status(response, f"get {direction} email for {owner_email}")
        return response.json().get("data", [])
