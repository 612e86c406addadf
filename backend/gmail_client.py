"""
Gmail API client wrapper for the mailbox backfill.

This module provides a thin Gmail API wrapper with:
- Automatic token refresh and credential management
- Retry logic with exponential backoff for rate limiting
- Single-page message listing for cursor-driven pagination
- Full message retrieval
- Proper error handling and rate limit respect

Gmail API Quotas:
- 250 quota units per user per second
- 1,000,000,000 quota units per day
- list(): 5 units, get(): 5 units
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import google_auth_httplib2
import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from config import settings
from models import GmailCredentials
from utils.encryption import encrypt_token, decrypt_token

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


# ============================================================================
# Custom Exceptions
# ============================================================================


class GmailAPIError(Exception):
    """Base exception for Gmail API errors."""
    pass


class GmailAuthError(GmailAPIError):
    """Raised when authentication fails or credentials are invalid."""
    pass


class GmailRateLimitError(GmailAPIError):
    """Raised when Gmail API rate limit is exceeded."""
    pass


class GmailQuotaExceededError(GmailAPIError):
    """Raised when Gmail API quota is exceeded."""
    pass


class GmailNotFoundError(GmailAPIError):
    """Raised when a message no longer exists (deleted after listing)."""
    pass


def _translate_http_error(e: HttpError, action: str) -> GmailAPIError:
    """Map a googleapiclient HttpError onto the client's exception hierarchy."""
    status = e.resp.status
    if status == 429:
        return GmailRateLimitError("Gmail API rate limit exceeded")
    if status == 403:
        try:
            error_details = json.loads(e.content.decode())
        except ValueError:
            error_details = e.content
        if "rateLimitExceeded" in str(error_details):
            return GmailRateLimitError("Gmail API rate limit exceeded")
        if "quotaExceeded" in str(error_details):
            return GmailQuotaExceededError("Gmail API quota exceeded")
        return GmailAuthError(f"Permission denied: {str(e)}")
    if status == 404:
        return GmailNotFoundError(f"Not found while trying to {action}")
    return GmailAPIError(f"Failed to {action}: {str(e)}")


# ============================================================================
# Gmail Client
# ============================================================================


class GmailClient:
    """
    Gmail API client bound to one user's stored credentials.

    Attributes:
        db: AsyncSession used to load and refresh credentials
        credentials: Optional pre-loaded GmailCredentials row
        user_id: Google account email the credentials belong to
    """

    SCOPES = [
        "https://www.googleapis.com/auth/gmail.readonly",
    ]

    def __init__(
        self,
        db: AsyncSession,
        user_id: str,
        credentials: Optional[GmailCredentials] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.credentials = credentials
        self._creds: Optional[Credentials] = None
        self._service = None

    async def get_service(self):
        """
        Get or create the authenticated Gmail API service.

        Loads credentials from the database, refreshes them if expired and
        writes the new access token back.

        Raises:
            GmailAuthError: If credentials are missing or invalid
        """
        if self._service:
            return self._service

        if not self.credentials:
            stmt = select(GmailCredentials).where(
                GmailCredentials.user_id == self.user_id
            )
            result = await self.db.execute(stmt)
            self.credentials = result.scalar_one_or_none()

        if not self.credentials:
            raise GmailAuthError(
                f"No Gmail credentials found for user: {self.user_id}. "
                "Please authenticate via OAuth flow."
            )

        try:
            access_token = decrypt_token(self.credentials.access_token)
            refresh_token = decrypt_token(self.credentials.refresh_token)
        except Exception as e:
            raise GmailAuthError(f"Failed to decrypt credentials: {str(e)}")

        creds = Credentials(
            token=access_token,
            refresh_token=refresh_token or None,
            token_uri=TOKEN_URI,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            scopes=json.loads(self.credentials.scopes),
        )
        creds.expiry = self.credentials.token_expiry

        if creds.expired and creds.refresh_token:
            try:
                await asyncio.to_thread(creds.refresh, Request())
            except Exception as e:
                raise GmailAuthError(f"Failed to refresh credentials: {str(e)}")

            self.credentials.access_token = encrypt_token(creds.token)
            self.credentials.token_expiry = creds.expiry
            self.credentials.updated_at = datetime.utcnow()
            await self.db.commit()

            logger.info(f"Refreshed Gmail credentials for user: {self.user_id}")

        self._creds = creds
        self._service = await asyncio.to_thread(
            build, "gmail", "v1", credentials=creds, cache_discovery=False
        )
        return self._service

    async def _execute(self, request) -> Dict[str, Any]:
        """
        Execute a prepared API request in a worker thread.

        httplib2 connections are not thread-safe, so every call gets its own
        authorized transport when real credentials are present.
        """
        if self._creds is None:
            return await asyncio.to_thread(request.execute)
        http = google_auth_httplib2.AuthorizedHttp(self._creds, http=httplib2.Http())
        return await asyncio.to_thread(request.execute, http=http)

    @retry(
        retry=retry_if_exception_type((GmailRateLimitError, GmailQuotaExceededError)),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        stop=stop_after_attempt(5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def list_messages_page(
        self,
        query: Optional[str] = None,
        max_results: int = 100,
        page_token: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        List one page of message summaries.

        Args:
            query: Gmail search query (e.g., "before:1700000000")
            max_results: Page size (Gmail caps this at 500)
            page_token: Continuation token from a previous page
            label_ids: Optional list of label IDs to filter by

        Returns:
            The raw list response: 'messages' (id/threadId pairs, absent when
            empty), 'nextPageToken' and 'resultSizeEstimate'

        Raises:
            GmailRateLimitError: If rate limit is exceeded
            GmailAPIError: For other API errors
        """
        service = await self.get_service()

        request_params: Dict[str, Any] = {
            "userId": "me",
            "maxResults": max_results,
        }
        if query:
            request_params["q"] = query
        if label_ids:
            request_params["labelIds"] = label_ids
        if page_token:
            request_params["pageToken"] = page_token

        try:
            return await self._execute(service.users().messages().list(**request_params))
        except HttpError as e:
            raise _translate_http_error(e, "list messages")

    @retry(
        retry=retry_if_exception_type((GmailRateLimitError, GmailQuotaExceededError)),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        stop=stop_after_attempt(5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def get_message(
        self,
        message_id: str,
        format: str = "full",
    ) -> Dict[str, Any]:
        """
        Get a single message by ID.

        Args:
            message_id: Gmail message ID
            format: "minimal", "metadata", "full" (default) or "raw"

        Raises:
            GmailNotFoundError: If the message no longer exists
            GmailRateLimitError: If rate limit is exceeded
            GmailAPIError: For other API errors
        """
        service = await self.get_service()

        try:
            return await self._execute(
                service.users().messages().get(userId="me", id=message_id, format=format)
            )
        except HttpError as e:
            raise _translate_http_error(e, f"get message {message_id}")
