"""
Statistics router.
Loads the caller's mailbox history into Tinybird for analytics.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_db
from gmail_client import GmailClient
from schemas import ErrorResponse, LoadEmailsResponse
from services.email_loader import publish_all_emails
from sessions import AuthSession, get_current_session
from tinybird_client import TinybirdClient

logger = logging.getLogger(__name__)

router = APIRouter()


def get_tinybird_client() -> TinybirdClient:
    """FastAPI dependency providing a Tinybird client from settings."""
    return TinybirdClient()


@router.post(
    "/tinybird/load",
    response_model=Union[LoadEmailsResponse, ErrorResponse],
)
async def load_tinybird_emails(
    session: Optional[AuthSession] = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    tinybird: TinybirdClient = Depends(get_tinybird_client),
):
    """
    Backfill the caller's older emails into Tinybird.

    Unauthenticated callers get {"error": "Not authenticated"} with a 200
    status; clients check the body.

    Returns:
        LoadEmailsResponse: Number of full pages processed
    """
    if session is None:
        return JSONResponse(content={"error": "Not authenticated"})

    gmail = GmailClient(db=db, user_id=session.user_email)

    result = await publish_all_emails(
        owner_email=session.user_email,
        gmail=gmail,
        tinybird=tinybird,
        page_size=settings.LOAD_PAGE_SIZE,
        retry_delay=settings.LOAD_RETRY_DELAY_SECONDS,
        fetch_concurrency=settings.LOAD_FETCH_CONCURRENCY,
    )

    logger.info(f"Loaded {result['pages']} pages of emails for {session.user_email}")
    return LoadEmailsResponse(**result)
