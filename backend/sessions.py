"""
Session resolution for API requests.

After the OAuth callback the browser holds a cookie containing a Fernet
token of the user's Google account email. A request is authenticated when
that token is valid, not older than SESSION_MAX_AGE_SECONDS, and the user
still has stored Gmail credentials.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_db
from models import GmailCredentials
from utils.encryption import encrypt_token, try_decrypt_token


@dataclass
class AuthSession:
    """The authenticated caller."""
    user_email: str


def create_session_token(user_email: str) -> str:
    return encrypt_token(user_email)


async def get_auth_session(request: Request, db: AsyncSession) -> Optional[AuthSession]:
    """
    Resolve the session cookie on `request`.

    Returns:
        AuthSession, or None when the cookie is missing, invalid, expired,
        or points at a user without credentials
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None

    user_email = try_decrypt_token(token, ttl=settings.SESSION_MAX_AGE_SECONDS)
    if not user_email:
        return None

    stmt = select(GmailCredentials.id).where(GmailCredentials.user_id == user_email)
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        return None

    return AuthSession(user_email=user_email)


async def get_current_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[AuthSession]:
    """FastAPI dependency wrapping get_auth_session."""
    return await get_auth_session(request, db)
