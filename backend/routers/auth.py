"""
Authentication router for OAuth flow with Google.
Handles OAuth authorization, callback, session cookie and credential management.
"""

import asyncio
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_db
from models import GmailCredentials
from schemas import OAuthStatusResponse, OAuthURLResponse
from sessions import AuthSession, create_session_token, get_current_session
from utils.encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

router = APIRouter()

# Read-only mailbox access plus the account email for the session
SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

REVOKE_URI = "https://oauth2.googleapis.com/revoke"

# In-memory state storage for CSRF protection
# TODO: Move to the database so states survive restarts and multiple workers
_oauth_states = {}


def _create_flow() -> Flow:
    """
    Create OAuth flow instance for Google authentication.

    Raises:
        ValueError: If OAuth credentials are not configured
    """
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise ValueError(
            "Google OAuth credentials not configured. "
            "Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables."
        )

    return Flow.from_client_config(
        {
            "web": {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
            }
        },
        scopes=SCOPES,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
    )


def _frontend_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/auth/callback?{urlencode(params)}")


def _fetch_user_email(credentials: Credentials) -> Optional[str]:
    service = build("oauth2", "v2", credentials=credentials, cache_discovery=False)
    return service.userinfo().get().execute().get("email")


@router.get("/google/start", response_model=OAuthURLResponse)
async def start_oauth() -> OAuthURLResponse:
    """
    Generate Google OAuth authorization URL.

    Raises:
        HTTPException: If OAuth flow creation fails
    """
    try:
        flow = _create_flow()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    state = secrets.token_urlsafe(32)
    _oauth_states[state] = {
        "created_at": datetime.utcnow(),
        "expires_at": datetime.utcnow() + timedelta(minutes=5),
    }

    authorization_url, _ = flow.authorization_url(
        access_type="offline",
        state=state,
        prompt="consent",  # Force consent screen to get refresh token
    )

    return OAuthURLResponse(auth_url=authorization_url)


@router.get("/google/callback")
async def oauth_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: str = Query(..., description="CSRF state token"),
    error: Optional[str] = Query(None, description="Error from OAuth provider"),
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """
    Handle OAuth callback from Google.

    Stores encrypted credentials keyed by the account email, sets the
    session cookie and redirects back to the frontend.
    """
    if error or not code:
        return _frontend_redirect(error="access_denied", message=error or "Missing authorization code")

    state_data = _oauth_states.pop(state, None)
    if state_data is None:
        return _frontend_redirect(error="invalid_state", message="Invalid or expired state token")

    if datetime.utcnow() > state_data["expires_at"]:
        return _frontend_redirect(error="expired_state", message="State token expired")

    try:
        flow = _create_flow()
        await asyncio.to_thread(flow.fetch_token, code=code)
        credentials = flow.credentials

        user_email = await asyncio.to_thread(_fetch_user_email, credentials)
        if not user_email:
            raise ValueError("Failed to retrieve user email from Google")

        stmt = select(GmailCredentials).where(GmailCredentials.user_id == user_email)
        result = await db.execute(stmt)
        existing_creds = result.scalar_one_or_none()

        encrypted_access_token = encrypt_token(credentials.token)
        scopes = json.dumps(list(credentials.scopes or SCOPES))

        if existing_creds:
            existing_creds.access_token = encrypted_access_token
            # Google only returns a refresh token on first consent
            if credentials.refresh_token:
                existing_creds.refresh_token = encrypt_token(credentials.refresh_token)
            existing_creds.token_expiry = credentials.expiry
            existing_creds.scopes = scopes
            existing_creds.updated_at = datetime.utcnow()
        else:
            db.add(
                GmailCredentials(
                    user_id=user_email,
                    access_token=encrypted_access_token,
                    refresh_token=encrypt_token(credentials.refresh_token or ""),
                    token_expiry=credentials.expiry,
                    scopes=scopes,
                )
            )

        await db.commit()

    except Exception as e:
        await db.rollback()
        logger.error(f"OAuth token exchange failed: {e}")
        return _frontend_redirect(error="token_exchange_failed", message=str(e))

    response = _frontend_redirect(success="true", email=user_email)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(user_email),
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.is_production(),
        samesite="lax",
    )
    return response


@router.get("/status", response_model=OAuthStatusResponse)
async def get_auth_status(
    session: Optional[AuthSession] = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> OAuthStatusResponse:
    """Report whether the caller has a session backed by stored credentials."""
    if session is None:
        return OAuthStatusResponse(connected=False)

    stmt = select(GmailCredentials).where(GmailCredentials.user_id == session.user_email)
    result = await db.execute(stmt)
    creds = result.scalar_one_or_none()

    if creds is None:
        return OAuthStatusResponse(connected=False)

    return OAuthStatusResponse(
        connected=True,
        user_email=session.user_email,
        scopes=json.loads(creds.scopes),
        expires_at=creds.token_expiry,
    )


@router.post("/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_account(
    response: Response,
    session: Optional[AuthSession] = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Revoke and delete the caller's stored credentials and clear the session cookie.

    Raises:
        HTTPException: If the delete fails
    """
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    if session is None:
        return None

    stmt = select(GmailCredentials).where(GmailCredentials.user_id == session.user_email)
    result = await db.execute(stmt)
    creds = result.scalar_one_or_none()
    if creds is None:
        return None

    try:
        access_token = decrypt_token(creds.access_token)
        async with httpx.AsyncClient(timeout=10) as client:
            revoke_response = await client.post(
                REVOKE_URI,
                params={"token": access_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        revoke_response.raise_for_status()
    except Exception as revoke_error:
        # Revocation is best effort; the local credentials are removed regardless
        logger.warning(f"Failed to revoke token with Google: {revoke_error}")

    try:
        await db.delete(creds)
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to disconnect account: {str(e)}",
        )
    return None
