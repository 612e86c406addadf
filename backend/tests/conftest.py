"""
Pytest configuration and fixtures for the Inbox Stats tests.
Provides a test database, encryption key, mock Gmail service and sample messages.
"""

import base64
import json
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from config import settings
from db import Base
from gmail_client import GmailClient
from models import GmailCredentials
from utils.encryption import encrypt_token


TEST_USER = "owner@example.com"


def b64url(text: str) -> str:
    """Encode a body the way Gmail does (base64url, no padding)."""
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch) -> str:
    """Give every test a fresh Fernet key."""
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", key)
    return key


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session using SQLite in-memory database.

    Yields:
        AsyncSession: Test database session
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def stored_credentials(test_db: AsyncSession) -> GmailCredentials:
    """Valid, unexpired credentials for TEST_USER."""
    creds = GmailCredentials(
        user_id=TEST_USER,
        access_token=encrypt_token("test_access_token"),
        refresh_token=encrypt_token("test_refresh_token"),
        token_expiry=datetime.utcnow() + timedelta(hours=1),
        scopes=json.dumps(["https://www.googleapis.com/auth/gmail.readonly"]),
    )
    test_db.add(creds)
    await test_db.commit()
    return creds


# ============================================================================
# Gmail Client Fixtures
# ============================================================================


@pytest.fixture
def mock_gmail_service():
    """
    Create a mock Gmail API service.

    Returns:
        MagicMock: Mock Gmail service
    """
    service = MagicMock()

    messages = MagicMock()
    service.users.return_value.messages.return_value = messages

    messages.list.return_value.execute.return_value = {
        "messages": [
            {"id": "msg1", "threadId": "thread1"},
            {"id": "msg2", "threadId": "thread2"},
        ],
        "resultSizeEstimate": 2,
    }

    messages.get.return_value.execute.return_value = {
        "id": "msg1",
        "threadId": "thread1",
        "labelIds": ["INBOX"],
        "payload": {
            "headers": [
                {"name": "From", "value": "test@example.com"},
                {"name": "Subject", "value": "Test Email"},
                {"name": "Date", "value": "Mon, 1 Jan 2024 12:00:00 +0000"},
            ],
        },
        "sizeEstimate": 1024,
    }

    return service


@pytest.fixture
def mock_gmail_client(mock_gmail_service) -> GmailClient:
    """
    GmailClient with the service pre-built, so no database or credentials are touched.
    """
    client = GmailClient(db=MagicMock(), user_id=TEST_USER)
    client._service = mock_gmail_service
    return client


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_html() -> str:
    return (
        "<html><body>"
        "<p>Big sale this week!</p>"
        '<a href="https://shop.example.com/deals">See deals</a>'
        '<a href="https://shop.example.com/unsub?u=42">Unsubscribe</a>'
        "</body></html>"
    )


@pytest.fixture
def sample_full_message(sample_html: str) -> dict:
    """
    A Gmail message in format="full" with a multipart/alternative body.
    """
    return {
        "id": "msg_123",
        "threadId": "thread_123",
        "labelIds": ["INBOX", "UNREAD", "CATEGORY_PROMOTIONS"],
        "snippet": "Big sale this week!",
        "internalDate": "1704110400000",
        "sizeEstimate": 2048,
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": "Shop <news@shop.example.com>"},
                {"name": "To", "value": TEST_USER},
                {"name": "Subject", "value": "Big sale"},
                {"name": "Date", "value": "Mon, 1 Jan 2024 12:00:00 +0000"},
            ],
            "body": {"size": 0},
            "parts": [
                {
                    "partId": "0",
                    "mimeType": "text/plain",
                    "filename": "",
                    "body": {"size": 19, "data": b64url("Big sale this week!")},
                },
                {
                    "partId": "1",
                    "mimeType": "text/html",
                    "filename": "",
                    "body": {"size": len(sample_html), "data": b64url(sample_html)},
                },
            ],
        },
    }
