"""
Tests for token encryption and session tokens.
"""

import pytest
from cryptography.fernet import InvalidToken

from config import settings
from sessions import create_session_token
from utils.encryption import decrypt_token, encrypt_token, try_decrypt_token


def test_round_trip():
    encrypted = encrypt_token("ya29.secret")

    assert encrypted != "ya29.secret"
    assert decrypt_token(encrypted) == "ya29.secret"


def test_expired_token():
    encrypted = encrypt_token("owner@example.com")

    with pytest.raises(InvalidToken):
        decrypt_token(encrypted, ttl=-1)
    assert try_decrypt_token(encrypted, ttl=-1) is None


def test_garbage_token():
    assert try_decrypt_token("not-a-token") is None


def test_missing_key(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "")

    with pytest.raises(ValueError, match="ENCRYPTION_KEY"):
        encrypt_token("x")


def test_session_token_holds_email():
    token = create_session_token("owner@example.com")

    assert try_decrypt_token(token, ttl=settings.SESSION_MAX_AGE_SECONDS) == "owner@example.com"
