"""
Fernet helpers for OAuth token storage and session cookies.
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config import settings


def _get_cipher() -> Fernet:
    """
    Build the Fernet cipher from ENCRYPTION_KEY.

    Raises:
        ValueError: If the key is not configured
    """
    if not settings.ENCRYPTION_KEY:
        raise ValueError(
            "ENCRYPTION_KEY not configured. "
            "Generate one with Fernet.generate_key() and set it in the environment."
        )

    key = settings.ENCRYPTION_KEY
    if isinstance(key, str):
        key = key.encode()

    return Fernet(key)


def encrypt_token(token: str) -> str:
    """
    Encrypt a token for storage.

    Example:
        >>> encrypt_token("ya29.a0Af...")
        'gAAAAABh...'
    """
    return _get_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str, ttl: Optional[int] = None) -> str:
    """
    Decrypt a token produced by encrypt_token.

    Args:
        encrypted: Fernet token
        ttl: Optional maximum age in seconds; older tokens are rejected

    Raises:
        cryptography.fernet.InvalidToken: If the token is corrupted, forged or expired
    """
    return _get_cipher().decrypt(encrypted.encode(), ttl=ttl).decode()


def try_decrypt_token(encrypted: str, ttl: Optional[int] = None) -> Optional[str]:
    """Like decrypt_token, but returns None for invalid or expired tokens."""
    try:
        return decrypt_token(encrypted, ttl=ttl)
    except InvalidToken:
        return None
