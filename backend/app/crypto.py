"""
Encryption at rest for seller API keys.

Fernet symmetric encryption from the `cryptography` package, keyed by the
ENCRYPTION_KEY env var. Without a key (development only) values pass through
unchanged.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from app.config import get_settings

logger = logging.getLogger(__name__)

_fernet: Optional[Fernet] = None
_warned_plaintext = False


def _get_fernet() -> Optional[Fernet]:
    global _fernet, _warned_plaintext
    if _fernet is not None:
        return _fernet

    settings = get_settings()
    if not settings.encryption_key:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production.")
        if not _warned_plaintext:
            logger.warning("ENCRYPTION_KEY not set — account API keys are stored in plaintext.")
            _warned_plaintext = True
        return None

    try:
        _fernet = Fernet(settings.encryption_key.encode())
    except ValueError as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
    return _fernet


def encrypt_value(plaintext: Optional[str]) -> Optional[str]:
    if plaintext is None:
        return None
    f = _get_fernet()
    return plaintext if f is None else f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: Optional[str]) -> Optional[str]:
    """Decrypt a stored value; values written before encryption was enabled come back as-is."""
    if ciphertext is None:
        return None
    f = _get_fernet()
    if f is None:
        return ciphertext
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.warning("Stored value is not a Fernet token — treating it as plaintext.")
        return ciphertext
