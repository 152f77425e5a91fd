"""Caller identity hashing and content fingerprints.

Caller addresses (phone numbers) never appear raw in application logs;
they are hashed with a secret salt first.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


_PII_SALT: Optional[str] = None

FINGERPRINT_LENGTH = 24


def configure_pii_salt(salt: str) -> None:
    """Configure the salt used to hash caller addresses.

    Must be called during application startup before any hashing.

    Args:
        salt: Secret salt value (PII_HASH_SALT)

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Hash a caller address for safe logging.

    Args:
        value: Caller address such as "+15551234567"

    Returns:
        64-char hex digest safe for logging

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def fingerprint_text(text: str) -> str:
    """Truncated content hash of a transcript, used as a cache key.

    The whole trimmed text is hashed; only the digest is truncated.
    """
    return hashlib.sha256(text.strip().encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
