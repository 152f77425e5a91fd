"""Shared utilities for the riskwatch platform."""
from .pii import hash_pii, fingerprint_text, configure_pii_salt

__all__ = ["hash_pii", "fingerprint_text", "configure_pii_salt"]
