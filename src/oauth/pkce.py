"""
PKCE (RFC 7636) helpers.

Generates the code verifier / S256 code challenge pair that binds an
authorization code to this client, plus the CSRF ``state`` value.
"""

import base64
import hashlib
import secrets
from typing import Tuple

from .exceptions import PKCEGenerationError

# 32 bytes -> 43 chars, 96 bytes -> 128 chars (RFC 7636 bounds)
MIN_VERIFIER_BYTES = 32
MAX_VERIFIER_BYTES = 96


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier(num_bytes: int = MIN_VERIFIER_BYTES) -> str:
    """
    Generate a random PKCE code verifier.

    Args:
        num_bytes: Number of random bytes (32-96)

    Returns:
        URL-safe base64 string without padding, 43-128 characters long

    Raises:
        ValueError: If num_bytes would produce a verifier outside 43-128 chars
    """
    if not MIN_VERIFIER_BYTES <= num_bytes <= MAX_VERIFIER_BYTES:
        raise ValueError(
            f"num_bytes must be between {MIN_VERIFIER_BYTES} and {MAX_VERIFIER_BYTES}"
        )
    return _b64url(secrets.token_bytes(num_bytes))


def generate_code_challenge(verifier: str) -> str:
    """
    Derive the S256 code challenge for a verifier.

    Args:
        verifier: PKCE code verifier

    Returns:
        base64url(SHA-256(verifier)) without padding

    Raises:
        PKCEGenerationError: If the verifier cannot be encoded as UTF-8
    """
    try:
        data = verifier.encode("utf-8")
    except UnicodeEncodeError as e:
        raise PKCEGenerationError("Failed to generate PKCE code challenge") from e
    return _b64url(hashlib.sha256(data).digest())


def generate_pkce_pair() -> Tuple[str, str]:
    """Return a fresh ``(code_verifier, code_challenge)`` pair."""
    verifier = generate_code_verifier()
    return verifier, generate_code_challenge(verifier)


def generate_state() -> str:
    """Generate an unguessable CSRF state value."""
    return secrets.token_urlsafe(32)
