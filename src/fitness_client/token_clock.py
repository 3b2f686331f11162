"""Read expiry information from access tokens.

Signatures are NOT verified here. Claims are decoded only to decide when to
renew; whether a token is actually valid is for the backend to say.
"""

from __future__ import annotations

import time
from typing import Optional

from jose import jwt
from jose.exceptions import JOSEError

from fitness_client.exceptions import MalformedTokenError
from fitness_client.models import TokenClaims


def decode_claims(raw_token: str) -> TokenClaims:
    """Decode ``sub``, ``user_id`` and ``exp`` without signature checks.

    Raises ``MalformedTokenError`` when the token is undecodable or any of
    the three claims is missing or mistyped.
    """
    if not raw_token or not isinstance(raw_token, str):
        raise MalformedTokenError("Empty token")
    try:
        claims = jwt.get_unverified_claims(raw_token)
    except JOSEError as exc:
        raise MalformedTokenError(f"Cannot decode token: {exc}") from exc

    subject = claims.get("sub")
    user_id = claims.get("user_id")
    exp = claims.get("exp")

    if not isinstance(subject, str) or not subject:
        raise MalformedTokenError("Token lacks a 'sub' claim")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise MalformedTokenError("Token lacks an integer 'user_id' claim")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise MalformedTokenError("Token lacks a numeric 'exp' claim")

    return TokenClaims(subject=subject, user_id=user_id, expires_at=float(exp))


def expiry_of(raw_token: str) -> float:
    """Return the token's expiry as epoch seconds."""
    return decode_claims(raw_token).expires_at


def seconds_until_expiry(raw_token: str, now: Optional[float] = None) -> float:
    """Seconds left before expiry. Negative once expired."""
    if now is None:
        now = time.time()
    return expiry_of(raw_token) - now


def is_expired(raw_token: str, now: Optional[float] = None) -> bool:
    """Zero-tolerance check: ``now >= exp`` means expired."""
    if now is None:
        now = time.time()
    return now >= expiry_of(raw_token)
