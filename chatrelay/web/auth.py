"""Shared-secret checks for trigger and webhook requests."""

from __future__ import annotations

import hmac


def bearer_matches(authorization: str | None, secret: str) -> bool:
    """True if an Authorization header is exactly `Bearer <secret>`."""
    if not authorization:
        return False
    return hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode())


def token_matches(token: str | None, expected: str) -> bool:
    """Constant-time comparison of a raw token header."""
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())
