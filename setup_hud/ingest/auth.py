"""Ingest layer: shared-secret bearer check for webhook submitters."""

from __future__ import annotations

import hashlib
import hmac

_COMPARISON_KEY = b"webhook-hmac-comparison-key"


def _digest(value: str) -> bytes:
    return hmac.new(_COMPARISON_KEY, value.encode("utf-8"), hashlib.sha256).digest()


def timing_safe_equal(candidate: str, expected: str) -> bool:
    """Compare fixed-length HMAC digests so neither length nor content leaks through timing."""
    return hmac.compare_digest(_digest(candidate), _digest(expected))


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):]
    return token or None


def is_authorized(authorization: str | None, secret: str) -> bool:
    """True when no secret is configured or the bearer token matches it."""
    if not secret:
        return True
    token = extract_bearer_token(authorization)
    if token is None:
        return False
    return timing_safe_equal(token, secret)
