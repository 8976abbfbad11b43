# libs/signature.py
"""Slack request signing (v0) verification.

Slack signs every request with ``HMAC-SHA256(signing_secret,
"v0:{timestamp}:{raw_body}")`` and sends the hex digest as
``X-Slack-Signature: v0=<hex>`` together with ``X-Slack-Request-Timestamp``.
The signature must be checked against the *raw* body bytes, before the form is
parsed.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional

SIGNATURE_HEADER = "X-Slack-Signature"
TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_VERSION = "v0"
MAX_CLOCK_SKEW_SECONDS = 300

__all__ = [
    "InvalidSignature",
    "MAX_CLOCK_SKEW_SECONDS",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "compute_signature",
    "verify_slack_signature",
]


class InvalidSignature(ValueError):
    """Request did not come from Slack (or is a replay)."""


def compute_signature(secret: str, timestamp: str | int, body: bytes) -> str:
    """Returns the expected ``v0=<hex>`` value for *body*."""
    basestring = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    secret: str,
    *,
    now: Optional[float] = None,
) -> int:
    """Validate a Slack request and return its timestamp as ``int``.

    Raises
    ------
    InvalidSignature
        Missing headers, a non-integer or stale timestamp, or a digest that
        does not match.
    """
    if not secret:
        raise InvalidSignature("Signing secret is not configured")
    if not signature or not timestamp:
        raise InvalidSignature("Invalid request")

    try:
        ts = int(timestamp)
    except ValueError as exc:
        raise InvalidSignature("Invalid request timestamp") from exc

    current = int(now if now is not None else time.time())
    if abs(current - ts) > MAX_CLOCK_SKEW_SECONDS:
        raise InvalidSignature("Request too old")

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        raise InvalidSignature("Invalid signature")
    return ts
