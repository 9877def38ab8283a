"""Webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the exact request bytes and
sends the result as ``X-Hub-Signature-256: sha256=<hex>``. Verification must
run on the raw body as received: re-serialising parsed JSON changes
whitespace and key order and produces a different digest.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def has_signature_prefix(header: str | None) -> bool:
    return bool(header) and header.startswith(SIGNATURE_PREFIX)


def sign(payload: bytes, secret: str) -> str:
    """Return the signature header value GitHub would send for payload."""
    digest = hmac.new(secret.strip().encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(payload: bytes, header: str | None, secret: str) -> bool:
    """Return True if header is a valid signature of payload under secret.

    The hex digest is decoded before comparing, so upper- and lower-case hex
    both verify. The comparison uses hmac.compare_digest so the time taken
    does not leak how many leading bytes matched.
    """
    if not has_signature_prefix(header) or not secret:
        return False

    expected = hmac.new(secret.strip().encode("utf-8"), payload, hashlib.sha256).digest()
    try:
        actual = bytes.fromhex(header[len(SIGNATURE_PREFIX) :])
    except ValueError:
        return False
    return hmac.compare_digest(expected, actual)
