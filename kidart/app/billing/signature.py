"""HMAC signature verification for inbound billing webhooks."""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Optional, Union

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_HEX_DIGEST_LENGTH = hashlib.sha256().digest_size * 2


def _as_bytes(value: Union[bytes, str]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def compute_signature(raw_body: Union[bytes, str], secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of ``raw_body`` keyed by ``secret``."""

    return hmac.new(secret.encode("utf-8"), _as_bytes(raw_body), hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: Union[bytes, str, None],
    signature_header: Optional[str],
    secret: Optional[str],
) -> bool:
    """Check ``signature_header`` against the digest of the unparsed body.

    Never raises: any missing or malformed input yields ``False``.
    """

    if not raw_body or not signature_header or not secret:
        logger.warning("Missing required parameters for signature verification")
        return False

    received = _WHITESPACE.sub("", signature_header).lower()
    if len(received) != _HEX_DIGEST_LENGTH:
        logger.warning("Signature length mismatch")
        return False

    try:
        received_bytes = bytes.fromhex(received)
    except ValueError:
        logger.warning("Signature header is not hex encoded")
        return False

    expected_bytes = hmac.new(
        secret.encode("utf-8"), _as_bytes(raw_body), hashlib.sha256
    ).digest()
    return hmac.compare_digest(received_bytes, expected_bytes)


__all__ = ["compute_signature", "verify_signature"]
