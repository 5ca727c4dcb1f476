"""Inbound webhook HMAC-SHA256 signature verification.

Header format (Svix style, as sent by the email provider):

    svix-signature: v1,<unix timestamp> <hex signature>

A comma between timestamp and signature is accepted as well. The signature
is the hex HMAC-SHA256 of "{timestamp}.{raw_body}" under the shared secret.

SECURITY: Never log secrets or signature values.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "svix-signature"
SIGNATURE_VERSION = "v1"

_HEADER_PATTERN = re.compile(r"^\s*v1\s*,\s*(\d+)\s*[\s,]\s*([0-9a-fA-F]+)\s*$")


@dataclass(frozen=True)
class ParsedSignature:
    """Timestamp and hex signature taken from the header."""

    timestamp: int
    signature: str


def parse_signature_header(header: str | None) -> ParsedSignature | None:
    """Parse a signature header, returning None if it is malformed."""
    if not header:
        return None
    match = _HEADER_PATTERN.match(header)
    if match is None:
        return None
    return ParsedSignature(timestamp=int(match.group(1)), signature=match.group(2).lower())


def compute_hmac_signature(secret: str, timestamp: int, payload: bytes) -> str:
    """Compute the hex HMAC-SHA256 of "{timestamp}.{payload}"."""
    canonical = f"{timestamp}.".encode() + payload
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=canonical,
        digestmod=hashlib.sha256,
    ).hexdigest()


def build_signature_header(secret: str, timestamp: int, payload: bytes) -> str:
    """Produce a header value that `verify_webhook_signature` accepts."""
    return f"{SIGNATURE_VERSION},{timestamp} {compute_hmac_signature(secret, timestamp, payload)}"


def verify_webhook_signature(secret: str | None, payload: bytes, header: str | None) -> bool:
    """Verify a webhook signature in constant time.

    Args:
        secret: Shared webhook secret. Missing secret fails closed.
        payload: Raw request body bytes, exactly as received.
        header: Signature header value.

    Returns:
        True if the signature matches, False otherwise.
    """
    if not secret:
        logger.warning("Webhook secret is not configured; rejecting webhook")
        return False
    parsed = parse_signature_header(header)
    if parsed is None:
        logger.warning("Missing or malformed webhook signature header")
        return False
    expected = compute_hmac_signature(secret, parsed.timestamp, payload)
    return hmac.compare_digest(expected, parsed.signature)
