"""Per-property inbound email routing tokens."""

from __future__ import annotations

import re
import secrets
from email.utils import parseaddr

MAX_SLUG_LENGTH = 50
SUFFIX_BYTES = 3

_SLUG_RUNS = re.compile(r"[a-z0-9]+")


def slugify(name: str) -> str:
    """Lowercase `name` and join its alphanumeric runs with hyphens."""
    return "-".join(_SLUG_RUNS.findall(name.lower()))[:MAX_SLUG_LENGTH].strip("-")


def generate_ingest_token(name: str) -> str:
    """Build a token like "123-main-st-a7b3c9" for a property name."""
    slug = slugify(name)
    suffix = secrets.token_hex(SUFFIX_BYTES)
    return f"{slug}-{suffix}" if slug else suffix


def build_ingest_address(token: str, domain: str) -> str:
    return f"{token}@{domain}"


def extract_ingest_token(address: str | None) -> str | None:
    """Return the lowercased local part of a recipient address.

    Accepts both "token@domain" and "Name <token@domain>".
    """
    if not address:
        return None
    _, parsed = parseaddr(address)
    local_part = (parsed or address).split("@", 1)[0].strip().lower()
    return local_part or None
