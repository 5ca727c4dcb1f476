"""Owner identification for the Hausdog API.

Owners send an API key in the X-Hausdog-API-Key header. Keys map to owners
through a JSON registry held in HAUSDOG_API_KEYS_JSON:

    {"<api key>": {"owner_id": "...", "name": "..."}}

The registry is read per request so keys can be rotated without a restart.
A registry that does not validate as a whole is treated as empty; every
request then fails with 401.
"""

import hashlib
import hmac
import logging
import os
from typing import Annotated

from fastapi import Depends, Request
from pydantic import BaseModel, TypeAdapter, ValidationError

from hausdog.api.errors import HausdogHttpError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Hausdog-API-Key"
HAUSDOG_API_KEYS_ENV = "HAUSDOG_API_KEYS_JSON"


class OwnerContext(BaseModel):
    """Authenticated caller. Every document operation is scoped to owner_id."""

    owner_id: str
    name: str = ""


_REGISTRY = TypeAdapter(dict[str, OwnerContext])


def load_owner_registry() -> dict[str, OwnerContext]:
    raw = os.environ.get(HAUSDOG_API_KEYS_ENV, "").strip()
    if not raw:
        return {}
    try:
        return _REGISTRY.validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "%s is invalid (%d errors); no API key will be accepted",
            HAUSDOG_API_KEYS_ENV,
            e.error_count(),
        )
        return {}


def find_owner(api_key: str, registry: dict[str, OwnerContext]) -> OwnerContext | None:
    """Match `api_key` against every registered key in constant time.

    Keys are compared as SHA-256 digests so every comparison has the same
    length, and the loop never exits early.
    """
    provided = hashlib.sha256(api_key.encode("utf-8")).digest()
    found: OwnerContext | None = None
    for registered, owner in registry.items():
        candidate = hashlib.sha256(registered.encode("utf-8")).digest()
        if hmac.compare_digest(provided, candidate):
            found = owner
    return found


def require_owner(request: Request) -> OwnerContext:
    """FastAPI dependency resolving the calling owner.

    Raises:
        HausdogHttpError: 401 if the key is missing or unknown. The message
            does not distinguish an unknown key from an empty registry.
    """
    api_key = request.headers.get(API_KEY_HEADER, "").strip()
    if not api_key:
        raise HausdogHttpError(401, "unauthorized", "Missing API key")

    owner = find_owner(api_key, load_owner_registry())
    if owner is None:
        raise HausdogHttpError(401, "unauthorized", "Invalid API key")

    request.state.owner_id = owner.owner_id
    return owner


RequireOwner = Annotated[OwnerContext, Depends(require_owner)]
