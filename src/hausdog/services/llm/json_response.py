"""Parsing adapter for JSON answers from language models.

Models are told to answer with bare JSON but sometimes wrap it in a Markdown
code fence. The adapter tries a direct parse first, then the first fenced
block. Anything else is an ExternalServiceError; no empty or default result
is ever substituted.
"""

from __future__ import annotations

import json
import re
from typing import Any

from hausdog.errors import ExternalServiceError

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def extract_fenced_block(text: str) -> str | None:
    """Return the contents of the first Markdown code fence, if any."""
    match = _FENCE_PATTERN.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def parse_model_json(text: str | None, *, service: str) -> Any:
    """Parse a model response as JSON.

    Args:
        text: Raw response text.
        service: Model service name for error reporting.

    Returns:
        The decoded JSON value.

    Raises:
        ExternalServiceError: If the response is empty or not JSON, directly
            or inside the first fenced block.
    """
    if text is None or not text.strip():
        raise ExternalServiceError("Model returned an empty response", service=service)

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as direct_error:
        fenced = extract_fenced_block(stripped)
        if fenced is None:
            raise ExternalServiceError(
                f"Model response is not valid JSON: {direct_error.msg}",
                service=service,
                cause=direct_error,
            ) from direct_error

    try:
        return json.loads(fenced)
    except json.JSONDecodeError as fenced_error:
        raise ExternalServiceError(
            f"Fenced model response is not valid JSON: {fenced_error.msg}",
            service=service,
            cause=fenced_error,
        ) from fenced_error


def parse_model_object(text: str | None, *, service: str) -> dict[str, Any]:
    """Parse a model response that must be a JSON object.

    Raises:
        ExternalServiceError: If parsing fails or the value is not an object.
    """
    value = parse_model_json(text, service=service)
    if not isinstance(value, dict):
        raise ExternalServiceError(
            f"Model response must be a JSON object, got {type(value).__name__}",
            service=service,
        )
    return value
