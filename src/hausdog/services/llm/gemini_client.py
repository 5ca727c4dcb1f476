"""Gemini vision client over the Generative Language REST API.

Sends one artifact inline (base64) with a system instruction and a user
prompt, and returns the concatenated text of the first candidate. There is
no retry here; the pipeline orchestrator owns retries.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from hausdog.errors import ConfigError, ExternalServiceError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
REQUEST_TIMEOUT_SECONDS = 120.0
TEMPERATURE = 0.1
MAX_OUTPUT_TOKENS = 4096
SERVICE_NAME = "gemini"


class GeminiVisionClient:
    """Calls `models/{model}:generateContent` with inline artifact data.

    Args:
        api_key: Gemini API key. Fail-closed if empty.
        model: Model identifier, e.g. "gemini-2.0-flash".
        client: Optional httpx client (tests inject a MockTransport).
        base_url: API base URL override.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        client: httpx.Client | None = None,
        base_url: str = GEMINI_API_BASE,
    ) -> None:
        if not api_key:
            raise ConfigError(
                "GEMINI_API_KEY environment variable is required when using the gemini "
                "extraction backend. Set HAUSDOG_EXTRACT_BACKEND=deterministic to run offline."
            )
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        data: bytes,
        mime_type: str,
    ) -> str:
        """Send the artifact and prompts, return the response text.

        Raises:
            ExternalServiceError: On transport failure, non-2xx status, an
                error payload, or a response without candidate text.
        """
        body: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(data).decode("ascii"),
                            }
                        },
                        {"text": user_prompt},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "responseMimeType": "application/json",
            },
        }
        url = f"{self._base_url}/models/{self._model}:generateContent"

        try:
            response = self._client.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"Gemini request failed: {type(e).__name__}",
                service=SERVICE_NAME,
                cause=e,
            ) from e

        if response.is_error:
            logger.warning("Gemini API returned HTTP %d", response.status_code)
            raise ExternalServiceError(
                f"Gemini API error: HTTP {response.status_code}",
                service=SERVICE_NAME,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "Gemini response is not JSON", service=SERVICE_NAME, cause=e
            ) from e

        return _candidate_text(payload)


def _candidate_text(payload: Any) -> str:
    """Concatenate the text parts of the first candidate."""
    if not isinstance(payload, dict):
        raise ExternalServiceError("Gemini response is not an object", service=SERVICE_NAME)

    error = payload.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ExternalServiceError(f"Gemini API error: {message}", service=SERVICE_NAME)

    candidates = payload.get("candidates") or []
    if not candidates:
        raise ExternalServiceError("Gemini returned no candidates", service=SERVICE_NAME)

    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if not text.strip():
        raise ExternalServiceError("Gemini returned an empty candidate", service=SERVICE_NAME)
    return text
