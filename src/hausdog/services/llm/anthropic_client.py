"""Anthropic client for the resolution stage.

Uses the Anthropic Python SDK with SDK-level retries disabled: a failed call
surfaces immediately as ExternalServiceError and the pipeline orchestrator
decides whether the document is retried.
"""

from __future__ import annotations

import logging

import anthropic

from hausdog.errors import ConfigError, ExternalServiceError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 120
MAX_TOKENS = 1024
SERVICE_NAME = "anthropic"


class AnthropicReasoningClient:
    """Sends a system prompt and one user message, returns the text reply.

    Temperature is fixed at 0.

    Args:
        api_key: Anthropic API key. Fail-closed if empty.
        model: Model identifier.
        max_tokens: Output token cap (default 1024).
        client: Optional preconstructed SDK client.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        max_tokens: int = MAX_TOKENS,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ConfigError(
                "ANTHROPIC_API_KEY environment variable is required when using the anthropic "
                "resolution backend. Set HAUSDOG_RESOLVE_BACKEND=deterministic to run offline."
            )
        self._model = model
        self._max_tokens = max_tokens
        self._client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=REQUEST_TIMEOUT_SECONDS,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    def call(self, *, system_prompt: str, user_prompt: str) -> str:
        """Make one Messages API call and return the concatenated text.

        Raises:
            ExternalServiceError: On any SDK error or an empty reply.
        """
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIStatusError as exc:
            logger.warning("Anthropic API returned HTTP %d", exc.status_code)
            raise ExternalServiceError(
                f"Anthropic API error: HTTP {exc.status_code}",
                service=SERVICE_NAME,
                cause=exc,
            ) from exc
        except anthropic.APIError as exc:
            logger.warning("Anthropic call failed: %s", type(exc).__name__)
            raise ExternalServiceError(
                f"Anthropic call failed: {type(exc).__name__}",
                service=SERVICE_NAME,
                cause=exc,
            ) from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise ExternalServiceError("Anthropic returned no text", service=SERVICE_NAME)
        return text
