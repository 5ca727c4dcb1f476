"""Document classifiers used by the extraction stage.

DocumentClassifier: Protocol for a vision model that reads one artifact.
GeminiClassifier: Gemini-backed classifier.
DeterministicClassifier: Offline classifier for tests and local runs.

Classifiers return the raw model text. Parsing and validation belong to the
extraction service so every backend goes through the same discipline.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

import httpx

from hausdog.services.llm.gemini_client import GEMINI_API_BASE, GeminiVisionClient

logger = logging.getLogger(__name__)


class DocumentClassifier(Protocol):
    """Provider-agnostic interface for document classification calls."""

    def classify(
        self,
        data: bytes,
        mime_type: str,
        *,
        system_prompt: str,
        user_prompt: str,
    ) -> str:
        """Classify one artifact and return the raw response text.

        Args:
            data: Artifact bytes.
            mime_type: MIME type to declare to the model.
            system_prompt: Taxonomy and output-format instructions.
            user_prompt: Per-call instruction.

        Returns:
            Raw response string from the model.
        """
        ...


class GeminiClassifier:
    """Classifier backed by the Gemini generateContent endpoint.

    Args:
        api_key: Gemini API key.
        model: Gemini model identifier.
        http_client: Optional httpx client (tests use a MockTransport).
        base_url: API base URL override.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        http_client: httpx.Client | None = None,
        base_url: str = GEMINI_API_BASE,
    ) -> None:
        self._client = GeminiVisionClient(api_key, model, client=http_client, base_url=base_url)

    def classify(
        self,
        data: bytes,
        mime_type: str,
        *,
        system_prompt: str,
        user_prompt: str,
    ) -> str:
        logger.debug(
            "Classifying %d bytes as %s with %s", len(data), mime_type, self._client.model
        )
        return self._client.generate(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            data=data,
            mime_type=mime_type,
        )


_FIELD_PATTERNS: dict[str, re.Pattern[str]] = {
    "manufacturer": re.compile(r"^\s*(?:manufacturer|brand|make|mfr)\s*[:#]\s*(.+)$", re.I | re.M),
    "model": re.compile(r"^\s*(?:model|model no\.?|model number|m/n)\s*[:#]\s*(.+)$", re.I | re.M),
    "serialNumber": re.compile(
        r"^\s*(?:serial|serial no\.?|serial number|s/n)\s*[:#]\s*(.+)$", re.I | re.M
    ),
    "productName": re.compile(r"^\s*(?:product|item|description)\s*[:#]\s*(.+)$", re.I | re.M),
    "date": re.compile(r"\b(\d{4}-\d{2}-\d{2})\b"),
    "price": re.compile(
        r"^\s*(?:total|amount|price)\s*[:#]?\s*(\$?\s*[\d,]+(?:\.\d{2})?)", re.I | re.M
    ),
    "vendor": re.compile(r"^\s*(?:vendor|store|sold by|seller)\s*[:#]\s*(.+)$", re.I | re.M),
    "warrantyExpires": re.compile(
        r"^\s*(?:warranty expires|warranty until|expires)\s*[:#]\s*(\d{4}-\d{2}-\d{2})", re.I | re.M
    ),
}

_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("invoice", ("invoice", "bill to")),
    ("receipt", ("receipt", "subtotal", "total")),
    ("warranty", ("warranty",)),
    ("manual", ("manual", "instructions", "installation guide")),
]

_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("hvac", ("furnace", "air conditioner", "heat pump", "hvac", "thermostat", "boiler")),
    ("plumbing", ("water heater", "faucet", "toilet", "sump pump", "plumbing")),
    ("electrical", ("breaker", "panel", "generator", "electrical", "outlet")),
    (
        "appliance",
        ("refrigerator", "fridge", "dishwasher", "washer", "dryer", "oven", "range", "microwave"),
    ),
    ("tool", ("drill", "saw", "mower", "tool")),
    ("fixture", ("light", "fan", "fixture")),
    ("structure", ("roof", "window", "door", "siding", "foundation")),
]


class DeterministicClassifier:
    """Offline classifier: reads "Label: value" lines from text-like payloads.

    Images are reported as product photos with low confidence. No external
    calls are made, so the same bytes always give the same answer.
    """

    def classify(
        self,
        data: bytes,
        mime_type: str,
        *,
        system_prompt: str = "",
        user_prompt: str = "",
    ) -> str:
        if mime_type.startswith("image/"):
            result = self._image_result()
        else:
            result = self._text_result(data.decode("utf-8", errors="ignore"))
        return json.dumps(result, sort_keys=True)

    def _image_result(self) -> dict[str, Any]:
        return {
            "documentType": "product_photo",
            "confidence": 0.5,
            "rawText": "",
            "extracted": {},
            "suggestedItemName": None,
            "suggestedCategory": "other",
        }

    def _text_result(self, text: str) -> dict[str, Any]:
        extracted: dict[str, Any] = {}
        for field, pattern in _FIELD_PATTERNS.items():
            match = pattern.search(text)
            if match:
                extracted[field] = match.group(1).strip()

        lowered = text.lower()
        document_type = self._classify(lowered, extracted)
        name_parts = [extracted.get("manufacturer"), extracted.get("model")]
        suggested_name = extracted.get("productName") or " ".join(p for p in name_parts if p)

        return {
            "documentType": document_type,
            "confidence": 0.9 if extracted else 0.5,
            "rawText": " ".join(text.split()),
            "extracted": extracted,
            "suggestedItemName": suggested_name or None,
            "suggestedCategory": self._category(lowered),
        }

    def _classify(self, lowered: str, extracted: dict[str, Any]) -> str:
        for document_type, keywords in _TYPE_KEYWORDS:
            if any(kw in lowered for kw in keywords):
                return document_type
        if "serialNumber" in extracted or "model" in extracted:
            return "equipment_plate"
        return "other"

    def _category(self, lowered: str) -> str:
        for category, keywords in _CATEGORY_KEYWORDS:
            if any(kw in lowered for kw in keywords):
                return category
        return "other"
