"""Extraction stage: artifact bytes in, validated ExtractionResult out.

The stage makes exactly one classifier call per invocation. Retries are the
orchestrator's concern.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from hausdog.errors import ExternalServiceError
from hausdog.models.extraction import (
    DocumentKind,
    ExtractedFields,
    ExtractionResult,
    ItemCategory,
)
from hausdog.services.extraction.classifiers import DocumentClassifier
from hausdog.services.extraction.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_PROMPT,
)
from hausdog.services.llm.json_response import parse_model_object

logger = logging.getLogger(__name__)

SERVICE_NAME = "extraction"
EMAIL_BODY_CONFIDENCE = 0.8
EMAIL_BODY_ITEM_NAME = "Email Document"

_JPEG_ALIASES = frozenset({"image/heic", "image/heif"})


def classifier_mime_type(content_type: str) -> str:
    """Return the MIME type declared to the classifier.

    HEIC and HEIF photos are declared as JPEG, which vision models accept.
    """
    base = content_type.split(";", 1)[0].strip().lower()
    if base in _JPEG_ALIASES:
        return "image/jpeg"
    return base


def email_body_extraction(text: str) -> ExtractionResult:
    """Build the synthetic extraction result for an email body document."""
    return ExtractionResult(
        document_type=DocumentKind.EMAIL,
        confidence=EMAIL_BODY_CONFIDENCE,
        raw_text=text,
        extracted=ExtractedFields(),
        suggested_item_name=EMAIL_BODY_ITEM_NAME,
        suggested_category=ItemCategory.OTHER,
    )


class ExtractionService:
    """Classifies one artifact into an ExtractionResult.

    Args:
        classifier: Backend that reads the artifact.
    """

    def __init__(self, classifier: DocumentClassifier) -> None:
        self._classifier = classifier

    def extract(self, data: bytes, content_type: str) -> ExtractionResult:
        """Run the classifier and validate its answer.

        Args:
            data: Artifact bytes.
            content_type: Stored content type of the artifact.

        Returns:
            Validated extraction result.

        Raises:
            ExternalServiceError: If the classifier fails, or its answer is not
                JSON or does not match the ExtractionResult shape.
        """
        mime_type = classifier_mime_type(content_type)
        raw = self._classifier.classify(
            data,
            mime_type,
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            user_prompt=EXTRACTION_USER_PROMPT,
        )
        payload = parse_model_object(raw, service=SERVICE_NAME)

        try:
            result = ExtractionResult.model_validate(payload)
        except PydanticValidationError as e:
            raise ExternalServiceError(
                f"Extraction output failed validation: {e.error_count()} error(s)",
                service=SERVICE_NAME,
                cause=e,
            ) from e

        logger.info(
            "Extracted document_type=%s confidence=%.2f",
            result.document_type.value,
            result.confidence,
        )
        return result
