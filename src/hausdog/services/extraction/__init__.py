"""Extraction stage: classify an artifact and read item fields off it."""

from hausdog.services.extraction.classifiers import (
    DeterministicClassifier,
    DocumentClassifier,
    GeminiClassifier,
)
from hausdog.services.extraction.service import (
    ExtractionService,
    classifier_mime_type,
    email_body_extraction,
)

__all__ = [
    "DeterministicClassifier",
    "DocumentClassifier",
    "ExtractionService",
    "GeminiClassifier",
    "classifier_mime_type",
    "email_body_extraction",
]
