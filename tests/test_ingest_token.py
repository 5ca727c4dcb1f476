"""Tests for per-property ingest tokens and addresses."""

from __future__ import annotations

import re

from hausdog.services.ingestion.ingest_token import (
    build_ingest_address,
    extract_ingest_token,
    generate_ingest_token,
    slugify,
)


class TestIngestToken:
    def test_slugify(self) -> None:
        assert slugify("123 Main St.") == "123-main-st"
        assert slugify("  Lake House #2 ") == "lake-house-2"

    def test_token_shape(self) -> None:
        token = generate_ingest_token("123 Main St")
        assert re.fullmatch(r"123-main-st-[0-9a-f]{6}", token)

    def test_tokens_differ(self) -> None:
        assert generate_ingest_token("Cabin") != generate_ingest_token("Cabin")

    def test_name_without_alphanumerics(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{6}", generate_ingest_token("!!!"))

    def test_address(self) -> None:
        assert build_ingest_address("cabin-abc123", "ingest.hausdog.app") == (
            "cabin-abc123@ingest.hausdog.app"
        )


class TestExtractIngestToken:
    def test_bare_address(self) -> None:
        assert extract_ingest_token("123-Main-St-A7B3C9@ingest.hausdog.app") == (
            "123-main-st-a7b3c9"
        )

    def test_display_name_form(self) -> None:
        assert extract_ingest_token("Hausdog <cabin-abc123@ingest.hausdog.app>") == "cabin-abc123"

    def test_missing(self) -> None:
        assert extract_ingest_token(None) is None
        assert extract_ingest_token("") is None
