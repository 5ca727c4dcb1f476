"""Hausdog document ingestion, extraction and resolution pipeline."""

__version__ = "0.4.0"
