"""Shared test data for Hausdog tests."""
