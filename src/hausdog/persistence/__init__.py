"""Hausdog persistence: SQLAlchemy engine, schema, repositories and migrations."""
