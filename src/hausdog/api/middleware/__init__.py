"""Hausdog API middleware package."""

from hausdog.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
