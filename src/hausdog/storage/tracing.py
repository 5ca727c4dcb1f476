"""OpenTelemetry tracing for object storage operations.

Span attributes never carry raw keys (they embed owner ids and filenames);
the SHA256 of the key is used for correlation instead.
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from hausdog.observability.tracing import is_otel_enabled
from hausdog.storage.models import StoredObject, StoredObjectMetadata

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator emitting a span per storage call when tracing is enabled.

    Args:
        operation: Operation name ("put", "get", "delete", "signed_url").
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, key: str, *args: Any, **kwargs: Any) -> Any:
            if not is_otel_enabled():
                return func(self, key, *args, **kwargs)

            tracer = trace.get_tracer("hausdog.object_store")
            with tracer.start_as_current_span(f"hausdog.object_store.{operation}") as span:
                span.set_attribute(
                    "hausdog.object_key_sha256", hashlib.sha256(key.encode("utf-8")).hexdigest()
                )
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                try:
                    result = func(self, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add size and digest attributes from a storage result."""
    metadata: StoredObjectMetadata | None = None
    if isinstance(result, StoredObjectMetadata):
        metadata = result
    elif isinstance(result, StoredObject):
        metadata = result.metadata

    if metadata is not None:
        span.set_attribute("hausdog.object_sha256", metadata.sha256)
        span.set_attribute("hausdog.object_size_bytes", metadata.size_bytes)
        if metadata.content_type:
            span.set_attribute("hausdog.object_content_type", metadata.content_type)
