"""Hausdog artifact storage.

Provides the ObjectStore interface and its filesystem and Supabase backends.
"""

from hausdog.storage.errors import (
    ObjectExistsError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from hausdog.storage.filesystem_store import FilesystemObjectStore
from hausdog.storage.models import StoredObject, StoredObjectMetadata
from hausdog.storage.object_store import ObjectStore
from hausdog.storage.supabase_store import SupabaseObjectStore

__all__ = [
    "FilesystemObjectStore",
    "ObjectExistsError",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "PathTraversalError",
    "StorageBackendError",
    "StoredObject",
    "StoredObjectMetadata",
    "SupabaseObjectStore",
]
