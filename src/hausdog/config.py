"""Environment-driven configuration for Hausdog.

All settings are read from environment variables into a frozen AppConfig.
Backends that need a setting validate it when they are constructed, so an
unconfigured optional backend never prevents startup.

Environment Variables:
    HAUSDOG_DATABASE_URL: SQLAlchemy URL (unset: in-memory repository)
    HAUSDOG_OBJECT_STORE_BACKEND: "filesystem" (default) or "supabase"
    HAUSDOG_OBJECT_STORE_BASE_DIR: Filesystem backend root directory
    HAUSDOG_STORAGE_BUCKET: Bucket name (default: "documents")
    HAUSDOG_SIGNED_URL_TTL_SECONDS: Signed URL lifetime (default: 3600)
    HAUSDOG_EXTRACT_BACKEND: "deterministic" (default) or "gemini"
    HAUSDOG_RESOLVE_BACKEND: "deterministic" (default) or "anthropic"
    HAUSDOG_SCHEDULER: "inline" (default) or "temporal"
    HAUSDOG_MAX_ATTEMPTS: Pipeline retry budget (default: 3)
    HAUSDOG_INGEST_DOMAIN: Domain for inbound ingest addresses
    SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY: Supabase storage credentials
    GEMINI_API_KEY / HAUSDOG_GEMINI_MODEL: Extraction model settings
    ANTHROPIC_API_KEY / HAUSDOG_ANTHROPIC_MODEL: Resolution model settings
    TEMPORAL_HOST / TEMPORAL_NAMESPACE / HAUSDOG_TASK_QUEUE: Remote task queue
    RESEND_API_KEY / RESEND_WEBHOOK_SECRET: Inbound email provider
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from hausdog.errors import ConfigError

HAUSDOG_DATABASE_URL_ENV = "HAUSDOG_DATABASE_URL"
HAUSDOG_OBJECT_STORE_BACKEND_ENV = "HAUSDOG_OBJECT_STORE_BACKEND"
HAUSDOG_OBJECT_STORE_BASE_DIR_ENV = "HAUSDOG_OBJECT_STORE_BASE_DIR"
HAUSDOG_STORAGE_BUCKET_ENV = "HAUSDOG_STORAGE_BUCKET"
HAUSDOG_SIGNED_URL_TTL_ENV = "HAUSDOG_SIGNED_URL_TTL_SECONDS"
HAUSDOG_EXTRACT_BACKEND_ENV = "HAUSDOG_EXTRACT_BACKEND"
HAUSDOG_RESOLVE_BACKEND_ENV = "HAUSDOG_RESOLVE_BACKEND"
HAUSDOG_SCHEDULER_ENV = "HAUSDOG_SCHEDULER"
HAUSDOG_MAX_ATTEMPTS_ENV = "HAUSDOG_MAX_ATTEMPTS"
HAUSDOG_INGEST_DOMAIN_ENV = "HAUSDOG_INGEST_DOMAIN"
HAUSDOG_GEMINI_MODEL_ENV = "HAUSDOG_GEMINI_MODEL"
HAUSDOG_ANTHROPIC_MODEL_ENV = "HAUSDOG_ANTHROPIC_MODEL"
HAUSDOG_TASK_QUEUE_ENV = "HAUSDOG_TASK_QUEUE"
SUPABASE_URL_ENV = "SUPABASE_URL"
SUPABASE_SERVICE_ROLE_KEY_ENV = "SUPABASE_SERVICE_ROLE_KEY"
GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
ANTHROPIC_API_KEY_ENV = "ANTHROPIC_API_KEY"
TEMPORAL_HOST_ENV = "TEMPORAL_HOST"
TEMPORAL_NAMESPACE_ENV = "TEMPORAL_NAMESPACE"
RESEND_API_KEY_ENV = "RESEND_API_KEY"
RESEND_WEBHOOK_SECRET_ENV = "RESEND_WEBHOOK_SECRET"

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TASK_QUEUE = "hausdog-documents"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_SIGNED_URL_TTL_SECONDS = 3600

_OBJECT_STORE_BACKENDS = frozenset({"filesystem", "supabase"})
_EXTRACT_BACKENDS = frozenset({"deterministic", "gemini"})
_RESOLVE_BACKENDS = frozenset({"deterministic", "anthropic"})
_SCHEDULERS = frozenset({"inline", "temporal"})


def _get_env_str(key: str, default: str = "") -> str:
    """Get stripped string from environment variable."""
    return os.environ.get(key, default).strip()


def _get_env_int(key: str, default: int) -> int:
    """Get positive integer from environment variable."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigError(f"{key} must be >= 1, got {value}")
    return value


def _get_env_choice(key: str, default: str, choices: frozenset[str]) -> str:
    """Get an enumerated value from environment variable."""
    value = _get_env_str(key, default).lower() or default
    if value not in choices:
        raise ConfigError(f"{key} must be one of {sorted(choices)}, got {value!r}")
    return value


@dataclass(frozen=True)
class AppConfig:
    """Resolved process configuration.

    Secrets are kept as plain strings and must never be logged.
    """

    database_url: str | None = None
    object_store_backend: str = "filesystem"
    object_store_base_dir: Path | None = None
    storage_bucket: str = "documents"
    signed_url_ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS
    supabase_url: str | None = None
    supabase_key: str | None = None
    extract_backend: str = "deterministic"
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    resolve_backend: str = "deterministic"
    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    scheduler: str = "inline"
    temporal_host: str = "localhost:7233"
    temporal_namespace: str = "default"
    task_queue: str = DEFAULT_TASK_QUEUE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    resend_api_key: str | None = None
    resend_webhook_secret: str | None = None
    ingest_domain: str = "ingest.hausdog.app"

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build configuration from the current environment.

        Raises:
            ConfigError: If a value is present but malformed.
        """
        base_dir_raw = _get_env_str(HAUSDOG_OBJECT_STORE_BASE_DIR_ENV)
        return cls(
            database_url=_get_env_str(HAUSDOG_DATABASE_URL_ENV) or None,
            object_store_backend=_get_env_choice(
                HAUSDOG_OBJECT_STORE_BACKEND_ENV, "filesystem", _OBJECT_STORE_BACKENDS
            ),
            object_store_base_dir=Path(base_dir_raw) if base_dir_raw else None,
            storage_bucket=_get_env_str(HAUSDOG_STORAGE_BUCKET_ENV, "documents") or "documents",
            signed_url_ttl_seconds=_get_env_int(
                HAUSDOG_SIGNED_URL_TTL_ENV, DEFAULT_SIGNED_URL_TTL_SECONDS
            ),
            supabase_url=_get_env_str(SUPABASE_URL_ENV) or None,
            supabase_key=_get_env_str(SUPABASE_SERVICE_ROLE_KEY_ENV) or None,
            extract_backend=_get_env_choice(
                HAUSDOG_EXTRACT_BACKEND_ENV, "deterministic", _EXTRACT_BACKENDS
            ),
            gemini_api_key=_get_env_str(GEMINI_API_KEY_ENV) or None,
            gemini_model=_get_env_str(HAUSDOG_GEMINI_MODEL_ENV) or DEFAULT_GEMINI_MODEL,
            resolve_backend=_get_env_choice(
                HAUSDOG_RESOLVE_BACKEND_ENV, "deterministic", _RESOLVE_BACKENDS
            ),
            anthropic_api_key=_get_env_str(ANTHROPIC_API_KEY_ENV) or None,
            anthropic_model=_get_env_str(HAUSDOG_ANTHROPIC_MODEL_ENV) or DEFAULT_ANTHROPIC_MODEL,
            scheduler=_get_env_choice(HAUSDOG_SCHEDULER_ENV, "inline", _SCHEDULERS),
            temporal_host=_get_env_str(TEMPORAL_HOST_ENV) or "localhost:7233",
            temporal_namespace=_get_env_str(TEMPORAL_NAMESPACE_ENV) or "default",
            task_queue=_get_env_str(HAUSDOG_TASK_QUEUE_ENV) or DEFAULT_TASK_QUEUE,
            max_attempts=_get_env_int(HAUSDOG_MAX_ATTEMPTS_ENV, DEFAULT_MAX_ATTEMPTS),
            resend_api_key=_get_env_str(RESEND_API_KEY_ENV) or None,
            resend_webhook_secret=_get_env_str(RESEND_WEBHOOK_SECRET_ENV) or None,
            ingest_domain=_get_env_str(HAUSDOG_INGEST_DOMAIN_ENV) or "ingest.hausdog.app",
        )

    def resolved_base_dir(self) -> Path:
        """Return the filesystem object store root."""
        if self.object_store_base_dir is not None:
            return self.object_store_base_dir
        return Path(tempfile.gettempdir()) / "hausdog_objects"

    def require(self, value: str | None, env_var: str, purpose: str) -> str:
        """Return a required setting or fail closed.

        Args:
            value: The resolved setting.
            env_var: Environment variable that supplies it.
            purpose: Backend that needs it, used in the error message.

        Raises:
            ConfigError: If the setting is missing.
        """
        if not value:
            raise ConfigError(f"{env_var} environment variable is required for {purpose}")
        return value
