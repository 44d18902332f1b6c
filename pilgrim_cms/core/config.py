"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ContentBackend(str, Enum):
    """Where objects and records physically live."""
    LOCAL = "local"
    FIREBASE = "firebase"


class RecordBackend(str, Enum):
    """How content records are persisted, chosen once for every area."""
    DOCUMENT = "document"
    BLOB = "blob"


class AllocatorStrategy(str, Enum):
    """Folder id allocation strategy."""
    LISTING = "listing"
    COUNTER = "counter"


class CommitPolicy(str, Enum):
    """Reconciliation policy for uploads that never reach a record."""
    NONE = "none"
    PENDING_STUB = "pending_stub"


# Values copied from the console template are treated as "not configured".
PLACEHOLDER_MARKER = "YOUR_"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Read once at process start from the environment or ``.env``.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration (local document store)
    database_url: str = Field(
        default="sqlite:///./pilgrim_cms.db",
        description="Database connection URL for the local document store"
    )

    # Backend selection
    content_backend: ContentBackend = Field(
        default=ContentBackend.LOCAL,
        description="Object/document store backend (local/firebase)"
    )
    record_backend: RecordBackend = Field(
        default=RecordBackend.DOCUMENT,
        description="Record persistence (document store or JSON blob next to the files)"
    )
    allocator_strategy: AllocatorStrategy = Field(
        default=AllocatorStrategy.LISTING,
        description="'listing' keeps max(subfolder)+1; 'counter' uses an atomic counter document"
    )
    commit_policy: CommitPolicy = Field(
        default=CommitPolicy.NONE,
        description="'pending_stub' writes a pending record before uploads start"
    )

    # Upload orchestration
    upload_max_workers: int = Field(
        default=4,
        description="Concurrent uploads per commit"
    )
    write_back_reference: bool = Field(
        default=False,
        description="Write content_metadata.json next to uploaded files"
    )
    pending_max_age_minutes: int = Field(
        default=60,
        description="Age after which a pending stub is considered abandoned"
    )

    # Local object store
    object_store_root: str = Field(
        default="./storage",
        description="Root directory for the local object store"
    )
    public_base_url: str = Field(
        default="http://localhost:8000/files",
        description="Base URL under which local objects are served"
    )

    # Firebase web configuration (same keys as the operator UI)
    firebase_api_key: str = Field(default="")
    firebase_auth_domain: str = Field(default="")
    firebase_project_id: str = Field(default="")
    firebase_storage_bucket: str = Field(default="")
    firebase_messaging_sender_id: str = Field(default="")
    firebase_app_id: str = Field(default="")
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for calls to Firebase endpoints"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('upload_max_workers')
    @classmethod
    def validate_upload_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("UPLOAD_MAX_WORKERS must be at least 1")
        return v

    def firebase_config(self) -> dict:
        """Firebase web config keyed like the client SDK expects."""
        return {
            "apiKey": self.firebase_api_key,
            "authDomain": self.firebase_auth_domain,
            "projectId": self.firebase_project_id,
            "storageBucket": self.firebase_storage_bucket,
            "messagingSenderId": self.firebase_messaging_sender_id,
            "appId": self.firebase_app_id,
        }

    def missing_firebase_keys(self) -> List[str]:
        """Names of Firebase settings that are empty or still placeholders."""
        return [
            key for key, value in self.firebase_config().items()
            if not value or PLACEHOLDER_MARKER in value
        ]

    def has_valid_firebase_config(self) -> bool:
        return not self.missing_firebase_keys()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
