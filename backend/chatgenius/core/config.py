"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "ChatGenius"
    APP_ENV: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = True

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @field_validator("ALLOWED_ORIGINS")
    @classmethod
    def parse_origins(cls, v: str) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in v.split(",")]

    # ================================
    # Database Configuration
    # ================================
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # ================================
    # Change-Event Webhooks
    # ================================
    # Shared secret sent by the database webhook in the x-webhook-secret header
    WEBHOOK_SECRET: Optional[str] = None
    # Bounded readiness check after each processed event
    INDEX_SETTLE_MAX_ATTEMPTS: int = 5
    INDEX_SETTLE_INTERVAL_SECONDS: float = 0.2

    # ================================
    # Blob Storage (Supabase Storage)
    # ================================
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    STORAGE_BUCKET: str = "avatars"
    STORAGE_REQUEST_TIMEOUT: int = 30

    # ================================
    # AI Service Configuration
    # ================================
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-20241022"
    ANTHROPIC_MAX_TOKENS: int = 1024
    ANTHROPIC_TEMPERATURE: float = 0.7

    # ================================
    # Embedding Configuration
    # ================================
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_DIMENSION: int = 384
    # Provider-facing sub-batch size and pause between sub-batches
    EMBEDDING_BATCH_SIZE: int = 20
    EMBEDDING_BATCH_DELAY_SECONDS: float = 0.5
    EMBEDDING_DEVICE: Literal["cpu", "cuda", "mps"] = "cpu"

    # ================================
    # Vector Index Configuration
    # ================================
    VECTOR_UPSERT_BATCH_SIZE: int = 100
    VECTOR_UPSERT_DELAY_SECONDS: float = 0.5
    # HNSW candidate list size per search (pgvector caps it at 1000)
    VECTOR_HNSW_EF_SEARCH: int = 100
    # pgvector >= 0.8: keep scanning the graph until filtered queries fill top_k
    VECTOR_HNSW_ITERATIVE_SCAN: Literal["off", "strict_order", "relaxed_order"] = "strict_order"

    # ================================
    # Document Processing Configuration
    # ================================
    DOCUMENT_CHUNK_THRESHOLD: int = 10_000  # characters
    DOCUMENT_CHUNK_SIZE: int = 1000
    DOCUMENT_CHUNK_OVERLAP: int = 100

    # ================================
    # RAG Configuration
    # ================================
    RAG_CHAT_TOP_K: int = 5
    RAG_MIN_RELEVANCE_SCORE: float = 0.3
    RAG_MAX_SOURCES: int = 3
    RAG_PERSONA_TOP_K: int = 3
    RAG_PERSONA_MIN_SCORE: float = 0.1
    RAG_PERSONA_MAX_RETRIES: int = 2
    RAG_PERSONA_RETRY_DELAY_SECONDS: float = 1.0
    RAG_EXCERPT_MAX_CHARS: int = 1000

    # ================================
    # Backfill Configuration
    # ================================
    BACKFILL_BATCH_SIZE: int = 100
    BACKFILL_BATCH_DELAY_SECONDS: float = 1.0

    # ================================
    # Celery Configuration
    # ================================
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    # Celery accept content as comma-separated string, we'll parse it
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TIMEZONE: str = "UTC"
    CELERY_ENABLE_UTC: bool = True

    @property
    def celery_accept_content_list(self) -> List[str]:
        """Parse CELERY_ACCEPT_CONTENT into a list."""
        return [item.strip() for item in self.CELERY_ACCEPT_CONTENT.split(",")]

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"

    @property
    def storage_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)


# Global settings instance
settings = Settings()
