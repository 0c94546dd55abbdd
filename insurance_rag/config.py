"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- The data store (PostgreSQL + pgvector) and its connection/timeout knobs
- The fixed embedding dimensionality and document defaults
- Bulk ingestion and retrieval limits
- Optional search result caching (Redis)
- Logging verbosity
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Data store
    DATABASE_URL: str = "postgresql+psycopg2://rag_user:rag_pass@db:5432/rag_db"
    DB_POOL_SIZE: int = 5
    DB_TIMEOUT_MS: int = Field(default=10000, description="Per-statement timeout (PostgreSQL)")

    # Vectors / documents
    EMBEDDING_DIM: int = 768
    DEFAULT_LANGUAGE: str = "de"
    IVFFLAT_LISTS: int = 100
    IVFFLAT_PROBES: int = Field(
        default=100,
        description="Lists scanned per vector query; equal to IVFFLAT_LISTS gives exact, filter-safe results",
    )

    # Ingestion
    BULK_BATCH_SIZE: int = 100

    # Retrieval
    SEARCH_MAX_RESULTS: int = 50

    # Cache (optional)
    CACHE_ENABLED: bool = False
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_TTL_SECONDS: int = 300

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
