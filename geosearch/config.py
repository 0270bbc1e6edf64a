"""
GeoSearch Configuration

Uses pydantic-settings to load configuration from environment variables and .env file.
All settings are validated when first accessed.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Search core settings loaded from environment variables.

    All settings can be overridden via environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Dataset
    # =========================================================================
    PARQUET_URL: str = "https://pul-tile-images.s3.us-east-1.amazonaws.com/cloud.parquet"
    TABLE_NAME: str = "parquet_data"

    # =========================================================================
    # Paging / Facets
    # =========================================================================
    PAGE_SIZE: int = 10
    MAX_FACET_VALUES: int = 20

    # =========================================================================
    # Embedding model (streamed via HTTP range requests)
    # =========================================================================
    TOKENIZER_URL: str = "https://pul-tile-images.s3.us-east-1.amazonaws.com/tokenizer.json"
    EMBEDDINGS_URL: str = "https://pul-tile-images.s3.us-east-1.amazonaws.com/embeddings.bin"
    EMBEDDING_DIMENSIONS: int = 128
    EMBEDDING_DTYPE: Literal["F32", "F16"] = "F32"
    HTTP_TIMEOUT_SECONDS: Optional[float] = None  # None = no client-side timeout

    # =========================================================================
    # Semantic search
    # =========================================================================
    SEARCH_SIMILARITY_THRESHOLD: float = 0.5

    # =========================================================================
    # DuckDB executor
    # =========================================================================
    DUCKDB_EXTENSIONS: str = "httpfs,spatial"  # Comma-separated, installed + loaded in order
    DUCKDB_HTTP_RETRIES: int = 3
    DUCKDB_THREADS: Optional[int] = None

    # =========================================================================
    # Application
    # =========================================================================
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Export singleton instance for convenience
settings = get_settings()
