"""Configuration module for the RAG ingestion pipeline."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class IngestionConfig(BaseModel):
    """Configuration for the RAG ingestion pipeline.

    Covers the datastore, the embedding provider, the transcript provider and
    the chunking window. All settings can be overridden via environment
    variables.
    """

    # Database settings
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    # Supadata API settings
    supadata_api_key: str = Field(
        default_factory=lambda: os.getenv("SUPADATA_API_KEY", "")
    )
    playlist_limit: int = Field(
        default_factory=lambda: int(os.getenv("YOUTUBE_PLAYLIST_LIMIT", "100"))
    )

    # Embedding settings
    embedding_provider: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai")
    )
    embedding_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", "https://api.openai.com/v1"
        )
    )
    embedding_api_key: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY", "")
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL_CHOICE", "text-embedding-3-small"
        )
    )
    embedding_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_CONCURRENCY", "10"))
    )

    # Chunking settings (character-based window)
    chunk_size: int = Field(
        default_factory=lambda: int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    )
    chunk_overlap: int = Field(
        default_factory=lambda: int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    )
    max_chunks: int = Field(
        default_factory=lambda: int(os.getenv("RAG_MAX_CHUNKS", "0"))
    )  # 0 means unlimited

    @model_validator(mode="after")
    def validate_chunk_window(self) -> "IngestionConfig":
        """Reject chunk windows that would never advance."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be between 0 and chunk_size - 1")
        if self.embedding_concurrency <= 0:
            raise ValueError("embedding_concurrency must be positive")
        return self


def get_config() -> IngestionConfig:
    """Get validated configuration instance.

    Returns:
        IngestionConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables hold invalid values.
    """
    return IngestionConfig()
