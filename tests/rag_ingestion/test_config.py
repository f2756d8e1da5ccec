"""Unit tests for ingestion pipeline configuration."""

import pytest
from pydantic import ValidationError

from src.rag_ingestion.config import IngestionConfig, get_config

ENV_VARS = (
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL_CHOICE",
    "EMBEDDING_CONCURRENCY",
    "RAG_CHUNK_SIZE",
    "RAG_CHUNK_OVERLAP",
    "RAG_MAX_CHUNKS",
    "YOUTUBE_PLAYLIST_LIMIT",
)


@pytest.mark.unit
class TestIngestionConfig:
    """Test suite for IngestionConfig class."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def test_config_with_defaults(self) -> None:
        """Test config creation with default values."""
        config = IngestionConfig()

        assert config.chunk_size == 1000
        assert config.chunk_overlap == 200
        assert config.max_chunks == 0
        assert config.embedding_concurrency == 10
        assert config.playlist_limit == 100
        assert config.embedding_provider == "openai"
        assert config.embedding_model == "text-embedding-3-small"

    def test_config_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RAG_CHUNK_SIZE", "500")
        monkeypatch.setenv("RAG_CHUNK_OVERLAP", "50")
        monkeypatch.setenv("EMBEDDING_PROVIDER", "ollama")
        monkeypatch.setenv("EMBEDDING_MODEL_CHOICE", "nomic-embed-text")

        config = get_config()

        assert config.chunk_size == 500
        assert config.chunk_overlap == 50
        assert config.embedding_provider == "ollama"
        assert config.embedding_model == "nomic-embed-text"

    def test_config_with_explicit_values(self) -> None:
        """Test config creation with explicit parameter values."""
        config = IngestionConfig(
            supabase_url="https://test.supabase.co",
            supabase_key="test_key",
            supadata_api_key="test_api_key",
            chunk_size=2000,
            chunk_overlap=0,
            embedding_concurrency=2,
        )

        assert config.supabase_url == "https://test.supabase.co"
        assert config.supadata_api_key == "test_api_key"
        assert config.chunk_size == 2000
        assert config.chunk_overlap == 0
        assert config.embedding_concurrency == 2

    @pytest.mark.parametrize(
        "overrides",
        [
            {"chunk_size": 0},
            {"chunk_size": 200, "chunk_overlap": 200},
            {"chunk_overlap": -1},
            {"embedding_concurrency": 0},
        ],
    )
    def test_invalid_window_rejected(self, overrides: dict[str, int]) -> None:
        with pytest.raises(ValidationError):
            IngestionConfig(**overrides)
