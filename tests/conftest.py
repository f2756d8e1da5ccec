"""Shared fixtures for the ingestion tests."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.rag_ingestion.chunking_service import ChunkingService
from src.rag_ingestion.config import IngestionConfig
from src.rag_ingestion.embedding_service import EmbeddingService
from src.rag_ingestion.pipeline import IngestionPipeline
from tests.fakes import FakeEmbeddings, FakeStorage, FakeTokenizer


@pytest.fixture
def config() -> IngestionConfig:
    """Create test configuration."""
    return IngestionConfig(
        supabase_url="https://test.supabase.co",
        supabase_key="test_key",
        supadata_api_key="test_supadata",
        embedding_provider="openai",
        embedding_base_url="https://api.openai.com/v1",
        embedding_api_key="test_embedding",
        embedding_model="text-embedding-3-small",
        embedding_concurrency=4,
        chunk_size=1000,
        chunk_overlap=200,
        max_chunks=0,
        playlist_limit=100,
    )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def youtube_service() -> MagicMock:
    """Transcript provider double; tests configure the AsyncMocks per case."""
    service = MagicMock()
    service.get_playlist_videos = AsyncMock(return_value=[])
    service.get_video_metadata = AsyncMock()
    service.get_transcript = AsyncMock(return_value="")
    return service


@pytest.fixture
def pipeline(
    config: IngestionConfig,
    storage: FakeStorage,
    embeddings: FakeEmbeddings,
    youtube_service: MagicMock,
) -> IngestionPipeline:
    return IngestionPipeline(
        config,
        storage_service=storage,
        embedding_service=EmbeddingService(
            config, client=SimpleNamespace(embeddings=embeddings)
        ),
        youtube_service=youtube_service,
        chunking_service=ChunkingService(config, tokenizer=FakeTokenizer()),
    )
