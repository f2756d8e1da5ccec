"""Unit tests for embedding service."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.rag_ingestion.config import IngestionConfig
from src.rag_ingestion.embedding_service import EmbeddingService


def embedding_response(vector: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=vector)]
    return response


@pytest.mark.unit
class TestEmbeddingService:
    """Test suite for EmbeddingService class."""

    @pytest.fixture
    def config_ollama(self, config: IngestionConfig) -> IngestionConfig:
        """Create test configuration for Ollama provider."""
        return config.model_copy(
            update={
                "embedding_provider": "ollama",
                "embedding_base_url": "http://localhost:11434/v1",
                "embedding_model": "nomic-embed-text",
            }
        )

    @pytest.fixture
    def mock_client(self) -> MagicMock:
        client = MagicMock()
        client.embeddings.create = AsyncMock()
        return client

    def test_service_initialization_openai(self, config: IngestionConfig) -> None:
        """Test service initialization with OpenAI provider."""
        with patch("src.rag_ingestion.embedding_service.AsyncOpenAI") as mock_openai:
            service = EmbeddingService(config)

            assert service.config == config
            mock_openai.assert_called_once_with(
                base_url="https://api.openai.com/v1",
                api_key="test_embedding",
            )

    def test_service_initialization_ollama(self, config_ollama: IngestionConfig) -> None:
        """Test service initialization with Ollama provider."""
        with patch("src.rag_ingestion.embedding_service.AsyncOpenAI") as mock_openai:
            EmbeddingService(config_ollama)

            # Ollama should use "ollama" as API key
            mock_openai.assert_called_once_with(
                base_url="http://localhost:11434/v1",
                api_key="ollama",
            )

    @pytest.mark.asyncio
    async def test_embed_text_success(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        mock_client.embeddings.create.return_value = embedding_response([0.1, 0.2, 0.3])
        service = EmbeddingService(config, client=mock_client)

        embedding = await service.embed_text("Eat more red meat")

        assert embedding == [0.1, 0.2, 0.3]
        mock_client.embeddings.create.assert_awaited_once_with(
            input="Eat more red meat",
            model="text-embedding-3-small",
        )

    @pytest.mark.asyncio
    async def test_embed_text_error_propagates(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        mock_client.embeddings.create.side_effect = Exception("API error")
        service = EmbeddingService(config, client=mock_client)

        with pytest.raises(Exception, match="API error"):
            await service.embed_text("Test text")

    @pytest.mark.asyncio
    async def test_embed_chunks_isolates_failures(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        """One failing chunk is recorded without sinking the others."""

        async def create(input: str, model: str) -> MagicMock:
            if input == "chunk 2":
                raise RuntimeError("rate limited")
            return embedding_response([float(input[-1])])

        mock_client.embeddings.create.side_effect = create
        service = EmbeddingService(config, client=mock_client)

        batch = await service.embed_chunks(["chunk 0", "chunk 1", "chunk 2", "chunk 3"])

        assert [o.index for o in batch.outcomes] == [0, 1, 2, 3]
        assert [o.embedding for o in batch.succeeded] == [[0.0], [1.0], [3.0]]
        assert len(batch.errors) == 1
        assert batch.errors[0].chunk_index == 2
        assert batch.errors[0].error == "rate limited"

    @pytest.mark.asyncio
    async def test_embed_chunks_keeps_order_when_completion_is_reversed(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        """Later chunks finish first; outcomes still come back in chunk order."""

        async def create(input: str, model: str) -> MagicMock:
            index = int(input[-1])
            await asyncio.sleep(0.01 * (5 - index))
            return embedding_response([float(index)])

        mock_client.embeddings.create.side_effect = create
        service = EmbeddingService(config, client=mock_client)

        batch = await service.embed_chunks([f"chunk {i}" for i in range(5)])

        assert [o.embedding for o in batch.outcomes] == [[float(i)] for i in range(5)]

    @pytest.mark.asyncio
    async def test_embed_chunks_respects_concurrency_limit(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        in_flight = 0
        peak = 0

        async def create(input: str, model: str) -> MagicMock:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return embedding_response([0.0])

        mock_client.embeddings.create.side_effect = create
        service = EmbeddingService(
            config.model_copy(update={"embedding_concurrency": 2}), client=mock_client
        )

        await service.embed_chunks([f"chunk {i}" for i in range(6)])

        assert peak == 2

    @pytest.mark.asyncio
    async def test_embed_chunks_empty(
        self, config: IngestionConfig, mock_client: MagicMock
    ) -> None:
        service = EmbeddingService(config, client=mock_client)

        batch = await service.embed_chunks([])

        assert batch.outcomes == []
        mock_client.embeddings.create.assert_not_awaited()
