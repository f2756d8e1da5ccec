"""Embedding service for generating text embeddings via OpenAI-compatible APIs."""

import asyncio

from openai import AsyncOpenAI
from pydantic import BaseModel

from src.utils.logging import get_logger

from .config import IngestionConfig
from .schemas import ChunkError

logger = get_logger(__name__)


class EmbeddingOutcome(BaseModel):
    """Result of embedding one chunk: a vector or the error that replaced it."""

    index: int
    embedding: list[float] | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.embedding is not None


class EmbeddingBatch(BaseModel):
    """Embeddings for a chunk batch, reassembled in original chunk order."""

    outcomes: list[EmbeddingOutcome]

    @property
    def succeeded(self) -> list[EmbeddingOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def errors(self) -> list[ChunkError]:
        return [
            ChunkError(chunk_index=o.index, error=o.error or "Unknown error")
            for o in self.outcomes
            if not o.succeeded
        ]


class EmbeddingService:
    """Service for generating text embeddings.

    This service supports multiple embedding providers (OpenAI, Ollama, OpenRouter)
    through OpenAI-compatible APIs. Batch embedding fans out one call per text
    and isolates failures, so one bad chunk never sinks its siblings.
    """

    def __init__(self, config: IngestionConfig, client: AsyncOpenAI | None = None):
        """Initialize embedding service with configuration.

        Args:
            config: Configuration object with embedding provider settings.
            client: Preconfigured client. Built from ``config`` when omitted.
        """
        self.config = config
        self.client = client or self._get_client()
        self._semaphore = asyncio.Semaphore(config.embedding_concurrency)
        logger.info(
            "embedding_service_initialized",
            provider=config.embedding_provider,
            model=config.embedding_model,
            base_url=config.embedding_base_url,
        )

    def _get_client(self) -> AsyncOpenAI:
        """Initialize OpenAI-compatible client based on provider.

        Returns:
            Configured AsyncOpenAI client instance.
        """
        if self.config.embedding_provider == "ollama":
            # Ollama doesn't require a real API key
            return AsyncOpenAI(
                base_url=self.config.embedding_base_url,
                api_key="ollama",
            )
        else:
            return AsyncOpenAI(
                base_url=self.config.embedding_base_url,
                api_key=self.config.embedding_api_key,
            )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text content to embed.

        Returns:
            Embedding vector as a list of floats.

        Raises:
            Exception: If embedding generation fails.
        """
        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.config.embedding_model,
            )
            embedding = response.data[0].embedding
            logger.debug(
                "embedding_generated",
                text_length=len(text),
                embedding_dim=len(embedding),
            )
            return embedding

        except Exception as e:
            logger.warning(
                "embedding_failed",
                text_length=len(text),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

    async def _embed_isolated(self, index: int, text: str) -> EmbeddingOutcome:
        async with self._semaphore:
            try:
                embedding = await self.embed_text(text)
            except Exception as e:
                return EmbeddingOutcome(index=index, error=str(e) or type(e).__name__)
        return EmbeddingOutcome(index=index, embedding=embedding)

    async def embed_chunks(self, texts: list[str]) -> EmbeddingBatch:
        """Generate embeddings for many texts concurrently.

        All calls are issued at once (bounded by ``embedding_concurrency``).
        Each outcome is tagged with its input index and the batch is sorted by
        that index, so completion order never reorders chunks.

        Args:
            texts: Chunk texts in chunk order.

        Returns:
            EmbeddingBatch with one outcome per input text.
        """
        logger.info("batch_embedding_started", count=len(texts))

        outcomes = await asyncio.gather(
            *[self._embed_isolated(i, text) for i, text in enumerate(texts)]
        )
        batch = EmbeddingBatch(outcomes=sorted(outcomes, key=lambda o: o.index))

        logger.info(
            "batch_embedding_completed",
            total=len(texts),
            succeeded=len(batch.succeeded),
            failed=len(batch.errors),
        )
        return batch
