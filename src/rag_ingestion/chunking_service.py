"""Chunking service for sliding-window text segmentation."""

import re
from typing import Any

from transformers import AutoTokenizer

from src.utils.logging import get_logger

from .config import IngestionConfig
from .schemas import TextChunk

logger = get_logger(__name__)

HEADING_PATTERN = re.compile(r"^#+\s+(.+)$", re.MULTILINE)
FIRST_LINE_PATTERN = re.compile(r"^(.+)$", re.MULTILINE)
CODE_PATTERN = re.compile(r"```[\s\S]*?```|`[^`]+`")


def chunk_text(
    text: str, chunk_size: int = 1000, overlap: int = 200, max_chunks: int = 0
) -> list[str]:
    """Split text into overlapping fixed-size windows.

    A window starts at every multiple of ``chunk_size - overlap`` below
    ``len(text)``; windows running past the end are truncated. Every character
    of ``text`` lands in at least one chunk.

    Args:
        text: Text to split.
        chunk_size: Window size in characters.
        overlap: Characters shared between consecutive windows.
        max_chunks: Stop after this many chunks (0 means unlimited).

    Returns:
        Ordered list of chunk strings. Empty input yields an empty list.

    Raises:
        ValueError: If ``chunk_size`` is not positive or ``overlap`` is not
            in ``[0, chunk_size)``.

    Examples:
        >>> chunk_text("abcdefghij", chunk_size=4, overlap=1)
        ['abcd', 'defg', 'ghij', 'j']
    """
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("Overlap must be non-negative and less than chunk size")

    step = chunk_size - overlap
    chunks: list[str] = []

    for start in range(0, len(text), step):
        if max_chunks and len(chunks) >= max_chunks:
            break
        chunks.append(text[start : start + chunk_size])

    return chunks


def extract_metadata(text: str) -> dict[str, Any]:
    """Extract lightweight structure hints from document text.

    Args:
        text: Full document text.

    Returns:
        Dictionary with ``title`` (first heading or first line), ``word_count``,
        ``has_code`` and ``headers`` (only when the text has markdown headings).
    """
    metadata: dict[str, Any] = {}

    title_match = HEADING_PATTERN.search(text) or FIRST_LINE_PATTERN.search(text)
    if title_match:
        metadata["title"] = title_match.group(1).strip()

    metadata["word_count"] = len(text.split())
    metadata["has_code"] = bool(CODE_PATTERN.search(text))

    headers = HEADING_PATTERN.findall(text)
    if headers:
        metadata["headers"] = [header.strip() for header in headers]

    return metadata


class ChunkingService:
    """Service for chunking source text into embedding-sized windows.

    Chunks are cut on a fixed character window so that the chunk layout is
    identical for any source type. The tokenizer is only used to record how
    many tokens each chunk costs the embedding model.
    """

    def __init__(self, config: IngestionConfig, tokenizer: Any = None):
        """Initialize chunking service with configuration.

        Args:
            config: Configuration object with the chunk window and embedding model.
            tokenizer: Tokenizer with an ``encode`` method. Loaded for the
                configured embedding model when omitted.
        """
        self.config = config
        self.tokenizer = tokenizer or self._get_tokenizer(config.embedding_model)
        logger.info(
            "chunking_service_initialized",
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            model=config.embedding_model,
        )

    def _get_tokenizer(self, embedding_model: str) -> Any:
        """Get appropriate tokenizer for the embedding model.

        Maps embedding model names to compatible HuggingFace tokenizers.

        Args:
            embedding_model: Name of the embedding model.

        Returns:
            Configured AutoTokenizer instance (untyped due to transformers library).
        """
        tokenizer_map = {
            "text-embedding-3-small": "sentence-transformers/all-MiniLM-L6-v2",
            "text-embedding-3-large": "sentence-transformers/all-MiniLM-L6-v2",
            "nomic-embed-text": "bert-base-uncased",
            "all-MiniLM-L6-v2": "sentence-transformers/all-MiniLM-L6-v2",
        }

        tokenizer_name = tokenizer_map.get(
            embedding_model, "sentence-transformers/all-MiniLM-L6-v2"
        )
        logger.info("loading_tokenizer", tokenizer=tokenizer_name)
        return AutoTokenizer.from_pretrained(tokenizer_name)  # type: ignore

    def count_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))

    def chunk(self, text: str) -> list[TextChunk]:
        """Chunk text with the configured window.

        Args:
            text: Full source text.

        Returns:
            Chunks with their index, start offset and token count.
        """
        step = self.config.chunk_size - self.config.chunk_overlap
        pieces = chunk_text(
            text,
            chunk_size=self.config.chunk_size,
            overlap=self.config.chunk_overlap,
            max_chunks=self.config.max_chunks,
        )

        chunks = [
            TextChunk(
                index=i,
                text=piece,
                start=i * step,
                token_count=self.count_tokens(piece),
            )
            for i, piece in enumerate(pieces)
        ]

        logger.info(
            "chunking_completed",
            text_length=len(text),
            chunks_created=len(chunks),
        )
        return chunks
