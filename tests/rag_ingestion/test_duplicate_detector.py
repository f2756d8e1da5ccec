"""Unit tests for duplicate detection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.rag_ingestion.duplicate_detector import DuplicateDetector
from src.rag_ingestion.schemas import ContentSource


@pytest.mark.unit
class TestDuplicateDetector:
    @pytest.fixture
    def storage_service(self) -> MagicMock:
        storage = MagicMock()
        storage.find_source_by_hash = AsyncMock(return_value=None)
        storage.find_source_by_url = AsyncMock(return_value=None)
        storage.count_active_chunks = AsyncMock(return_value=0)
        return storage

    @pytest.fixture
    def detector(self, storage_service: MagicMock) -> DuplicateDetector:
        return DuplicateDetector(storage_service)

    @pytest.fixture
    def existing(self) -> ContentSource:
        return ContentSource(id="src-1", title="notes.txt", content_hash="abc123")

    @pytest.mark.asyncio
    async def test_no_match_is_not_duplicate(
        self, detector: DuplicateDetector, storage_service: MagicMock
    ) -> None:
        check = await detector.check_content_hash("abc123")

        assert check.is_duplicate is False
        assert check.existing_source is None
        storage_service.count_active_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_match_with_active_chunks_is_duplicate(
        self,
        detector: DuplicateDetector,
        storage_service: MagicMock,
        existing: ContentSource,
    ) -> None:
        storage_service.find_source_by_hash.return_value = existing
        storage_service.count_active_chunks.return_value = 4

        check = await detector.check_content_hash("abc123")

        assert check.is_duplicate is True
        assert check.active_chunk_count == 4
        assert check.existing_source == existing
        storage_service.count_active_chunks.assert_awaited_once_with("src-1")

    @pytest.mark.asyncio
    async def test_match_without_active_chunks_is_reusable(
        self,
        detector: DuplicateDetector,
        storage_service: MagicMock,
        existing: ContentSource,
    ) -> None:
        """A source whose chunks were all deactivated may be ingested again."""
        storage_service.find_source_by_url.return_value = existing

        check = await detector.check_source_url("https://youtube.com/watch?v=abcdefghijk")

        assert check.is_duplicate is False
        assert check.existing_source == existing
        assert check.active_chunk_count == 0

    @pytest.mark.asyncio
    async def test_lookup_error_propagates(
        self, detector: DuplicateDetector, storage_service: MagicMock
    ) -> None:
        storage_service.find_source_by_url.side_effect = Exception("Database error")

        with pytest.raises(Exception, match="Database error"):
            await detector.check_source_url("https://youtube.com/watch?v=abcdefghijk")
