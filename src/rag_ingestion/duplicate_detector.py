"""Duplicate detection for files (by content hash) and videos (by URL)."""

from src.utils.logging import get_logger

from .schemas import ContentSource, DuplicateCheck
from .storage_service import StorageService

logger = get_logger(__name__)


class DuplicateDetector:
    """Decides whether content has already been ingested.

    A matching source only counts as a duplicate while it still has at least
    one active chunk. A source whose chunks were all soft- or hard-deleted is
    returned as ``existing_source`` with ``is_duplicate=False`` so the caller
    can reuse it for a fresh ingestion.

    Lookup errors are not swallowed; they propagate to the caller.
    """

    def __init__(self, storage_service: StorageService):
        self.storage_service = storage_service

    async def check_content_hash(self, content_hash: str) -> DuplicateCheck:
        """Check an uploaded file's fingerprint.

        Args:
            content_hash: SHA-256 hex digest of the raw file bytes.

        Returns:
            DuplicateCheck with the matching source and its active chunk count.
        """
        source = await self.storage_service.find_source_by_hash(content_hash)
        return await self._check(source, key_type="content_hash")

    async def check_source_url(self, source_url: str) -> DuplicateCheck:
        """Check a normalized video (or web) URL.

        Args:
            source_url: Normalized canonical URL.

        Returns:
            DuplicateCheck with the matching source and its active chunk count.
        """
        source = await self.storage_service.find_source_by_url(source_url)
        return await self._check(source, key_type="source_url")

    async def _check(
        self, source: ContentSource | None, key_type: str
    ) -> DuplicateCheck:
        if source is None:
            logger.debug("duplicate_check_no_match", key_type=key_type)
            return DuplicateCheck(is_duplicate=False)

        active_chunks = await self.storage_service.count_active_chunks(source.id)
        is_duplicate = active_chunks > 0

        logger.info(
            "duplicate_check_completed",
            key_type=key_type,
            source_id=source.id,
            active_chunks=active_chunks,
            is_duplicate=is_duplicate,
        )
        return DuplicateCheck(
            is_duplicate=is_duplicate,
            existing_source=source,
            active_chunk_count=active_chunks,
        )
