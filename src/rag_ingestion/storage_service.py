"""Storage service for content sources, chunks and coach grants in Supabase."""

from collections import Counter
from datetime import datetime

from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.utils.logging import get_logger

from .config import IngestionConfig
from .exceptions import DuplicateSourceError, PersistenceError
from .schemas import (
    ChunkRecord,
    CoachAccessGrant,
    ContentSource,
    NewContentSource,
    SourceMetadata,
)

logger = get_logger(__name__)

SOURCES_TABLE = "document_sources"
CHUNKS_TABLE = "coach_documents"
ACCESS_TABLE = "coach_document_access"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class StorageService:
    """Service for storing content sources and embedded chunks in Supabase.

    Handles the three ingestion tables: ``document_sources`` (one row per
    ingested file or video), ``coach_documents`` (embedded chunks) and
    ``coach_document_access`` (chunk/coach grants).

    Reads propagate their errors so a failed lookup is never mistaken for
    "not found". Writes raise PersistenceError, and a source insert that hits
    the uniqueness constraint raises DuplicateSourceError.
    """

    def __init__(self, config: IngestionConfig, client: Client | None = None):
        """Initialize storage service with configuration.

        Args:
            config: Configuration object with Supabase credentials.
            client: Preconfigured Supabase client. Built from ``config`` when omitted.
        """
        self.config = config
        self.client: Client = client or create_client(
            config.supabase_url,
            config.supabase_key,
        )
        logger.info(
            "storage_service_initialized",
            supabase_url=config.supabase_url,
        )

    # ------------------------------------------------------------------
    # Content sources
    # ------------------------------------------------------------------

    async def find_source_by_hash(self, content_hash: str) -> ContentSource | None:
        """Look up a content source by its content hash."""
        return await self._find_source("file_hash", content_hash)

    async def find_source_by_url(self, source_url: str) -> ContentSource | None:
        """Look up a content source by its normalized source URL."""
        return await self._find_source("source_url", source_url)

    async def get_source(self, source_id: str) -> ContentSource | None:
        return await self._find_source("id", source_id)

    async def _find_source(self, column: str, value: str) -> ContentSource | None:
        try:
            response = (
                self.client.table(SOURCES_TABLE)
                .select("*")
                .eq(column, value)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "source_lookup_failed",
                column=column,
                error_type=type(e).__name__,
            )
            raise

        if not response.data:
            logger.debug("source_not_found", column=column)
            return None

        return ContentSource.from_row(response.data[0])

    async def insert_source(self, source: NewContentSource) -> ContentSource:
        """Insert a new content source.

        Args:
            source: Values of the new row.

        Returns:
            The persisted source with its generated id.

        Raises:
            DuplicateSourceError: If the hash or URL was claimed concurrently.
            PersistenceError: For any other datastore failure.
        """
        data = {
            "title": source.title,
            "source_type": source.source_type.value,
            "file_name": source.file_name,
            "file_hash": source.content_hash,
            "source_url": source.source_url,
            "content": source.content,
            "metadata": source.metadata.to_payload(),
        }

        try:
            response = self.client.table(SOURCES_TABLE).insert(data).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                dedup_key = source.source_url or source.content_hash
                logger.warning("source_insert_conflict", dedup_key=dedup_key)
                raise DuplicateSourceError(dedup_key) from e
            logger.exception("source_insert_failed", error_type=type(e).__name__)
            raise PersistenceError(e.message or str(e)) from e
        except Exception as e:
            logger.exception("source_insert_failed", error_type=type(e).__name__)
            raise PersistenceError(str(e)) from e

        if not response.data:
            raise PersistenceError("Source insert returned no row")

        created = ContentSource.from_row(response.data[0])
        logger.info("source_saved", source_id=created.id, title=created.title)
        return created

    async def reset_source(
        self, source_id: str, source: NewContentSource
    ) -> ContentSource:
        """Point an existing source row at a fresh ingestion attempt.

        Used when content matches a source that has no active chunks left; the
        row keeps its id so earlier (inactive) chunks remain attached to it.
        """
        data = {
            "title": source.title,
            "source_type": source.source_type.value,
            "file_name": source.file_name,
            "source_url": source.source_url,
            "file_hash": source.content_hash,
            "content": source.content,
            "metadata": source.metadata.to_payload(),
            "updated_at": datetime.now().isoformat(),
        }

        try:
            response = (
                self.client.table(SOURCES_TABLE)
                .update(data)
                .eq("id", source_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "source_reset_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e), source_id=source_id) from e

        if not response.data:
            raise PersistenceError(f"Source {source_id} not found", source_id=source_id)

        logger.info("source_reset", source_id=source_id)
        return ContentSource.from_row(response.data[0])

    async def update_source_metadata(
        self, source_id: str, metadata: SourceMetadata
    ) -> None:
        """Replace the metadata bag of a source.

        Raises:
            PersistenceError: If the update fails.
        """
        try:
            self.client.table(SOURCES_TABLE).update(
                {
                    "metadata": metadata.to_payload(),
                    "updated_at": datetime.now().isoformat(),
                }
            ).eq("id", source_id).execute()
            logger.info(
                "source_metadata_updated",
                source_id=source_id,
                process_status=metadata.process_status.value,
            )

        except Exception as e:
            logger.exception(
                "source_metadata_update_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e), source_id=source_id) from e

    async def list_sources(
        self, page: int = 1, limit: int = 10, search: str | None = None
    ) -> tuple[list[ContentSource], int]:
        """List sources newest first.

        Returns:
            Tuple of (sources on the requested page, total matching sources).
        """
        offset = (page - 1) * limit

        query = self.client.table(SOURCES_TABLE).select("*", count="exact")
        if search:
            query = query.or_(f"title.ilike.%{search}%,file_name.ilike.%{search}%")

        try:
            response = (
                query.order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.exception("source_list_failed", error_type=type(e).__name__)
            raise

        sources = [ContentSource.from_row(row) for row in response.data or []]
        return sources, response.count or 0

    async def delete_source(self, source_id: str) -> None:
        try:
            self.client.table(SOURCES_TABLE).delete().eq("id", source_id).execute()
            logger.info("source_deleted", source_id=source_id)
        except Exception as e:
            logger.exception(
                "source_delete_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e), source_id=source_id) from e

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def count_active_chunks(self, source_id: str) -> int:
        """Count chunks of a source with ``is_active=true``."""
        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .select("id", count="exact")
                .eq("source_id", source_id)
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "active_chunk_count_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise

        return response.count or 0

    async def count_active_chunks_by_source(
        self, source_ids: list[str]
    ) -> dict[str, int]:
        """Active chunk counts for several sources in one query."""
        if not source_ids:
            return {}

        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .select("source_id")
                .in_("source_id", source_ids)
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.exception("active_chunk_counts_failed", error_type=type(e).__name__)
            raise

        counts = Counter(str(row["source_id"]) for row in response.data or [])
        return {source_id: counts.get(source_id, 0) for source_id in source_ids}

    async def get_latest_chunk_version(self, source_id: str) -> int:
        """Highest chunk version stored for a source, or 0 if it has none."""
        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .select("version")
                .eq("source_id", source_id)
                .order("version", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "chunk_version_lookup_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise

        if not response.data:
            return 0
        return int(response.data[0].get("version") or 0)

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> list[str]:
        """Bulk insert embedded chunks.

        Args:
            chunks: Chunk rows in chunk order.

        Returns:
            Ids of the inserted rows, in insert order.

        Raises:
            PersistenceError: If the bulk insert fails.
        """
        if not chunks:
            return []

        source_id = chunks[0].source_id
        data = [
            {
                "source_id": chunk.source_id,
                "title": chunk.title,
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "total_chunks": chunk.total_chunks,
                "embedding": chunk.embedding,
                "metadata": chunk.metadata.to_payload(),
                "version": chunk.version,
                "is_active": chunk.is_active,
            }
            for chunk in chunks
        ]

        try:
            response = self.client.table(CHUNKS_TABLE).insert(data).execute()
        except Exception as e:
            logger.exception(
                "chunks_save_failed",
                count=len(chunks),
                source_id=source_id,
                error_type=type(e).__name__,
            )
            message = e.message if isinstance(e, APIError) and e.message else str(e)
            raise PersistenceError(message, source_id=source_id) from e

        ids = [str(row["id"]) for row in response.data or []]
        logger.info("chunks_saved", count=len(ids), source_id=source_id)
        return ids

    async def get_chunk_ids(self, source_id: str) -> list[str]:
        """Ids of every chunk of a source, active or not."""
        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .select("id")
                .eq("source_id", source_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "chunk_ids_lookup_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise

        return [str(row["id"]) for row in response.data or []]

    async def soft_delete_chunks(self, source_id: str) -> int:
        """Mark every chunk of a source inactive.

        Returns:
            Number of chunks deactivated.
        """
        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .update({"is_active": False})
                .eq("source_id", source_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "chunks_soft_delete_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e), source_id=source_id) from e

        count = len(response.data or [])
        logger.info("chunks_soft_deleted", source_id=source_id, count=count)
        return count

    async def delete_chunks(self, source_id: str) -> int:
        try:
            response = (
                self.client.table(CHUNKS_TABLE)
                .delete()
                .eq("source_id", source_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "chunks_delete_failed",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e), source_id=source_id) from e

        count = len(response.data or [])
        logger.info("chunks_deleted", source_id=source_id, count=count)
        return count

    # ------------------------------------------------------------------
    # Coach access grants
    # ------------------------------------------------------------------

    async def insert_access_grants(self, grants: list[CoachAccessGrant]) -> int:
        """Bulk insert coach access grants.

        Returns:
            Number of grants created.

        Raises:
            PersistenceError: If the insert fails.
        """
        if not grants:
            return 0

        try:
            response = (
                self.client.table(ACCESS_TABLE)
                .insert([grant.to_row() for grant in grants])
                .execute()
            )
        except Exception as e:
            logger.exception(
                "access_grants_save_failed",
                count=len(grants),
                error_type=type(e).__name__,
            )
            message = e.message if isinstance(e, APIError) and e.message else str(e)
            raise PersistenceError(message) from e

        return len(response.data or [])

    async def list_access_grants(self, chunk_ids: list[str]) -> list[CoachAccessGrant]:
        if not chunk_ids:
            return []

        try:
            response = (
                self.client.table(ACCESS_TABLE)
                .select("*")
                .in_("document_id", chunk_ids)
                .execute()
            )
        except Exception as e:
            logger.exception("access_grants_lookup_failed", error_type=type(e).__name__)
            raise

        return [CoachAccessGrant.from_row(row) for row in response.data or []]

    async def delete_access_grants(self, chunk_ids: list[str]) -> int:
        """Delete every grant on the given chunks.

        Returns:
            Number of grants deleted.
        """
        if not chunk_ids:
            return 0

        try:
            response = (
                self.client.table(ACCESS_TABLE)
                .delete()
                .in_("document_id", chunk_ids)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "access_grants_delete_failed",
                count=len(chunk_ids),
                error_type=type(e).__name__,
            )
            raise PersistenceError(str(e)) from e

        return len(response.data or [])

