"""In-memory datastore and fake external providers used across the tests."""

import itertools
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

from src.rag_ingestion.exceptions import DuplicateSourceError, PersistenceError
from src.rag_ingestion.schemas import (
    ChunkRecord,
    CoachAccessGrant,
    ContentSource,
    NewContentSource,
    SourceMetadata,
)


class FakeStorage:
    """In-memory stand-in for StorageService.

    Mirrors the datastore semantics the pipeline relies on, including the
    uniqueness constraint on content hash and source URL.
    """

    def __init__(self) -> None:
        self.sources: dict[str, ContentSource] = {}
        self.chunks: dict[str, ChunkRecord] = {}
        self.grants: list[CoachAccessGrant] = []
        self.writes: list[str] = []
        self.chunk_insert_error: str | None = None
        self.failing_coaches: set[str] = set()
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Sources

    async def find_source_by_hash(self, content_hash: str) -> ContentSource | None:
        return next(
            (s for s in self.sources.values() if s.content_hash == content_hash), None
        )

    async def find_source_by_url(self, source_url: str) -> ContentSource | None:
        return next(
            (s for s in self.sources.values() if s.source_url == source_url), None
        )

    async def get_source(self, source_id: str) -> ContentSource | None:
        return self.sources.get(source_id)

    async def insert_source(self, source: NewContentSource) -> ContentSource:
        for existing in self.sources.values():
            if existing.content_hash == source.content_hash or (
                source.source_url and existing.source_url == source.source_url
            ):
                raise DuplicateSourceError(source.source_url or source.content_hash)

        self.writes.append("insert_source")
        created = ContentSource(
            id=self._next_id("src"),
            created_at=datetime.now(UTC),
            **source.model_dump(),
        )
        self.sources[created.id] = created
        return created

    async def reset_source(
        self, source_id: str, source: NewContentSource
    ) -> ContentSource:
        self.writes.append("reset_source")
        updated = self.sources[source_id].model_copy(
            update={
                "title": source.title,
                "source_type": source.source_type,
                "file_name": source.file_name,
                "source_url": source.source_url,
                "content_hash": source.content_hash,
                "content": source.content,
                "metadata": source.metadata,
            }
        )
        self.sources[source_id] = updated
        return updated

    async def update_source_metadata(
        self, source_id: str, metadata: SourceMetadata
    ) -> None:
        self.writes.append("update_source_metadata")
        self.sources[source_id] = self.sources[source_id].model_copy(
            update={"metadata": metadata}
        )

    async def list_sources(
        self, page: int = 1, limit: int = 10, search: str | None = None
    ) -> tuple[list[ContentSource], int]:
        sources = sorted(
            self.sources.values(), key=lambda s: s.created_at or datetime.min, reverse=True
        )
        if search:
            sources = [s for s in sources if search.lower() in s.title.lower()]
        offset = (page - 1) * limit
        return sources[offset : offset + limit], len(sources)

    async def delete_source(self, source_id: str) -> None:
        self.writes.append("delete_source")
        del self.sources[source_id]

    # Chunks

    def chunks_for(self, source_id: str, active_only: bool = True) -> list[ChunkRecord]:
        return sorted(
            (
                c
                for c in self.chunks.values()
                if c.source_id == source_id and (c.is_active or not active_only)
            ),
            key=lambda c: (c.version, c.chunk_index),
        )

    async def count_active_chunks(self, source_id: str) -> int:
        return len(self.chunks_for(source_id))

    async def count_active_chunks_by_source(self, source_ids: list[str]) -> dict[str, int]:
        return {source_id: len(self.chunks_for(source_id)) for source_id in source_ids}

    async def get_latest_chunk_version(self, source_id: str) -> int:
        versions = [c.version for c in self.chunks_for(source_id, active_only=False)]
        return max(versions, default=0)

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> list[str]:
        if self.chunk_insert_error:
            raise PersistenceError(self.chunk_insert_error, source_id=chunks[0].source_id)

        self.writes.append("insert_chunks")
        ids = []
        for chunk in chunks:
            chunk_id = self._next_id("chunk")
            self.chunks[chunk_id] = chunk
            ids.append(chunk_id)
        return ids

    async def get_chunk_ids(self, source_id: str) -> list[str]:
        return [cid for cid, c in self.chunks.items() if c.source_id == source_id]

    async def soft_delete_chunks(self, source_id: str) -> int:
        self.writes.append("soft_delete_chunks")
        ids = await self.get_chunk_ids(source_id)
        for chunk_id in ids:
            self.chunks[chunk_id] = self.chunks[chunk_id].model_copy(
                update={"is_active": False}
            )
        return len(ids)

    async def delete_chunks(self, source_id: str) -> int:
        self.writes.append("delete_chunks")
        ids = await self.get_chunk_ids(source_id)
        for chunk_id in ids:
            del self.chunks[chunk_id]
        return len(ids)

    # Grants

    async def insert_access_grants(self, grants: list[CoachAccessGrant]) -> int:
        if grants and grants[0].coach_id in self.failing_coaches:
            raise PersistenceError(f"grant insert rejected for {grants[0].coach_id}")

        self.writes.append("insert_access_grants")
        self.grants.extend(grants)
        return len(grants)

    async def list_access_grants(self, chunk_ids: list[str]) -> list[CoachAccessGrant]:
        return [g for g in self.grants if g.chunk_id in chunk_ids]

    async def delete_access_grants(self, chunk_ids: list[str]) -> int:
        self.writes.append("delete_access_grants")
        kept = [g for g in self.grants if g.chunk_id not in chunk_ids]
        removed = len(self.grants) - len(kept)
        self.grants = kept
        return removed


class FakeEmbeddings:
    """Mimics ``AsyncOpenAI().embeddings``; fails for texts containing a marker."""

    def __init__(self) -> None:
        self.fail_markers: set[str] = set()
        self.calls: list[str] = []

    async def create(self, input: str, model: str) -> Any:
        self.calls.append(input)
        if any(marker in input for marker in self.fail_markers):
            raise RuntimeError("embedding provider rejected the request")
        return SimpleNamespace(data=[SimpleNamespace(embedding=[float(len(input)), 0.5])])


class FakeTokenizer:
    def encode(self, text: str) -> list[str]:
        return text.split()
