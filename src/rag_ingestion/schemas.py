"""Pydantic schemas for the RAG ingestion pipeline."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Coaches shipped with the mobile app. Coaches are tenant data, so ids outside
# this list are still accepted.
KNOWN_COACH_IDS = ("carnivore-pro", "paleo", "lowcarb", "keto", "ketovore", "lion")


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for API payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict with camelCase keys and no null fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AccessTier(str, Enum):
    """Ordered permission level of a coach-chunk grant."""

    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]

    def includes(self, other: "AccessTier") -> bool:
        """Return True if this tier grants at least the access of ``other``."""
        return self.rank >= other.rank


_TIER_RANKS = {AccessTier.FREE: 0, AccessTier.PREMIUM: 1, AccessTier.PRO: 2}


class SourceType(str, Enum):
    DOCUMENT = "document"
    URL = "url"


class ProcessStatus(str, Enum):
    """Processing state of a content source.

    ``pending`` moves to exactly one of the terminal states for a given
    ingestion attempt.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class CoachAccess(CamelModel):
    """Requested access for one coach."""

    coach_id: str = Field(min_length=1)
    access_tier: AccessTier = AccessTier.PRO


class ChunkError(CamelModel):
    """Embedding failure recorded for one chunk."""

    chunk_index: int
    error: str


class SourceMetadata(CamelModel):
    """Facts accumulated on a content source over its ingestion lifecycle.

    Stored in the ``metadata`` JSON column of ``document_sources`` with
    camelCase keys.
    """

    # Extracted from content
    title: str | None = None
    word_count: int | None = None
    has_code: bool | None = None
    headers: list[str] | None = None

    # Uploaded file facts
    original_name: str | None = None
    mime_type: str | None = None
    file_size_bytes: int | None = None

    # Video facts
    video_id: str | None = None
    duration: int | None = None  # seconds

    # Processing facts
    process_status: ProcessStatus = ProcessStatus.PENDING
    processed_at: datetime | None = None
    chunks_created: int | None = None
    total_chunks: int | None = None
    errors: list[ChunkError] | None = None
    error_message: str | None = None


class ContentSource(BaseModel):
    """A persisted ``document_sources`` row."""

    id: str
    title: str
    source_type: SourceType = SourceType.DOCUMENT
    file_name: str | None = None
    source_url: str | None = None
    content_hash: str | None = None
    content: str = ""
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ContentSource":
        """Build a source from a datastore row (``file_hash`` column)."""
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            source_type=row.get("source_type") or SourceType.DOCUMENT,
            file_name=row.get("file_name"),
            source_url=row.get("source_url"),
            content_hash=row.get("file_hash"),
            content=row.get("content") or "",
            metadata=SourceMetadata.model_validate(row.get("metadata") or {}),
            created_at=row.get("created_at"),
        )


class NewContentSource(BaseModel):
    """Values for a ``document_sources`` insert."""

    title: str
    source_type: SourceType
    content_hash: str
    content: str
    file_name: str | None = None
    source_url: str | None = None
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)


class ChunkPosition(CamelModel):
    start: int
    index: int


class ChunkMetadata(CamelModel):
    """Per-chunk facts stored in the ``coach_documents.metadata`` column."""

    chunk_size: int
    token_count: int
    position: ChunkPosition
    video_id: str | None = None


class ChunkRecord(BaseModel):
    """One embedded chunk ready for the ``coach_documents`` bulk insert."""

    source_id: str
    title: str
    content: str
    chunk_index: int
    total_chunks: int
    embedding: list[float]
    metadata: ChunkMetadata
    version: int = 1
    is_active: bool = True


class TextChunk(BaseModel):
    """A chunk of source text before embedding."""

    index: int
    text: str
    start: int
    token_count: int


class CoachAccessGrant(BaseModel):
    """A ``coach_document_access`` row joining one chunk to one coach."""

    chunk_id: str
    coach_id: str
    access_tier: AccessTier

    def to_row(self) -> dict[str, Any]:
        return {
            "document_id": self.chunk_id,
            "coach_id": self.coach_id,
            "access_tier": self.access_tier.value,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CoachAccessGrant":
        return cls(
            chunk_id=str(row["document_id"]),
            coach_id=row["coach_id"],
            access_tier=row.get("access_tier") or AccessTier.PRO,
        )


class CoachAccessResult(CamelModel):
    """Outcome of creating the grants for one coach."""

    coach_id: str
    success: bool
    error: str | None = None


class DuplicateCheck(BaseModel):
    """Result of a dedup lookup.

    A matching source is only a duplicate while it still has active chunks.
    """

    is_duplicate: bool
    existing_source: ContentSource | None = None
    active_chunk_count: int = 0


class ExistingDocument(CamelModel):
    id: str
    title: str
    uploaded_at: datetime | None = None
    chunk_count: int
    source_url: str | None = None


class DuplicateResult(CamelModel):
    """Conflict response for content that was already ingested."""

    success: Literal[False] = False
    is_duplicate: Literal[True] = True
    message: str
    existing_document: ExistingDocument

    @classmethod
    def from_check(cls, check: DuplicateCheck, message: str) -> "DuplicateResult":
        source = check.existing_source
        if source is None:
            raise ValueError("Duplicate check has no existing source")
        return cls(
            message=message,
            existing_document=ExistingDocument(
                id=source.id,
                title=source.title,
                uploaded_at=source.created_at,
                chunk_count=check.active_chunk_count,
                source_url=source.source_url,
            ),
        )


class IngestionReport(BaseModel):
    """Outcome of the chunk → embed → persist → grant tail for one source."""

    source_id: str
    process_status: ProcessStatus
    chunks_created: int
    total_chunks: int
    errors: list[ChunkError] = Field(default_factory=list)
    access_results: list[CoachAccessResult] = Field(default_factory=list)


class UploadedSource(CamelModel):
    id: str
    name: str
    chunks_created: int
    total_chunks: int
    process_status: ProcessStatus
    errors: list[ChunkError] | None = None


class UploadResult(CamelModel):
    success: Literal[True] = True
    source: UploadedSource


class PlaylistVideo(CamelModel):
    """Playlist item metadata, fetched before any transcript."""

    video_id: str
    title: str
    duration: int = 0  # seconds

    @property
    def display_duration(self) -> str:
        minutes, seconds = divmod(self.duration, 60)
        return f"{minutes}:{seconds:02d}"


# Per-video outcomes of the YouTube flow


class DuplicateVideo(CamelModel):
    outcome: Literal["duplicate"] = "duplicate"
    video_id: str
    title: str
    error: str
    existing_title: str | None = None


class FailedVideo(CamelModel):
    outcome: Literal["failed"] = "failed"
    video_id: str
    title: str
    error: str


class ProcessedVideo(CamelModel):
    outcome: Literal["processed"] = "processed"
    video_id: str
    title: str
    url: str
    report: IngestionReport


VideoOutcome = Annotated[
    DuplicateVideo | FailedVideo | ProcessedVideo, Field(discriminator="outcome")
]


class VideoResult(CamelModel):
    """Flattened per-video entry of the YouTube process response."""

    video_id: str
    title: str
    success: bool
    is_duplicate: bool | None = None
    existing_title: str | None = None
    chunks_created: int | None = None
    total_chunks: int | None = None
    process_status: ProcessStatus | None = None
    document_id: str | None = None
    url: str | None = None
    error: str | None = None
    chunk_errors: list[ChunkError] | None = None

    @classmethod
    def from_outcome(cls, outcome: VideoOutcome) -> "VideoResult":
        if isinstance(outcome, ProcessedVideo):
            report = outcome.report
            return cls(
                video_id=outcome.video_id,
                title=outcome.title,
                success=True,
                chunks_created=report.chunks_created,
                total_chunks=report.total_chunks,
                process_status=report.process_status,
                document_id=report.source_id,
                url=outcome.url,
                chunk_errors=report.errors or None,
            )
        if isinstance(outcome, DuplicateVideo):
            return cls(
                video_id=outcome.video_id,
                title=outcome.existing_title or outcome.title,
                success=False,
                is_duplicate=True,
                existing_title=outcome.existing_title,
                error=outcome.error,
            )
        return cls(
            video_id=outcome.video_id,
            title=outcome.title,
            success=False,
            error=outcome.error,
        )


class ProcessingSummary(CamelModel):
    total: int
    successful: int
    failed: int


class YouTubeProcessRequest(CamelModel):
    """Body of the YouTube process endpoint.

    ``coach_access`` emptiness is checked by the pipeline so it surfaces as a
    validation error rather than a schema error.
    """

    playlist_id: str | None = None
    video_id: str | None = None
    url: str | None = None
    coach_access: list[CoachAccess] = Field(default_factory=list)


class YouTubeProcessResult(CamelModel):
    success: Literal[True] = True
    message: str
    results: list[VideoResult]
    summary: ProcessingSummary

    @classmethod
    def from_outcomes(cls, outcomes: list[VideoOutcome]) -> "YouTubeProcessResult":
        results = [VideoResult.from_outcome(outcome) for outcome in outcomes]
        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        return cls(
            message=f"Processed {successful} videos successfully, {failed} failed",
            results=results,
            summary=ProcessingSummary(
                total=len(results), successful=successful, failed=failed
            ),
        )


class VideoStatusDocument(CamelModel):
    id: str
    title: str
    source_url: str | None = None
    created_at: datetime | None = None
    chunk_count: int
    has_active_chunks: bool


class VideoStatus(CamelModel):
    exists: bool
    video_id: str
    document: VideoStatusDocument | None = None


class CheckDuplicateRequest(CamelModel):
    type: Literal["file", "youtube", "web"]
    file_hash: str | None = None
    url: str | None = None


class CheckDuplicateResult(CamelModel):
    is_duplicate: bool
    existing_document: ExistingDocument | None = None
    normalized_url: str | None = None
    message: str | None = None


class SourceSummary(CamelModel):
    id: str
    title: str
    source_type: SourceType
    file_name: str | None = None
    source_url: str | None = None
    created_at: datetime | None = None
    process_status: ProcessStatus
    active_chunks: int


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class DocumentPage(CamelModel):
    success: Literal[True] = True
    sources: list[SourceSummary]
    pagination: Pagination


class HardDeleteResult(CamelModel):
    success: Literal[True] = True
    source_id: str
    chunks_deleted: int
    grants_deleted: int


class AccessUpdateRequest(CamelModel):
    coach_access: list[CoachAccess]
