"""Main pipeline orchestrator for document and YouTube ingestion."""

import math
from datetime import UTC, datetime

from src.utils.logging import get_logger

from .access_service import CoachAccessService
from .chunking_service import ChunkingService, extract_metadata
from .config import IngestionConfig, get_config
from .duplicate_detector import DuplicateDetector
from .embedding_service import EmbeddingService
from .exceptions import (
    DuplicateSourceError,
    IngestionFailedError,
    IngestionValidationError,
    PersistenceError,
    SourceNotFoundError,
)
from .hashing import compute_content_hash
from .schemas import (
    ChunkError,
    ChunkMetadata,
    ChunkPosition,
    ChunkRecord,
    CheckDuplicateRequest,
    CheckDuplicateResult,
    CoachAccess,
    CoachAccessResult,
    ContentSource,
    DocumentPage,
    DuplicateCheck,
    DuplicateResult,
    DuplicateVideo,
    ExistingDocument,
    FailedVideo,
    HardDeleteResult,
    IngestionReport,
    NewContentSource,
    Pagination,
    PlaylistVideo,
    ProcessedVideo,
    ProcessStatus,
    SourceMetadata,
    SourceSummary,
    SourceType,
    UploadedSource,
    UploadResult,
    VideoOutcome,
    VideoStatus,
    VideoStatusDocument,
    YouTubeProcessRequest,
    YouTubeProcessResult,
)
from .storage_service import StorageService
from .url_utils import extract_playlist_id, extract_video_id, normalize_url, video_url
from .youtube_service import YouTubeService

logger = get_logger(__name__)


def resolve_youtube_target(
    playlist_id: str | None, video_id: str | None, url: str | None
) -> tuple[str | None, str | None]:
    """Work out which playlist or video a YouTube request refers to.

    Explicit ids win over the URL. A URL containing ``playlist`` is read for
    its ``list=`` parameter; any other URL is read for a video id, falling back
    to ``list=`` when it carries no video id.

    Returns:
        Tuple of (playlist_id, video_id); either or both may be None.
    """
    if url:
        if not playlist_id and "playlist" in url:
            playlist_id = extract_playlist_id(url)
        if not video_id and "playlist" not in url:
            video_id = extract_video_id(url)
        if not playlist_id and not video_id:
            playlist_id = extract_playlist_id(url)

    return playlist_id, video_id


def _require_coaches(coach_access: list[CoachAccess]) -> None:
    if not coach_access:
        raise IngestionValidationError("At least one coach must be selected")


class IngestionPipeline:
    """Orchestrates content ingestion into the coach knowledge base.

    Both entry flows (file upload and YouTube processing) share the same tail:
    chunk → embed (concurrently, failures isolated per chunk) → bulk-persist
    chunks → grant coach access → record the processing status on the source.

    Services are injected so tests can substitute the datastore, the embedding
    provider and the transcript provider.
    """

    def __init__(
        self,
        config: IngestionConfig | None = None,
        *,
        storage_service: StorageService | None = None,
        embedding_service: EmbeddingService | None = None,
        youtube_service: YouTubeService | None = None,
        chunking_service: ChunkingService | None = None,
    ):
        """Initialize pipeline with all required services.

        Args:
            config: Configuration object. If None, loads from environment.
            storage_service: Datastore gateway. Built from config when omitted.
            embedding_service: Embedding provider. Built from config when omitted.
            youtube_service: Transcript provider. Built from config when omitted.
            chunking_service: Chunker. Built from config when omitted.
        """
        self.config = config or get_config()
        self.storage_service = storage_service or StorageService(self.config)
        self.embedding_service = embedding_service or EmbeddingService(self.config)
        self.youtube_service = youtube_service or YouTubeService(self.config)
        self.chunking_service = chunking_service or ChunkingService(self.config)
        self.duplicate_detector = DuplicateDetector(self.storage_service)
        self.access_service = CoachAccessService(self.storage_service)

        logger.info(
            "pipeline_initialized",
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.chunk_overlap,
        )

    # ------------------------------------------------------------------
    # Flow A: file upload
    # ------------------------------------------------------------------

    async def ingest_file(
        self,
        content: bytes | None,
        file_name: str | None,
        coach_access: list[CoachAccess],
        mime_type: str | None = None,
        source_type: SourceType = SourceType.DOCUMENT,
    ) -> UploadResult | DuplicateResult:
        """Ingest an uploaded file.

        Args:
            content: Raw file bytes.
            file_name: Original file name, also used as the source title.
            coach_access: Coaches (and tiers) that get access to the chunks.
            mime_type: MIME type reported by the client.
            source_type: Source type recorded on the source row.

        Returns:
            UploadResult on success (completed or partial), or DuplicateResult
            if the same bytes were already ingested and still have active chunks.

        Raises:
            IngestionValidationError: Missing/empty file or no coach selected.
            PersistenceError: The source or its chunks could not be stored.
        """
        if content is None or not file_name:
            raise IngestionValidationError("No file provided")
        _require_coaches(coach_access)

        text = content.decode("utf-8", errors="replace")
        if not text.strip():
            raise IngestionValidationError("File is empty")

        content_hash = compute_content_hash(content)
        logger.info(
            "file_ingestion_started",
            file_name=file_name,
            size_bytes=len(content),
            coaches=len(coach_access),
        )

        check = await self.duplicate_detector.check_content_hash(content_hash)
        if check.is_duplicate:
            return self._file_duplicate(check)

        metadata = SourceMetadata(
            **extract_metadata(text),
            original_name=file_name,
            mime_type=mime_type,
            file_size_bytes=len(content),
        )
        new_source = NewContentSource(
            title=file_name,
            source_type=source_type,
            file_name=file_name,
            content_hash=content_hash,
            content=text,
            metadata=metadata,
        )

        try:
            source, version = await self._claim_source(new_source, check)
        except DuplicateSourceError:
            # Lost a race against a concurrent upload of the same bytes
            check = await self.duplicate_detector.check_content_hash(content_hash)
            if check.existing_source is None:
                raise
            return self._file_duplicate(check)

        report = await self._ingest_source(source, text, coach_access, version=version)

        return UploadResult(
            source=UploadedSource(
                id=source.id,
                name=source.title,
                chunks_created=report.chunks_created,
                total_chunks=report.total_chunks,
                process_status=report.process_status,
                errors=report.errors or None,
            )
        )

    @staticmethod
    def _file_duplicate(check: DuplicateCheck) -> DuplicateResult:
        title = check.existing_source.title if check.existing_source else ""
        return DuplicateResult.from_check(
            check, f'This file has already been uploaded as "{title}"'
        )

    # ------------------------------------------------------------------
    # Flow B: YouTube processing
    # ------------------------------------------------------------------

    async def process_youtube(
        self, request: YouTubeProcessRequest
    ) -> YouTubeProcessResult | DuplicateResult:
        """Ingest a single YouTube video or every video of a playlist.

        Playlist videos are processed one at a time. Each video is checked for
        duplicates before its transcript is fetched, and a failure on one video
        is recorded in its result without stopping the others.

        Args:
            request: Playlist id, video id or URL plus the coach selection.

        Returns:
            YouTubeProcessResult with per-video results and a summary, or
            DuplicateResult when a single requested video already exists.

        Raises:
            IngestionValidationError: No coach selected or no resolvable id.
        """
        _require_coaches(request.coach_access)

        playlist_id, video_id = resolve_youtube_target(
            request.playlist_id, request.video_id, request.url
        )
        if not playlist_id and not video_id:
            raise IngestionValidationError("Either playlistId or videoId is required")

        if video_id:
            logger.info("processing_single_video", video_id=video_id)

            check = await self.duplicate_detector.check_source_url(video_url(video_id))
            if check.is_duplicate:
                title = check.existing_source.title if check.existing_source else ""
                return DuplicateResult.from_check(
                    check,
                    f'This YouTube video has already been added as "{title}"',
                )

            video = await self.youtube_service.get_video_metadata(video_id)
            outcome = await self._process_video(video, request.coach_access, check)
            return YouTubeProcessResult.from_outcomes([outcome])

        logger.info("processing_playlist", playlist_id=playlist_id)
        videos = await self.youtube_service.get_playlist_videos(playlist_id)

        outcomes: list[VideoOutcome] = []
        for position, video in enumerate(videos, start=1):
            logger.info(
                "processing_playlist_video",
                video_id=video.video_id,
                position=position,
                total=len(videos),
            )
            outcomes.append(await self._process_video(video, request.coach_access))

        result = YouTubeProcessResult.from_outcomes(outcomes)
        logger.info(
            "playlist_processed",
            playlist_id=playlist_id,
            total=result.summary.total,
            successful=result.summary.successful,
            failed=result.summary.failed,
        )
        return result

    async def _process_video(
        self,
        video: PlaylistVideo,
        coach_access: list[CoachAccess],
        check: DuplicateCheck | None = None,
    ) -> VideoOutcome:
        """Run one video through dedup → transcript → shared ingestion tail."""
        source_url = video_url(video.video_id)

        if check is None:
            try:
                check = await self.duplicate_detector.check_source_url(source_url)
            except Exception as e:
                logger.exception(
                    "video_duplicate_check_failed",
                    video_id=video.video_id,
                    error_type=type(e).__name__,
                )
                return FailedVideo(
                    video_id=video.video_id,
                    title=video.title,
                    error=f"Duplicate check failed: {e}",
                )

        if check.is_duplicate:
            existing_title = check.existing_source.title if check.existing_source else None
            logger.info(
                "video_already_ingested",
                video_id=video.video_id,
                active_chunks=check.active_chunk_count,
            )
            return DuplicateVideo(
                video_id=video.video_id,
                title=video.title,
                existing_title=existing_title,
                error=f'Already exists as "{existing_title}"',
            )

        try:
            transcript = await self.youtube_service.get_transcript(video.video_id)
        except Exception as e:
            logger.warning(
                "video_transcript_failed",
                video_id=video.video_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return FailedVideo(video_id=video.video_id, title=video.title, error=str(e))

        if not transcript.strip():
            return FailedVideo(
                video_id=video.video_id,
                title=video.title,
                error="No transcript available",
            )

        new_source = NewContentSource(
            title=video.title,
            source_type=SourceType.URL,
            source_url=source_url,
            content_hash=compute_content_hash(transcript),
            content=transcript,
            metadata=SourceMetadata(video_id=video.video_id, duration=video.duration),
        )

        try:
            source, version = await self._claim_source(new_source, check)
            report = await self._ingest_source(
                source,
                transcript,
                coach_access,
                version=version,
                video_id=video.video_id,
            )
        except DuplicateSourceError:
            # Lost a race against a concurrent ingestion of the same video
            return await self._video_conflict(video, source_url)
        except PersistenceError as e:
            return FailedVideo(
                video_id=video.video_id, title=video.title, error=e.message
            )
        except Exception as e:
            logger.exception(
                "video_ingestion_failed",
                video_id=video.video_id,
                error_type=type(e).__name__,
            )
            return FailedVideo(video_id=video.video_id, title=video.title, error=str(e))

        return ProcessedVideo(
            video_id=video.video_id, title=video.title, url=source_url, report=report
        )

    async def _video_conflict(self, video: PlaylistVideo, source_url: str) -> DuplicateVideo:
        existing_title = None
        try:
            check = await self.duplicate_detector.check_source_url(source_url)
        except Exception as e:
            logger.warning(
                "video_conflict_lookup_failed",
                video_id=video.video_id,
                error_type=type(e).__name__,
                error=str(e),
            )
        else:
            if check.existing_source is not None:
                existing_title = check.existing_source.title

        return DuplicateVideo(
            video_id=video.video_id,
            title=video.title,
            existing_title=existing_title,
            error="This YouTube video has already been processed",
        )

    # ------------------------------------------------------------------
    # Shared ingestion tail
    # ------------------------------------------------------------------

    async def _claim_source(
        self, new_source: NewContentSource, check: DuplicateCheck
    ) -> tuple[ContentSource, int]:
        """Create the source row, or reuse a matching one with no active chunks.

        Returns:
            Tuple of (source, chunk version to write).
        """
        existing = check.existing_source
        if existing is None:
            return await self.storage_service.insert_source(new_source), 1

        version = await self.storage_service.get_latest_chunk_version(existing.id) + 1
        logger.info(
            "reingesting_inactive_source",
            source_id=existing.id,
            version=version,
        )
        source = await self.storage_service.reset_source(existing.id, new_source)
        return source, version

    async def _ingest_source(
        self,
        source: ContentSource,
        text: str,
        coach_access: list[CoachAccess],
        version: int = 1,
        video_id: str | None = None,
    ) -> IngestionReport:
        """Chunk, embed, persist and grant access for one source.

        Raises:
            IngestionFailedError: If no chunk could be embedded.
            PersistenceError: If the chunk bulk insert fails. The source is
                marked ``failed`` and no access is granted.
        """
        chunks = self.chunking_service.chunk(text)
        total_chunks = len(chunks)

        batch = await self.embedding_service.embed_chunks([c.text for c in chunks])
        errors = batch.errors

        records = [
            ChunkRecord(
                source_id=source.id,
                title=(
                    f"{source.title} - Part {chunk.index + 1}/{total_chunks}"
                    if total_chunks > 1
                    else source.title
                ),
                content=chunk.text,
                chunk_index=chunk.index,
                total_chunks=total_chunks,
                embedding=outcome.embedding,
                metadata=ChunkMetadata(
                    chunk_size=len(chunk.text),
                    token_count=chunk.token_count,
                    position=ChunkPosition(start=chunk.start, index=chunk.index),
                    video_id=video_id,
                ),
                version=version,
            )
            for chunk, outcome in zip(chunks, batch.outcomes, strict=True)
            if outcome.embedding is not None
        ]

        if not records:
            await self._mark_failed(
                source, total_chunks, errors, "No chunks could be embedded"
            )
            raise IngestionFailedError(source.id, [e.model_dump() for e in errors])

        try:
            chunk_ids = await self.storage_service.insert_chunks(records)
        except PersistenceError as e:
            await self._mark_failed(source, total_chunks, errors, e.message)
            raise

        access_results = await self.access_service.assign_access(chunk_ids, coach_access)
        self._log_access_failures(source, access_results)

        status = ProcessStatus.PARTIAL if errors else ProcessStatus.COMPLETED
        metadata = source.metadata.model_copy(
            update={
                "process_status": status,
                "processed_at": datetime.now(UTC),
                "chunks_created": len(chunk_ids),
                "total_chunks": total_chunks,
                "errors": errors or None,
                "error_message": None,
            }
        )
        await self.storage_service.update_source_metadata(source.id, metadata)

        logger.info(
            "source_ingested",
            source_id=source.id,
            process_status=status.value,
            chunks_created=len(chunk_ids),
            total_chunks=total_chunks,
            chunk_errors=len(errors),
        )
        return IngestionReport(
            source_id=source.id,
            process_status=status,
            chunks_created=len(chunk_ids),
            total_chunks=total_chunks,
            errors=errors,
            access_results=access_results,
        )

    async def _mark_failed(
        self,
        source: ContentSource,
        total_chunks: int,
        errors: list[ChunkError],
        error_message: str,
    ) -> None:
        metadata = source.metadata.model_copy(
            update={
                "process_status": ProcessStatus.FAILED,
                "processed_at": datetime.now(UTC),
                "chunks_created": 0,
                "total_chunks": total_chunks,
                "errors": errors or None,
                "error_message": error_message,
            }
        )
        try:
            await self.storage_service.update_source_metadata(source.id, metadata)
        except PersistenceError:
            # The original failure is what gets raised to the caller
            logger.exception("source_failure_not_recorded", source_id=source.id)

        logger.error(
            "source_ingestion_failed",
            source_id=source.id,
            error=error_message,
            chunk_errors=len(errors),
        )

    @staticmethod
    def _log_access_failures(
        source: ContentSource, access_results: list[CoachAccessResult]
    ) -> None:
        failed = [r.coach_id for r in access_results if not r.success]
        if failed:
            logger.warning(
                "coach_access_incomplete",
                source_id=source.id,
                failed_coaches=failed,
            )

    # ------------------------------------------------------------------
    # Status and duplicate pre-flight
    # ------------------------------------------------------------------

    async def get_video_status(self, video_id: str) -> VideoStatus:
        """Report whether a video was ingested and how many chunks are active."""
        check = await self.duplicate_detector.check_source_url(video_url(video_id))
        source = check.existing_source

        if source is None:
            return VideoStatus(exists=False, video_id=video_id)

        return VideoStatus(
            exists=True,
            video_id=video_id,
            document=VideoStatusDocument(
                id=source.id,
                title=source.title,
                source_url=source.source_url,
                created_at=source.created_at,
                chunk_count=check.active_chunk_count,
                has_active_chunks=check.active_chunk_count > 0,
            ),
        )

    async def check_duplicate(self, request: CheckDuplicateRequest) -> CheckDuplicateResult:
        """Pre-flight duplicate check for a file hash or a URL.

        Raises:
            IngestionValidationError: Missing parameters or an unusable URL.
        """
        if request.type == "file" and request.file_hash:
            check = await self.duplicate_detector.check_content_hash(request.file_hash)
            return self._check_result(check, "This file has already been uploaded as")

        if request.type in ("youtube", "web") and request.url:
            normalized, kind = normalize_url(request.url)
            if not normalized:
                raise IngestionValidationError("Invalid URL format")
            if request.type == "youtube" and kind != "youtube":
                raise IngestionValidationError("Not a valid YouTube URL")

            check = await self.duplicate_detector.check_source_url(normalized)
            result = self._check_result(
                check, f"This {request.type} has already been added as"
            )
            result.normalized_url = normalized
            return result

        raise IngestionValidationError("Missing required parameters")

    @staticmethod
    def _check_result(check: DuplicateCheck, message_prefix: str) -> CheckDuplicateResult:
        if not check.is_duplicate or check.existing_source is None:
            return CheckDuplicateResult(is_duplicate=False)

        source = check.existing_source
        return CheckDuplicateResult(
            is_duplicate=True,
            existing_document=ExistingDocument(
                id=source.id,
                title=source.title,
                uploaded_at=source.created_at,
                chunk_count=check.active_chunk_count,
                source_url=source.source_url,
            ),
            message=f'{message_prefix} "{source.title}"',
        )

    # ------------------------------------------------------------------
    # Document management
    # ------------------------------------------------------------------

    async def list_documents(
        self, page: int = 1, limit: int = 10, search: str | None = None
    ) -> DocumentPage:
        sources, total = await self.storage_service.list_sources(page, limit, search)
        active = await self.storage_service.count_active_chunks_by_source(
            [source.id for source in sources]
        )

        total_pages = math.ceil(total / limit) if limit else 0
        return DocumentPage(
            sources=[
                SourceSummary(
                    id=source.id,
                    title=source.title,
                    source_type=source.source_type,
                    file_name=source.file_name,
                    source_url=source.source_url,
                    created_at=source.created_at,
                    process_status=source.metadata.process_status,
                    active_chunks=active.get(source.id, 0),
                )
                for source in sources
            ],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_more=page < total_pages,
            ),
        )

    async def soft_delete_source(self, source_id: str) -> int:
        """Deactivate every chunk of a source.

        The source row stays, and the same content can be ingested again.

        Returns:
            Number of chunks deactivated.
        """
        await self._require_source(source_id)
        return await self.storage_service.soft_delete_chunks(source_id)

    async def hard_delete_source(self, source_id: str) -> HardDeleteResult:
        """Permanently delete a source, its chunks and their grants."""
        await self._require_source(source_id)

        chunk_ids = await self.storage_service.get_chunk_ids(source_id)
        grants_deleted = await self.storage_service.delete_access_grants(chunk_ids)
        chunks_deleted = await self.storage_service.delete_chunks(source_id)
        await self.storage_service.delete_source(source_id)

        logger.info(
            "source_hard_deleted",
            source_id=source_id,
            chunks_deleted=chunks_deleted,
            grants_deleted=grants_deleted,
        )
        return HardDeleteResult(
            source_id=source_id,
            chunks_deleted=chunks_deleted,
            grants_deleted=grants_deleted,
        )

    async def get_source_access(self, source_id: str) -> list[CoachAccess]:
        await self._require_source(source_id)
        return await self.access_service.get_source_access(source_id)

    async def update_source_access(
        self, source_id: str, coach_access: list[CoachAccess]
    ) -> list[CoachAccessResult]:
        await self._require_source(source_id)
        return await self.access_service.replace_source_access(source_id, coach_access)

    async def _require_source(self, source_id: str) -> ContentSource:
        source = await self.storage_service.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source
