"""Exceptions raised by the RAG ingestion pipeline."""

from __future__ import annotations

from typing import Any


class IngestionException(Exception):
    """Base exception for ingestion errors."""


class IngestionValidationError(IngestionException):
    """Raised when a request is rejected before any external call is made."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DuplicateSourceError(IngestionException):
    """Raised when a source insert hits the datastore uniqueness constraint."""

    def __init__(self, dedup_key: str) -> None:
        self.dedup_key = dedup_key
        super().__init__(f"Content source already exists for key: {dedup_key}")


class PersistenceError(IngestionException):
    """Raised when a datastore write fails for a single source."""

    def __init__(self, message: str, source_id: str | None = None) -> None:
        self.message = message
        self.source_id = source_id
        super().__init__(message)


class IngestionFailedError(PersistenceError):
    """Raised when no chunk of a source could be embedded."""

    def __init__(
        self, source_id: str, errors: list[dict[str, Any]] | None = None
    ) -> None:
        self.errors = errors or []
        super().__init__(
            f"No chunks could be embedded for source {source_id}",
            source_id=source_id,
        )


class TranscriptError(IngestionException):
    """Base class for transcript fetching failures."""

    def __init__(self, video_id: str, message: str) -> None:
        self.video_id = video_id
        self.message = message
        super().__init__(message)


class TranscriptUnavailableError(TranscriptError):
    """Raised when a video exists but has no usable transcript."""

    def __init__(self, video_id: str) -> None:
        super().__init__(video_id, "Transcript not available for this video")


class VideoUnavailableError(TranscriptError):
    """Raised when a video is private, removed or otherwise unavailable."""

    def __init__(self, video_id: str) -> None:
        super().__init__(video_id, "Video unavailable")


class SourceNotFoundError(IngestionException):
    """Raised when a content source id does not exist."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Content source not found: {source_id}")
