"""YouTube service for fetching playlists, video metadata and transcripts via Supadata API."""

from supadata import Supadata

from src.utils.logging import get_logger

from .config import IngestionConfig
from .exceptions import TranscriptUnavailableError, VideoUnavailableError
from .schemas import PlaylistVideo

logger = get_logger(__name__)

TRANSCRIPT_UNAVAILABLE_MARKERS = (
    "transcript-unavailable",
    "not available",
    "transcript is disabled",
    "no transcript",
    "could not get transcripts",
    "206",
)

VIDEO_UNAVAILABLE_MARKERS = (
    "video unavailable",
    "this video is unavailable",
    "video-not-found",
    "private video",
    "video has been removed",
)


class YouTubeService:
    """Service for fetching YouTube data via Supadata API.

    Playlist resolution only returns metadata; transcripts are fetched one
    video at a time so callers can skip duplicates before paying for the
    transcript call.
    """

    def __init__(self, config: IngestionConfig, client: Supadata | None = None):
        """Initialize YouTube service with configuration.

        Args:
            config: Configuration object with Supadata API key and settings.
            client: Preconfigured Supadata client. Built from ``config`` when omitted.
        """
        self.config = config
        self.client = client or Supadata(api_key=config.supadata_api_key)
        logger.info(
            "youtube_service_initialized",
            api_key_present=bool(config.supadata_api_key),
        )

    async def get_playlist_videos(self, playlist_id: str) -> list[PlaylistVideo]:
        """Resolve a playlist into ordered video metadata.

        Args:
            playlist_id: YouTube playlist ID.

        Returns:
            Videos in playlist order, without transcripts.

        Raises:
            Exception: If the playlist cannot be fetched.
        """
        logger.info(
            "fetching_playlist_videos",
            playlist_id=playlist_id,
            limit=self.config.playlist_limit,
        )

        try:
            response = self.client.youtube.playlist.videos(
                id=playlist_id,
                limit=self.config.playlist_limit,
            )
        except Exception as e:
            logger.exception(
                "playlist_fetch_failed",
                playlist_id=playlist_id,
                error_type=type(e).__name__,
            )
            raise

        videos = [
            await self.get_video_metadata(video_id, fallback_title=f"Video {video_id}")
            for video_id in response.video_ids
        ]

        logger.info("playlist_videos_fetched", playlist_id=playlist_id, count=len(videos))
        return videos

    async def get_video_metadata(
        self, video_id: str, fallback_title: str | None = None
    ) -> PlaylistVideo:
        """Fetch a video's title and duration.

        Metadata is cosmetic, so a failed lookup falls back to a placeholder
        title instead of failing the video.
        """
        try:
            video = self.client.youtube.video(id=video_id)
            return PlaylistVideo(
                video_id=video_id,
                title=video.title or fallback_title or f"YouTube Video {video_id}",
                duration=int(video.duration or 0),
            )

        except Exception as e:
            logger.warning(
                "video_metadata_unavailable",
                video_id=video_id,
                error_type=type(e).__name__,
            )
            return PlaylistVideo(
                video_id=video_id,
                title=fallback_title or f"YouTube Video {video_id}",
            )

    async def get_transcript(self, video_id: str) -> str:
        """Fetch the plain-text transcript of a video.

        Args:
            video_id: YouTube video ID.

        Returns:
            Transcript text (may be empty if the provider returned no text).

        Raises:
            TranscriptUnavailableError: If the video has no usable transcript.
            VideoUnavailableError: If the video is private, removed or missing.
            Exception: For any other API failure.
        """
        logger.info("fetching_transcript", video_id=video_id)

        try:
            response = self.client.youtube.transcript(video_id=video_id, text=True)

        except Exception as e:
            error_str = str(e).lower()
            if any(marker in error_str for marker in VIDEO_UNAVAILABLE_MARKERS):
                logger.warning("video_unavailable", video_id=video_id)
                raise VideoUnavailableError(video_id) from e
            if any(marker in error_str for marker in TRANSCRIPT_UNAVAILABLE_MARKERS):
                logger.warning("transcript_unavailable", video_id=video_id)
                raise TranscriptUnavailableError(video_id) from e

            logger.exception(
                "transcript_fetch_error",
                video_id=video_id,
                error_type=type(e).__name__,
            )
            raise

        content = response.content
        if not isinstance(content, str):
            # Segmented response
            content = " ".join(segment.text for segment in content)

        logger.info(
            "transcript_fetched",
            video_id=video_id,
            length=len(content),
            lang=getattr(response, "lang", None),
        )
        return content
