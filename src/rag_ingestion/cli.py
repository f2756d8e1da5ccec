"""Command-line interface for running the ingestion pipeline."""

import argparse
import asyncio
import mimetypes
from pathlib import Path

from src.utils.logging import get_logger

from .config import get_config
from .exceptions import IngestionException
from .pipeline import IngestionPipeline
from .schemas import (
    KNOWN_COACH_IDS,
    AccessTier,
    CoachAccess,
    DuplicateResult,
    YouTubeProcessRequest,
)

logger = get_logger(__name__)


def parse_coach(value: str) -> CoachAccess:
    """Parse a ``coach[:tier]`` argument."""
    coach_id, _, tier = value.partition(":")
    try:
        return CoachAccess(coach_id=coach_id, access_tier=AccessTier(tier or "pro"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid coach access '{value}': {e}") from e


def build_parser() -> argparse.ArgumentParser:
    coach_help = (
        "Coach to grant access to, as COACH_ID[:TIER] (repeatable). "
        f"Known coaches: {', '.join(KNOWN_COACH_IDS)}"
    )
    parser = argparse.ArgumentParser(
        description="Coach RAG ingestion - index documents and YouTube transcripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload a document for two coaches
  python -m src.rag_ingestion.cli upload notes.md --coach keto --coach paleo:free

  # Process a whole playlist
  python -m src.rag_ingestion.cli youtube --playlist-id PLxxxxxxxx --coach lion

  # Process a single video from its URL
  python -m src.rag_ingestion.cli youtube --url "https://youtu.be/xxxxxxxxxxx" --coach keto

  # Check whether a video was already ingested
  python -m src.rag_ingestion.cli status xxxxxxxxxxx
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Ingest a text document")
    upload.add_argument("path", type=Path, help="Path of the file to ingest")
    upload.add_argument(
        "--coach",
        dest="coaches",
        type=parse_coach,
        action="append",
        required=True,
        help=coach_help,
    )

    youtube = subparsers.add_parser("youtube", help="Ingest YouTube transcripts")
    target = youtube.add_mutually_exclusive_group(required=True)
    target.add_argument("--url", type=str, help="Video or playlist URL")
    target.add_argument("--video-id", type=str, help="YouTube video ID")
    target.add_argument("--playlist-id", type=str, help="YouTube playlist ID")
    youtube.add_argument(
        "--coach",
        dest="coaches",
        type=parse_coach,
        action="append",
        required=True,
        help=coach_help,
    )

    status = subparsers.add_parser("status", help="Show ingestion status of a video")
    status.add_argument("video_id", type=str, help="YouTube video ID")

    return parser


def print_duplicate(result: DuplicateResult) -> None:
    existing = result.existing_document
    print(f"\n⚠️  {result.message}")
    print(f"  Source ID: {existing.id}")
    print(f"  Active chunks: {existing.chunk_count}")


async def run_upload(pipeline: IngestionPipeline, args: argparse.Namespace) -> None:
    content = args.path.read_bytes()
    mime_type, _ = mimetypes.guess_type(args.path.name)

    result = await pipeline.ingest_file(
        content,
        args.path.name,
        args.coaches,
        mime_type=mime_type or "text/plain",
    )
    if isinstance(result, DuplicateResult):
        print_duplicate(result)
        return

    source = result.source
    print("\n" + "=" * 60)
    print("Upload Results")
    print("=" * 60)
    print(f"Source ID: {source.id}")
    print(f"Status: {source.process_status.value}")
    print(f"Chunks created: {source.chunks_created}/{source.total_chunks}")
    if source.errors:
        print("\nChunks that failed to embed:")
        for error in source.errors:
            print(f"  ❌ Chunk {error.chunk_index}: {error.error}")
    print("=" * 60 + "\n")


async def run_youtube(pipeline: IngestionPipeline, args: argparse.Namespace) -> None:
    request = YouTubeProcessRequest(
        url=args.url,
        video_id=args.video_id,
        playlist_id=args.playlist_id,
        coach_access=args.coaches,
    )
    result = await pipeline.process_youtube(request)
    if isinstance(result, DuplicateResult):
        print_duplicate(result)
        return

    print("\n" + "=" * 60)
    print("YouTube Results")
    print("=" * 60)
    for video in result.results:
        if video.success:
            print(
                f"  ✅ {video.title} ({video.video_id}): "
                f"{video.chunks_created}/{video.total_chunks} chunks"
            )
        elif video.is_duplicate:
            print(f"  ⏭️  {video.title} ({video.video_id}): {video.error}")
        else:
            print(f"  ❌ {video.title} ({video.video_id}): {video.error}")

    print(f"\n{result.message}")
    print("=" * 60 + "\n")


async def run_status(pipeline: IngestionPipeline, args: argparse.Namespace) -> None:
    status = await pipeline.get_video_status(args.video_id)
    if not status.exists or status.document is None:
        print(f"\nVideo {args.video_id} has not been ingested\n")
        return

    document = status.document
    print(f"\nVideo {args.video_id}: {document.title}")
    print(f"  Source ID: {document.id}")
    print(f"  Active chunks: {document.chunk_count}")
    print(f"  Searchable: {'yes' if document.has_active_chunks else 'no'}\n")


COMMANDS = {
    "upload": run_upload,
    "youtube": run_youtube,
    "status": run_status,
}


async def main() -> None:
    """CLI entry point for the ingestion pipeline."""
    args = build_parser().parse_args()

    config = get_config()
    logger.info("cli_started", command=args.command)

    pipeline = IngestionPipeline(config)

    try:
        await COMMANDS[args.command](pipeline, args)
    except IngestionException as e:
        logger.exception("cli_command_failed", error_type=type(e).__name__)
        print(f"\n❌ {args.command} failed: {str(e)}")
        raise SystemExit(1) from e

    logger.info("cli_completed", command=args.command)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
