"""FastAPI application for the coach knowledge base ingestion service.

Provides document upload and YouTube transcript ingestion endpoints with JWT
authentication, plus duplicate pre-flight checks and document management.
"""

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Security, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from httpx import AsyncClient
from pydantic import BaseModel, TypeAdapter, ValidationError

from src.rag_ingestion.config import get_config
from src.rag_ingestion.exceptions import (
    IngestionException,
    IngestionValidationError,
    PersistenceError,
    SourceNotFoundError,
)
from src.rag_ingestion.pipeline import IngestionPipeline
from src.rag_ingestion.schemas import (
    AccessUpdateRequest,
    CheckDuplicateRequest,
    CoachAccess,
    DuplicateResult,
    SourceType,
    YouTubeProcessRequest,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Check if we're in production
is_production = os.getenv("ENVIRONMENT") == "production"

if not is_production:
    # Development: prioritize .env file
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path, override=True)
else:
    # Production: use cloud platform env vars only
    load_dotenv()

# Global clients initialized in lifespan
pipeline: IngestionPipeline | None = None
http_client: AsyncClient | None = None

coach_access_adapter = TypeAdapter(list[CoachAccess])


# ==============================================================================
# Lifespan Management
# ==============================================================================


async def lifespan(app: FastAPI):  # type: ignore[misc]
    """Lifecycle manager for the FastAPI application.

    Handles initialization and cleanup of resources.
    """
    global pipeline, http_client

    logger.info("application_startup_started")

    try:
        pipeline = IngestionPipeline(get_config())
        http_client = AsyncClient()

        logger.info(
            "application_startup_completed",
            clients=["supabase", "embedding", "supadata", "http"],
        )

    except Exception:
        logger.exception("application_startup_failed")
        raise

    yield  # Application runs here

    logger.info("application_shutdown_started")

    if http_client:
        await http_client.aclose()

    logger.info("application_shutdown_completed")


# ==============================================================================
# FastAPI Application Setup
# ==============================================================================

app = FastAPI(
    title="Coach Knowledge Base Ingestion API",
    description="Document and YouTube transcript ingestion for coach RAG retrieval",
    version="1.0.0",
    lifespan=lifespan,
)

security = HTTPBearer()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# Error Mapping
# ==============================================================================


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@app.exception_handler(IngestionValidationError)
async def validation_error_handler(request: Request, exc: IngestionValidationError):
    logger.info("request_rejected", path=request.url.path, error=exc.message)
    return error_response(400, exc.message)


@app.exception_handler(SourceNotFoundError)
async def not_found_handler(request: Request, exc: SourceNotFoundError):
    return error_response(404, str(exc))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(
        "request_persistence_failed",
        path=request.url.path,
        source_id=exc.source_id,
        error=exc.message,
    )
    return error_response(500, exc.message, sourceId=exc.source_id)


@app.exception_handler(IngestionException)
async def ingestion_error_handler(request: Request, exc: IngestionException):
    logger.exception("request_failed", path=request.url.path)
    return error_response(500, str(exc))


def respond(result: BaseModel) -> JSONResponse:
    """Serialize a pipeline result; duplicates become 409 conflicts."""
    status_code = 409 if isinstance(result, DuplicateResult) else 200
    return JSONResponse(status_code=status_code, content=result.to_payload())


# ==============================================================================
# Dependencies
# ==============================================================================


def get_pipeline() -> IngestionPipeline:
    if pipeline is None:
        logger.error("pipeline_unavailable", reason="pipeline_not_initialized")
        raise HTTPException(status_code=500, detail="Pipeline not initialized")
    return pipeline


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> dict[str, Any]:
    """Verify the JWT token from Supabase and return the user information.

    Args:
        credentials: The HTTP Authorization credentials containing the bearer token.

    Returns:
        User information from Supabase.

    Raises:
        HTTPException: If the token is invalid or the user cannot be verified.
    """
    logger.info("auth_verification_started")

    try:
        token = credentials.credentials

        global http_client  # noqa: PLW0602
        if not http_client:
            logger.error("auth_verification_failed", reason="http_client_not_initialized")
            raise HTTPException(status_code=500, detail="HTTP client not initialized")

        supabase_url = os.getenv("SUPABASE_URL")
        supabase_key = os.getenv("SUPABASE_SERVICE_KEY")

        response = await http_client.get(
            f"{supabase_url}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": supabase_key},
        )

        if response.status_code != 200:
            logger.warning(
                "auth_verification_failed",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise HTTPException(status_code=401, detail="Invalid authentication token")

        user_data = response.json()

        logger.info("auth_verification_completed", user_id=user_data.get("id"))

        return user_data

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("auth_verification_error")
        raise HTTPException(status_code=401, detail=f"Authentication error: {str(e)}")


def parse_coach_access(raw: str) -> list[CoachAccess]:
    """Parse the JSON-encoded ``coachAccess`` form field."""
    try:
        return coach_access_adapter.validate_python(json.loads(raw or "[]"))
    except (json.JSONDecodeError, ValidationError) as e:
        raise IngestionValidationError(f"Invalid coachAccess: {e}") from e


# ==============================================================================
# API Endpoints
# ==============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns:
        Health status and timestamp.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "pipeline": pipeline is not None,
            "http_client": http_client is not None,
        },
    }


@app.post("/rag/upload")
async def upload_document(
    file: UploadFile | None = File(None),
    coach_access: str = Form("[]", alias="coachAccess"),
    source_type: SourceType = Form(SourceType.DOCUMENT, alias="sourceType"),
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Ingest an uploaded text document for the selected coaches.

    Returns 200 with the upload result, or 409 if the same file was already
    ingested and still has active chunks.
    """
    if file is None:
        raise IngestionValidationError("No file provided")

    coaches = parse_coach_access(coach_access)
    content = await file.read()

    logger.info(
        "upload_request_started",
        user_id=user.get("id"),
        file_name=file.filename,
        coaches=[c.coach_id for c in coaches],
    )

    result = await pipeline.ingest_file(
        content,
        file.filename,
        coaches,
        mime_type=file.content_type,
        source_type=source_type,
    )
    return respond(result)


@app.post("/youtube/process")
async def process_youtube(
    request: YouTubeProcessRequest,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Ingest a single YouTube video or a whole playlist."""
    logger.info(
        "youtube_request_started",
        user_id=user.get("id"),
        playlist_id=request.playlist_id,
        video_id=request.video_id,
    )
    return respond(await pipeline.process_youtube(request))


@app.get("/youtube/process")
async def youtube_status(
    video_id: str | None = Query(None, alias="videoId"),
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Report whether a video has been ingested."""
    if not video_id:
        raise IngestionValidationError("videoId is required")
    return respond(await pipeline.get_video_status(video_id))


@app.get("/youtube/playlist")
async def playlist_preview(
    playlist_id: str | None = Query(None, alias="playlistId"),
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """List a playlist's videos without fetching any transcript."""
    if not playlist_id:
        raise IngestionValidationError("playlistId is required")

    videos = await pipeline.youtube_service.get_playlist_videos(playlist_id)
    return {
        "success": True,
        "playlistId": playlist_id,
        "videos": [
            {**video.to_payload(), "displayDuration": video.display_duration}
            for video in videos
        ],
    }


@app.post("/rag/check-duplicate")
async def check_duplicate(
    request: CheckDuplicateRequest,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Pre-flight duplicate check for a file hash or URL."""
    return respond(await pipeline.check_duplicate(request))


@app.get("/rag/documents")
async def list_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None),
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    return respond(await pipeline.list_documents(page, limit, search))


class SoftDeleteRequest(BaseModel):
    sourceId: str


@app.delete("/rag/documents")
async def soft_delete_document(
    request: SoftDeleteRequest,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Deactivate a source's chunks so the content can be ingested again."""
    deactivated = await pipeline.soft_delete_source(request.sourceId)
    logger.info(
        "source_soft_deleted",
        user_id=user.get("id"),
        source_id=request.sourceId,
        chunks_deactivated=deactivated,
    )
    return {"success": True, "sourceId": request.sourceId, "chunksDeactivated": deactivated}


@app.delete("/rag/documents/{source_id}/hard-delete")
async def hard_delete_document(
    source_id: str,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    return respond(await pipeline.hard_delete_source(source_id))


@app.get("/rag/documents/{source_id}/access")
async def get_document_access(
    source_id: str,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    coach_access = await pipeline.get_source_access(source_id)
    return {
        "success": True,
        "sourceId": source_id,
        "coachAccess": [access.to_payload() for access in coach_access],
    }


@app.put("/rag/documents/{source_id}/access")
async def update_document_access(
    source_id: str,
    request: AccessUpdateRequest,
    user: dict[str, Any] = Depends(verify_token),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Replace every coach grant on all of a source's chunks, active or not."""
    results = await pipeline.update_source_access(source_id, request.coach_access)
    return {
        "success": all(result.success for result in results),
        "sourceId": source_id,
        "results": [result.to_payload() for result in results],
    }
