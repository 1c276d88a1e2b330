"""Entry point for the video upload service."""

import sys
import time
import uuid
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from common.constants import UPLOADS_URL_PREFIX
from common.logging_config import setup_logging
from videoserver import config
from videoserver.exceptions import (
    ChunkLockedError,
    ChunkProcessingError,
    ChunkTooLargeError,
    InvalidAPIKeyError,
    InvalidChunkError,
    MissingChunkError,
    StagingError,
    UnsupportedMediaTypeError,
    UploadSessionNotFoundError,
    UploadTooLargeError,
    VideoUploadError,
)
from videoserver.object_store import MinioObjectStore, ObjectStore
from videoserver.publisher import StoragePublisher
from videoserver.reassembler import ChunkReassembler
from videoserver.routes import upload_router
from videoserver.service_locator import get_publisher, get_upload_service, set_upload_service
from videoserver.services.upload_service import UploadService
from videoserver.sessions import UploadSessionRegistry
from videoserver.staging import StagingArea
from videoserver.store_health import StoreHealth
from videoserver.schemas.common import HealthResponse

logger = setup_logging('videoserver')

GENERIC_ERROR_MESSAGE = "An error occurred while uploading the video chunk."

app = FastAPI(
    title="LMS Video Upload Service",
    description="Chunked video upload, reassembly and object storage publishing",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_object_store() -> Optional[ObjectStore]:
    """
    Create the object store client from configuration.

    Returns:
        MinioObjectStore, or None when STORE_ENDPOINT is not set
    """
    if not config.STORE_ENDPOINT:
        logger.warning("STORE_ENDPOINT not set, uploads will be served from local storage")
        return None

    return MinioObjectStore(
        endpoint=config.STORE_ENDPOINT,
        access_key=config.STORE_ACCESS_KEY,
        secret_key=config.STORE_SECRET_KEY,
        port=config.STORE_PORT,
        secure=config.STORE_SECURE,
        region=config.STORE_REGION,
        public_url=config.STORE_PUBLIC_URL,
        connect_timeout=config.STORE_PROBE_TIMEOUT,
        read_timeout=config.STORE_UPLOAD_TIMEOUT,
    )


def build_upload_service(
    uploads_dir: Path,
    chunks_dir: Path,
    store: Optional[ObjectStore],
    bucket: str = config.STORE_BUCKET,
    public_base_url: str = config.PUBLIC_BASE_URL,
    retry_delay: float = config.CHUNK_RETRY_DELAY,
) -> UploadService:
    """
    Wire staging, reassembler, publisher and sessions into an UploadService.

    Settings not passed explicitly come from videoserver.config.
    """
    staging = StagingArea(uploads_dir, chunks_dir)
    reassembler = ChunkReassembler(
        staging,
        retry_attempts=config.CHUNK_RETRY_ATTEMPTS,
        retry_delay=retry_delay,
        block_size=config.MERGE_BLOCK_SIZE,
    )
    publisher = StoragePublisher(
        staging,
        store,
        bucket,
        health=StoreHealth(recheck_interval=config.STORE_RECHECK_INTERVAL),
        probe_timeout=config.STORE_PROBE_TIMEOUT,
        upload_timeout=config.STORE_UPLOAD_TIMEOUT,
        upload_timeout_per_mb=config.STORE_UPLOAD_TIMEOUT_PER_MB,
        public_read=config.STORE_PUBLIC_READ,
        public_base_url=public_base_url,
    )
    return UploadService(
        staging=staging,
        reassembler=reassembler,
        publisher=publisher,
        sessions=UploadSessionRegistry(config.SESSION_TTL),
        max_chunk_size=config.MAX_CHUNK_SIZE,
        max_upload_size=config.MAX_UPLOAD_SIZE,
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Prepare the staging area and wire the upload pipeline.
    """
    logger.info("Video upload service starting up...")

    upload_service = build_upload_service(config.UPLOADS_DIR, config.CHUNKS_DIR, build_object_store())

    try:
        upload_service.staging.ensure_directories()
    except OSError as e:
        logger.critical(f"Cannot create staging directories: {e}")
        sys.exit(1)

    upload_service.staging.clear()
    set_upload_service(upload_service)

    logger.info(
        f"Staging ready: uploads={config.UPLOADS_DIR} chunks={config.CHUNKS_DIR} "
        f"bucket={config.STORE_BUCKET}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Video upload service shutting down...")
    publisher = get_publisher()
    if publisher:
        await publisher.close()
    set_upload_service(None)


def error_response(request: Request, exc: Exception, status_code: int, code: str, message: Optional[str] = None):
    request_id = getattr(request.state, 'request_id', 'unknown')
    if status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=exc
        )
    else:
        logger.warning(
            f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
        )
    return JSONResponse(
        status_code=status_code,
        content={"error": message or str(exc), "code": code}
    )


@app.exception_handler(InvalidChunkError)
async def invalid_chunk_handler(request: Request, exc: InvalidChunkError):
    return error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_CHUNK")


@app.exception_handler(UnsupportedMediaTypeError)
async def unsupported_media_type_handler(request: Request, exc: UnsupportedMediaTypeError):
    return error_response(request, exc, status.HTTP_400_BAD_REQUEST, "UNSUPPORTED_MEDIA_TYPE")


@app.exception_handler(ChunkTooLargeError)
async def chunk_too_large_handler(request: Request, exc: ChunkTooLargeError):
    return error_response(request, exc, status.HTTP_400_BAD_REQUEST, "CHUNK_TOO_LARGE")


@app.exception_handler(UploadTooLargeError)
async def upload_too_large_handler(request: Request, exc: UploadTooLargeError):
    return error_response(request, exc, status.HTTP_400_BAD_REQUEST, "UPLOAD_TOO_LARGE")


@app.exception_handler(InvalidAPIKeyError)
async def invalid_api_key_handler(request: Request, exc: InvalidAPIKeyError):
    return error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY")


@app.exception_handler(UploadSessionNotFoundError)
async def session_not_found_handler(request: Request, exc: UploadSessionNotFoundError):
    return error_response(request, exc, status.HTTP_404_NOT_FOUND, "UPLOAD_SESSION_NOT_FOUND")


@app.exception_handler(MissingChunkError)
async def missing_chunk_handler(request: Request, exc: MissingChunkError):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "MISSING_CHUNK",
        message=f"Chunk processing failed: {exc}"
    )


@app.exception_handler(ChunkLockedError)
async def chunk_locked_handler(request: Request, exc: ChunkLockedError):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "CHUNK_LOCKED",
        message=f"Chunk processing failed: a chunk file stayed locked after {exc.attempts} attempts"
    )


@app.exception_handler(ChunkProcessingError)
async def chunk_processing_handler(request: Request, exc: ChunkProcessingError):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "CHUNK_PROCESSING_FAILED",
        message="Chunk processing failed"
    )


@app.exception_handler(StagingError)
async def staging_error_handler(request: Request, exc: StagingError):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "STAGING_ERROR",
        message=GENERIC_ERROR_MESSAGE
    )


@app.exception_handler(VideoUploadError)
async def video_upload_error_handler(request: Request, exc: VideoUploadError):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR",
        message=GENERIC_ERROR_MESSAGE
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    return error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR",
        message=GENERIC_ERROR_MESSAGE
    )


app.include_router(upload_router)


@app.get(UPLOADS_URL_PREFIX + "/{name}")
async def serve_local_upload(name: str):
    """
    Serve a reassembled video kept in local storage (fallback links).
    """
    upload_service = get_upload_service()
    path = upload_service.staging.output_path(name)
    if Path(name).name != name or name in ('.', '..') or not path.is_file():
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": f"File '{name}' not found", "code": "FILE_NOT_FOUND"}
        )
    return FileResponse(path)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "LMS Video Upload Service API", "status": "running"}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Liveness check. Also reports the last known object store state.
    """
    publisher = get_publisher()
    store_state = publisher.store_state.value if publisher else "unknown"
    return HealthResponse(status="healthy", service="videoserver", object_store=store_state)


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "videoserver.main:app",
        host=config.VIDEO_HOST,
        port=config.VIDEO_PORT,
    )


if __name__ == "__main__":
    main()
