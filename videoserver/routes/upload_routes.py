"""Chunked video upload API routes."""

from typing import Optional, Union

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status

from videoserver.auth import get_current_caller
from videoserver.exceptions import InvalidChunkError
from videoserver.schemas.uploads import (
    ChunkAckResponse,
    CleanupRequest,
    CleanupResponse,
    CompleteUploadRequest,
    FileDescriptor,
    InitUploadRequest,
    InitUploadResponse,
    UploadCompleteResponse,
)
from videoserver.service_locator import get_upload_service
from videoserver.services.upload_service import UploadService
from videoserver.types import CompletedUpload
from videoserver.utils import parse_int_field

router = APIRouter(prefix="/api", tags=["Uploads"])

CHUNK_STORED_MESSAGE = "Chunk uploaded successfully"
DURABLE_MESSAGE = "Video uploaded successfully to cloud storage."
FALLBACK_MESSAGE = "Video processed but cloud storage unavailable, using local storage."


def build_complete_response(completed: CompletedUpload) -> UploadCompleteResponse:
    """Turn a finalized upload into the File Descriptor response."""
    published = completed.published
    return UploadCompleteResponse(
        message=DURABLE_MESSAGE if published.durable else FALLBACK_MESSAGE,
        file=FileDescriptor(
            filename=completed.filename,
            original_name=completed.original_name,
            size=completed.size,
            mimetype=completed.mimetype,
            base_url=published.base_url,
            video_url=published.url,
            storage_mode="cloud" if published.durable else "local",
            using_fallback=not published.durable,
        ),
    )


@router.post("/upload", response_model=Union[UploadCompleteResponse, ChunkAckResponse], response_model_by_alias=True)
async def upload_chunk(
    request: Request,
    video: Optional[UploadFile] = File(None),
    chunk: Optional[str] = Form(None),
    totalChunks: Optional[str] = Form(None),
    originalname: Optional[str] = Form(None),
    mimeType: Optional[str] = Form(None),
    uploadId: Optional[str] = Form(None),
    caller: str = Depends(get_current_caller),
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Receive one chunk of a video.

    Parameters:
        - video: Chunk bytes (multipart/form-data, video/* or application/octet-stream)
        - chunk: 0-based chunk index (default 0)
        - totalChunks: Number of chunks (default 1)
        - originalname: Name of the whole file (defaults to the part's filename)
        - mimeType: Declared type of the whole video (optional)
        - uploadId: Session id from /api/upload/init (optional)

    Returns:
        - Non-final chunk: message, 1-based chunk number, totalChunks
        - Final chunk: message and the File Descriptor of the published video

    Raises:
        - 400: Missing file, wrong content type, bad chunk numbers, chunk too large
        - 401: Invalid API key
        - 404: Unknown upload session
        - 500: Chunk processing failed
    """
    if video is None:
        raise InvalidChunkError("No video file uploaded. Expected multipart field 'video'.")

    chunk_index = parse_int_field("chunk", chunk, 0)
    total_chunks = parse_int_field("totalChunks", totalChunks, 1)

    try:
        outcome = await upload_service.receive_chunk(
            source=video.file,
            content_type=video.content_type,
            filename=video.filename,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            original_name=originalname,
            caller=caller,
            request_base_url=str(request.base_url),
            mimetype=mimeType,
            upload_id=uploadId,
        )
    finally:
        await video.close()

    if outcome.completed is None:
        return ChunkAckResponse(
            message=CHUNK_STORED_MESSAGE,
            chunk=outcome.receipt.chunk_index + 1,
            total_chunks=outcome.receipt.total_chunks,
        )

    return build_complete_response(outcome.completed)


@router.post("/upload/init", response_model=InitUploadResponse, status_code=status.HTTP_201_CREATED)
async def init_upload(
    payload: InitUploadRequest,
    caller: str = Depends(get_current_caller),
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Open an upload session so chunks of this upload get a collision-free name.

    Returns:
        - uploadId: Id to send with every chunk
        - objectName: Name the published object will have
        - totalChunks, maxChunkSize, expiresIn

    Raises:
        - 400: Invalid name or declared size over the limit
        - 401: Invalid API key
    """
    session = upload_service.open_session(
        original_name=payload.original_name,
        total_chunks=payload.total_chunks,
        caller=caller,
        mimetype=payload.mime_type,
        size=payload.size,
    )
    return InitUploadResponse(
        upload_id=session.upload_id,
        object_name=session.storage_key,
        total_chunks=session.total_chunks,
        max_chunk_size=upload_service.max_chunk_size,
        expires_in=upload_service.sessions.ttl_seconds,
    )


@router.post("/upload/complete", response_model=UploadCompleteResponse)
async def complete_upload(
    payload: CompleteUploadRequest,
    request: Request,
    caller: str = Depends(get_current_caller),
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Reassemble and publish chunks that are already staged.

    Raises:
        - 400: Neither originalname nor uploadId given
        - 404: Unknown upload session
        - 500: Missing chunk or chunk processing failed
    """
    if not payload.original_name and not payload.upload_id:
        raise InvalidChunkError("Either 'originalname' or 'uploadId' is required")

    completed = await upload_service.complete(
        total_chunks=payload.total_chunks,
        caller=caller,
        request_base_url=str(request.base_url),
        original_name=payload.original_name,
        upload_id=payload.upload_id,
        mimetype=payload.mime_type,
    )
    return build_complete_response(completed)


@router.post("/upload/cleanup", response_model=CleanupResponse)
async def cleanup_upload(
    payload: CleanupRequest,
    caller: str = Depends(get_current_caller),
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Delete the staged chunks and partial output of an abandoned upload.

    Returns:
        - message, deletedFiles
    """
    if not payload.filename and not payload.upload_id:
        raise InvalidChunkError("Either 'filename' or 'uploadId' is required")

    deleted = await upload_service.cleanup(
        caller=caller,
        filename=payload.filename,
        upload_id=payload.upload_id,
    )
    return CleanupResponse(message="Cleanup complete", deleted_files=deleted)
