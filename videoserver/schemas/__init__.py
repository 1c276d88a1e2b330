"""Pydantic schemas for API requests and responses."""

from videoserver.schemas.uploads import (
    ChunkAckResponse,
    FileDescriptor,
    UploadCompleteResponse,
    InitUploadRequest,
    InitUploadResponse,
    CompleteUploadRequest,
    CleanupRequest,
    CleanupResponse,
)
from videoserver.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    "ChunkAckResponse",
    "FileDescriptor",
    "UploadCompleteResponse",
    "InitUploadRequest",
    "InitUploadResponse",
    "CompleteUploadRequest",
    "CleanupRequest",
    "CleanupResponse",
    "ErrorResponse",
    "HealthResponse",
]
