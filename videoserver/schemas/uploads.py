"""Pydantic schemas for upload endpoints.

Wire names are camelCase to match the course-authoring front end.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChunkAckResponse(WireModel):
    """Response for a non-final chunk."""
    message: str
    chunk: int
    total_chunks: int = Field(alias="totalChunks")


class FileDescriptor(WireModel):
    """Where a finished upload can be fetched from."""
    filename: str
    original_name: str = Field(alias="originalName")
    size: int
    mimetype: str
    base_url: str = Field(alias="baseURL")
    video_url: str = Field(alias="videoUrl")
    storage_mode: str = Field(alias="storageMode")
    using_fallback: bool = Field(alias="usingFallback")


class UploadCompleteResponse(WireModel):
    """Response for a final chunk or an explicit completion."""
    message: str
    file: FileDescriptor


class InitUploadRequest(WireModel):
    """Request model for opening an upload session."""
    original_name: str = Field(alias="originalname", min_length=1)
    total_chunks: int = Field(alias="totalChunks", ge=1)
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    size: Optional[int] = Field(default=None, ge=0)


class InitUploadResponse(WireModel):
    """Response model for an opened upload session."""
    upload_id: str = Field(alias="uploadId")
    object_name: str = Field(alias="objectName")
    total_chunks: int = Field(alias="totalChunks")
    max_chunk_size: int = Field(alias="maxChunkSize")
    expires_in: int = Field(alias="expiresIn")


class CompleteUploadRequest(WireModel):
    """Request model for finalizing already staged chunks."""
    original_name: Optional[str] = Field(default=None, alias="originalname")
    upload_id: Optional[str] = Field(default=None, alias="uploadId")
    total_chunks: int = Field(alias="totalChunks", ge=1)
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class CleanupRequest(WireModel):
    """Request model for discarding a partial upload."""
    filename: Optional[str] = None
    upload_id: Optional[str] = Field(default=None, alias="uploadId")


class CleanupResponse(WireModel):
    """Response model for cleanup."""
    message: str
    deleted_files: int = Field(alias="deletedFiles")
