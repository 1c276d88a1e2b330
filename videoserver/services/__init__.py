"""Service layer for the upload pipeline."""

from videoserver.services.upload_service import UploadService

__all__ = [
    "UploadService",
]
