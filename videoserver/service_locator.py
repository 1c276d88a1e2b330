"""Service locator for the upload pipeline components."""

from typing import Optional

from videoserver.publisher import StoragePublisher
from videoserver.services.upload_service import UploadService

_upload_service: Optional[UploadService] = None


def set_upload_service(service: Optional[UploadService]):
    """Set global upload service instance"""
    global _upload_service
    _upload_service = service


def get_upload_service() -> UploadService:
    """
    Get global upload service instance.

    Raises:
        RuntimeError: If the service has not been configured
    """
    if _upload_service is None:
        raise RuntimeError("Upload service not configured")
    return _upload_service


def get_publisher() -> Optional[StoragePublisher]:
    """Get the publisher of the configured upload service, if any"""
    return _upload_service.publisher if _upload_service else None
