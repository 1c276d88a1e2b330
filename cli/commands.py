"""Command handler functions for CLI operations."""

from pathlib import Path
from typing import Optional

from common.logging_config import get_logger
from cli.config import Config
from cli.models import CleanupCommand, HealthCommand, UploadCommand
from cli.upload_client import VideoUploadClient

logger = get_logger(__name__)


_client: Optional[VideoUploadClient] = None


def get_client() -> VideoUploadClient:
    """
    Get or create global VideoUploadClient instance.

    Returns:
        VideoUploadClient instance
    """
    global _client
    if _client is None:
        logger.debug("Creating new VideoUploadClient instance")
        config = Config(Path.home() / '.lmsvideo' / 'config.json')
        _client = VideoUploadClient(config)
    return _client


def handle_upload(cmd: UploadCommand, client: Optional[VideoUploadClient] = None) -> str:
    """
    Handle 'upload' command.

    Args:
        cmd: UploadCommand with file_path and optional chunk size
        client: Optional VideoUploadClient for dependency injection (testing)

    Returns:
        Success or error message
    """
    logger.info(f"Executing upload command: file={cmd.file_path} chunk_size_mib={cmd.chunk_size_mib}")
    if client is None:
        client = get_client()
    result = client.upload(cmd.file_path, cmd.chunk_size_mib)
    logger.debug("Upload command completed")
    return result


def handle_cleanup(cmd: CleanupCommand, client: Optional[VideoUploadClient] = None) -> str:
    """
    Handle 'cleanup' command.

    Args:
        cmd: CleanupCommand with filename
        client: Optional VideoUploadClient for dependency injection (testing)

    Returns:
        Success or error message
    """
    if client is None:
        client = get_client()
    return client.cleanup(cmd.filename)


def handle_health(cmd: HealthCommand, client: Optional[VideoUploadClient] = None) -> str:
    """Handle 'health' command."""
    if client is None:
        client = get_client()
    return client.health()
