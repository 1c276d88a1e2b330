"""Utility helper functions for the upload service."""

import re
import time
import uuid
from typing import Optional

from common.constants import OCTET_STREAM
from videoserver.exceptions import InvalidChunkError

_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9._-]')
_WHITESPACE = re.compile(r'\s+')


def generate_upload_id() -> str:
    """
    Generate a new upload session id.

    Returns:
        uuid4 hex string (32 characters, no dashes)
    """
    return uuid.uuid4().hex


def monotonic_time() -> float:
    """Seconds from a monotonic clock."""
    return time.monotonic()


def normalize_filename(original_name: Optional[str]) -> str:
    """
    Turn a client supplied file name into a storage key component.

    Characters outside [A-Za-z0-9._-] become '_', then whitespace is stripped.
    All chunks of one file normalize to the same name, which makes this the
    join key for reassembly.

    Args:
        original_name: File name as sent by the client

    Returns:
        Normalized name

    Raises:
        InvalidChunkError: If nothing usable remains
    """
    if not original_name:
        raise InvalidChunkError("Missing 'originalname' field.")

    normalized = _WHITESPACE.sub('', _UNSAFE_CHARS.sub('_', original_name))
    if normalized in ('', '.', '..'):
        raise InvalidChunkError(f"Invalid file name: '{original_name}'")
    return normalized


def session_storage_key(upload_id: str, normalized_name: str) -> str:
    """Storage key for uploads that belong to a session."""
    return f"{upload_id}_{normalized_name}"


def parse_int_field(name: str, raw: Optional[str], default: int) -> int:
    """
    Parse a string-encoded integer form field.

    Raises:
        InvalidChunkError: If the value is not an integer
    """
    if raw is None or str(raw).strip() == '':
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise InvalidChunkError(f"Field '{name}' must be an integer, got '{raw}'")


def validate_chunk_numbers(chunk_index: int, total_chunks: int) -> None:
    """
    Raises:
        InvalidChunkError: Unless 0 <= chunk_index < total_chunks
    """
    if total_chunks < 1:
        raise InvalidChunkError(f"'totalChunks' must be at least 1, got {total_chunks}")
    if chunk_index < 0 or chunk_index >= total_chunks:
        raise InvalidChunkError(
            f"'chunk' must be between 0 and {total_chunks - 1}, got {chunk_index}"
        )


def is_allowed_chunk_type(content_type: Optional[str]) -> bool:
    """True for video/* and the generic octet-stream type."""
    if not content_type:
        return False
    media_type = content_type.split(';', 1)[0].strip().lower()
    return media_type.startswith('video/') or media_type == OCTET_STREAM
