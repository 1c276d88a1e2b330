"""Configuration settings for the video upload service."""

import os
from pathlib import Path

from common.constants import (
    DEFAULT_CHUNK_RETRY_ATTEMPTS,
    DEFAULT_CHUNK_RETRY_DELAY_SECONDS,
    DEFAULT_MAX_CHUNK_SIZE_BYTES,
    DEFAULT_MAX_UPLOAD_SIZE_BYTES,
    DEFAULT_MERGE_BLOCK_SIZE_BYTES,
    DEFAULT_SERVER_PORT,
    DEFAULT_SESSION_TTL_SECONDS,
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


VIDEO_HOST = os.environ.get("VIDEO_HOST", "0.0.0.0")

VIDEO_PORT = int(os.environ.get("VIDEO_PORT", str(DEFAULT_SERVER_PORT)))

STAGING_ROOT = Path(os.environ.get("VIDEO_STAGING_ROOT", os.getcwd()))

UPLOADS_DIR = Path(os.environ.get("VIDEO_UPLOADS_DIR", str(STAGING_ROOT / "uploads")))

CHUNKS_DIR = Path(os.environ.get("VIDEO_CHUNKS_DIR", str(STAGING_ROOT / "chunks")))

MAX_CHUNK_SIZE = int(os.environ.get("VIDEO_MAX_CHUNK_SIZE", str(DEFAULT_MAX_CHUNK_SIZE_BYTES)))

MAX_UPLOAD_SIZE = int(os.environ.get("VIDEO_MAX_UPLOAD_SIZE", str(DEFAULT_MAX_UPLOAD_SIZE_BYTES)))

MERGE_BLOCK_SIZE = int(os.environ.get("VIDEO_MERGE_BLOCK_SIZE", str(DEFAULT_MERGE_BLOCK_SIZE_BYTES)))

CHUNK_RETRY_ATTEMPTS = int(os.environ.get("VIDEO_CHUNK_RETRY_ATTEMPTS", str(DEFAULT_CHUNK_RETRY_ATTEMPTS)))

CHUNK_RETRY_DELAY = float(os.environ.get("VIDEO_CHUNK_RETRY_DELAY", str(DEFAULT_CHUNK_RETRY_DELAY_SECONDS)))

SESSION_TTL = int(os.environ.get("VIDEO_SESSION_TTL", str(DEFAULT_SESSION_TTL_SECONDS)))

# bcrypt hashes of accepted bearer keys; empty means anonymous uploads
API_KEY_HASHES = _env_list("VIDEO_API_KEY_HASHES")

# Overrides the request base URL when building fallback links
PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "")

CORS_ALLOW_ORIGINS = _env_list("CORS_ALLOW_ORIGINS") or ["*"]

STORE_ENDPOINT = os.environ.get("STORE_ENDPOINT", "")

STORE_PORT = int(os.environ.get("STORE_PORT", "0")) or None

STORE_SECURE = _env_bool("STORE_SECURE", True)

STORE_ACCESS_KEY = os.environ.get("STORE_ACCESS_KEY", "")

STORE_SECRET_KEY = os.environ.get("STORE_SECRET_KEY", "")

STORE_BUCKET = os.environ.get("STORE_BUCKET", "video-bucket")

STORE_REGION = os.environ.get("STORE_REGION") or None

STORE_PUBLIC_URL = os.environ.get("STORE_PUBLIC_URL", "")

STORE_PUBLIC_READ = _env_bool("STORE_PUBLIC_READ", True)

STORE_PROBE_TIMEOUT = float(os.environ.get("STORE_PROBE_TIMEOUT", "10"))

STORE_UPLOAD_TIMEOUT = float(os.environ.get("STORE_UPLOAD_TIMEOUT", "300"))

STORE_UPLOAD_TIMEOUT_PER_MB = float(os.environ.get("STORE_UPLOAD_TIMEOUT_PER_MB", "1"))

STORE_RECHECK_INTERVAL = float(os.environ.get("STORE_RECHECK_INTERVAL", "30"))
