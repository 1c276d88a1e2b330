"""Project-wide constants shared by the upload service and the CLI client."""

MIB: int = 1024 * 1024

PART_SUFFIX: str = ".part_"

DEFAULT_CLIENT_CHUNK_SIZE_BYTES: int = 4 * MIB
DEFAULT_MAX_CHUNK_SIZE_BYTES: int = 20 * MIB  # per-chunk limit enforced by the server
DEFAULT_MAX_UPLOAD_SIZE_BYTES: int = 1000 * MIB
DEFAULT_MERGE_BLOCK_SIZE_BYTES: int = 5 * MIB

DEFAULT_CHUNK_RETRY_ATTEMPTS: int = 5
DEFAULT_CHUNK_RETRY_DELAY_SECONDS: float = 1.0

DEFAULT_SESSION_TTL_SECONDS: int = 86400

DEFAULT_SERVER_PORT: int = 3000

UPLOADS_URL_PREFIX: str = "/uploads"
API_PREFIX: str = "/api"

VIDEO_FIELD_NAME: str = "video"
OCTET_STREAM: str = "application/octet-stream"
DEFAULT_VIDEO_MIMETYPE: str = "video/mp4"

VIDEO_FILE_EXTENSIONS = (".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v", ".mpeg", ".mpg", ".wmv", ".flv")
