"""Custom exception classes for the video upload service."""


class VideoUploadError(Exception):
    """
    Base exception class for all upload pipeline errors.
    """
    pass


class InvalidChunkError(VideoUploadError):
    """
    Raised when a chunk request is malformed: missing file field,
    unparsable or out-of-range chunk numbers, unusable file name.
    """
    pass


class UnsupportedMediaTypeError(VideoUploadError):
    """
    Raised when the chunk's declared content type is neither video/* nor
    application/octet-stream.
    """
    pass


class ChunkTooLargeError(VideoUploadError):
    """
    Raised when a single chunk exceeds the configured per-chunk limit.
    """
    pass


class UploadTooLargeError(VideoUploadError):
    """
    Raised when a whole upload exceeds the configured maximum size.
    """
    pass


class InvalidAPIKeyError(VideoUploadError):
    """
    Raised when the bearer credential is missing, malformed or unknown.
    """
    pass


class UploadSessionNotFoundError(VideoUploadError):
    """
    Raised when an upload id does not name a live upload session.
    """
    pass


class StagingError(VideoUploadError):
    """
    Raised when the staging directory cannot be listed or written.
    """
    pass


class ChunkProcessingError(VideoUploadError):
    """
    Raised when reassembly fails with a non-retryable I/O error.
    """
    pass


class MissingChunkError(ChunkProcessingError):
    """
    Raised when a chunk file required for reassembly does not exist.
    """

    def __init__(self, storage_key: str, chunk_index: int, total_chunks: int):
        self.storage_key = storage_key
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        super().__init__(
            f"Missing chunk {chunk_index} of {total_chunks} for '{storage_key}'"
        )


class ChunkLockedError(ChunkProcessingError):
    """
    Raised when a chunk file stays locked after every retry attempt.
    """

    def __init__(self, chunk_path: str, attempts: int):
        self.chunk_path = chunk_path
        self.attempts = attempts
        super().__init__(
            f"Chunk file {chunk_path} still busy after {attempts} attempts"
        )


class StoreUnavailableError(VideoUploadError):
    """
    Raised inside the publisher when the object store cannot be reached,
    times out or rejects the request. Never leaves the publisher.
    """
    pass
