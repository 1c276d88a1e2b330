"""Upload pipeline data type definitions."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ChunkReceipt:
    """
    A chunk that has been written to the staging area.
    """
    storage_key: str
    chunk_index: int
    total_chunks: int
    size: int

    @property
    def is_final(self) -> bool:
        return self.chunk_index == self.total_chunks - 1


@dataclass(frozen=True)
class ReassembledFile:
    """
    Concatenation of every chunk of one upload, on local disk.
    """
    storage_key: str
    path: Path
    size: int


@dataclass(frozen=True)
class PublishResult:
    """
    Where a reassembled file ended up.

    durable is True when the object store holds the content and the local
    copy was removed; False when the local file is the served artifact.
    """
    object_name: str
    base_url: str
    url: str
    durable: bool


@dataclass(frozen=True)
class CompletedUpload:
    """
    Outcome of a finalized upload, the source of the File Descriptor.
    """
    filename: str
    original_name: str
    size: int
    mimetype: str
    published: PublishResult


@dataclass(frozen=True)
class ChunkOutcome:
    """
    Result of receiving one chunk; completed is set for the final chunk.
    """
    receipt: ChunkReceipt
    completed: Optional[CompletedUpload] = None


@dataclass(frozen=True)
class UploadSession:
    """
    Server side record of an upload opened with /api/upload/init.
    """
    upload_id: str
    original_name: str
    storage_key: str
    total_chunks: int
    mimetype: Optional[str]
    declared_size: Optional[int]
    caller: str
    expires_at: float
