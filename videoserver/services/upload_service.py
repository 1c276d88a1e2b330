"""Upload service: chunk receipt, finalization and cleanup."""

import asyncio
import mimetypes
from contextlib import asynccontextmanager
from typing import BinaryIO, Dict, Optional, Set, Tuple

from common.constants import DEFAULT_VIDEO_MIMETYPE, OCTET_STREAM
from common.logging_config import get_logger
from videoserver.exceptions import (
    InvalidChunkError,
    UnsupportedMediaTypeError,
    UploadSessionNotFoundError,
    UploadTooLargeError,
)
from videoserver.publisher import StoragePublisher
from videoserver.reassembler import ChunkReassembler
from videoserver.sessions import UploadSessionRegistry
from videoserver.staging import StagingArea
from videoserver.types import ChunkOutcome, ChunkReceipt, CompletedUpload, UploadSession
from videoserver.utils import is_allowed_chunk_type, normalize_filename, validate_chunk_numbers

logger = get_logger(__name__)


def resolve_mimetype(declared: Optional[str], chunk_content_type: Optional[str], original_name: str) -> str:
    """
    Mimetype recorded for the whole video.

    The client's declaration wins; otherwise the chunk's own video/* type,
    then a guess from the file name.
    """
    if declared:
        return declared
    if chunk_content_type and chunk_content_type.split(';', 1)[0].strip().lower() != OCTET_STREAM:
        return chunk_content_type
    guessed, _ = mimetypes.guess_type(original_name)
    if guessed and guessed.startswith('video/'):
        return guessed
    return DEFAULT_VIDEO_MIMETYPE


class UploadService:
    def __init__(
        self,
        staging: StagingArea,
        reassembler: ChunkReassembler,
        publisher: StoragePublisher,
        sessions: UploadSessionRegistry,
        max_chunk_size: int,
        max_upload_size: int,
    ):
        self.staging = staging
        self.reassembler = reassembler
        self.publisher = publisher
        self.sessions = sessions
        self.max_chunk_size = max_chunk_size
        self.max_upload_size = max_upload_size
        self._finalize_locks: Dict[str, asyncio.Lock] = {}
        self._finalize_users: Dict[str, int] = {}
        # keys whose uploads/<key> is a finished video served as a fallback
        self._served_outputs: Set[str] = set()

    def open_session(
        self,
        original_name: str,
        total_chunks: int,
        caller: str,
        mimetype: Optional[str] = None,
        size: Optional[int] = None,
    ) -> UploadSession:
        if total_chunks < 1:
            raise InvalidChunkError(f"'totalChunks' must be at least 1, got {total_chunks}")
        if size is not None and size > self.max_upload_size:
            raise UploadTooLargeError(
                f"Upload of {size} bytes exceeds the {self.max_upload_size} byte limit"
            )
        return self.sessions.open(original_name, total_chunks, caller, mimetype=mimetype, declared_size=size)

    async def receive_chunk(
        self,
        source: BinaryIO,
        content_type: Optional[str],
        filename: Optional[str],
        chunk_index: int,
        total_chunks: int,
        original_name: Optional[str],
        caller: str,
        request_base_url: str,
        mimetype: Optional[str] = None,
        upload_id: Optional[str] = None,
    ) -> ChunkOutcome:
        """
        Store one chunk and, for the final one, reassemble and publish.

        Args:
            source: Chunk bytes
            content_type: Declared content type of the chunk part
            filename: File name of the multipart part
            chunk_index: 0-based chunk number, authoritative
            total_chunks: Number of chunks announced by the client
            original_name: Name of the whole file before chunking
            caller: Authenticated caller id
            request_base_url: Base URL of the request, for fallback links
            mimetype: Declared type of the whole video
            upload_id: Session id from open_session, None for session-less uploads

        Returns:
            ChunkOutcome; completed is set when this was the final chunk

        Raises:
            UnsupportedMediaTypeError: Chunk type is not video/* or octet-stream
            InvalidChunkError: Malformed chunk numbers or file name
            UploadSessionNotFoundError: Unknown or foreign upload_id
            ChunkTooLargeError: Chunk over the per-chunk limit
            StagingError: Staging directory I/O failure
            ChunkProcessingError: Reassembly failure on the final chunk
        """
        if not is_allowed_chunk_type(content_type):
            raise UnsupportedMediaTypeError("Not a video file. Please upload only videos.")

        validate_chunk_numbers(chunk_index, total_chunks)

        if upload_id:
            session = self._session_for(upload_id, caller)
            if total_chunks != session.total_chunks:
                raise InvalidChunkError(
                    f"'totalChunks' is {total_chunks} but session {upload_id} expects {session.total_chunks}"
                )
            storage_key = session.storage_key
            original_name = session.original_name
            mimetype = mimetype or session.mimetype
        else:
            original_name = original_name or filename
            storage_key = normalize_filename(original_name)
            if chunk_index == 0:
                await self._discard_colliding_parts(storage_key)

        size = await asyncio.to_thread(
            self.staging.write_part, storage_key, chunk_index, source, self.max_chunk_size
        )
        receipt = ChunkReceipt(
            storage_key=storage_key,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            size=size,
        )
        logger.info(f"Stored chunk {chunk_index + 1}/{total_chunks} of {storage_key} ({size} bytes)")

        if not receipt.is_final:
            return ChunkOutcome(receipt=receipt)

        completed = await self._finalize(
            storage_key,
            total_chunks,
            original_name,
            resolve_mimetype(mimetype, content_type, original_name),
            request_base_url,
            upload_id,
        )
        return ChunkOutcome(receipt=receipt, completed=completed)

    async def complete(
        self,
        total_chunks: int,
        caller: str,
        request_base_url: str,
        original_name: Optional[str] = None,
        upload_id: Optional[str] = None,
        mimetype: Optional[str] = None,
    ) -> CompletedUpload:
        """Finalize an upload whose chunks are already staged."""
        if total_chunks < 1:
            raise InvalidChunkError(f"'totalChunks' must be at least 1, got {total_chunks}")

        storage_key, original_name, session_mimetype = self._resolve_key(original_name, upload_id, caller)
        return await self._finalize(
            storage_key,
            total_chunks,
            original_name,
            resolve_mimetype(mimetype or session_mimetype, None, original_name),
            request_base_url,
            upload_id,
        )

    async def cleanup(self, caller: str, filename: Optional[str] = None, upload_id: Optional[str] = None) -> int:
        """
        Remove the staged parts and partial output of one upload.

        Waits for a running finalization of the same key. A reassembled file
        that is already being served as a fallback video is kept.

        Returns:
            Number of files deleted
        """
        storage_key, _, _ = self._resolve_key(filename, upload_id, caller)
        logger.info(f"Cleaning up any chunks for {storage_key}")

        async with self._key_lock(storage_key):
            deleted = await asyncio.to_thread(self.staging.remove_parts, storage_key)
            if storage_key in self._served_outputs:
                logger.info(f"Keeping {storage_key}: it is served from local storage")
            elif await asyncio.to_thread(self.staging.remove_output, storage_key):
                logger.info(f"Deleted partial merged file: {storage_key}")
                deleted += 1

        if upload_id:
            self.sessions.close(upload_id)

        logger.info(f"Cleanup complete. Deleted {deleted} files.")
        return deleted

    @asynccontextmanager
    async def _key_lock(self, storage_key: str):
        """Per storage key lock shared by finalization and cleanup."""
        lock = self._finalize_locks.setdefault(storage_key, asyncio.Lock())
        self._finalize_users[storage_key] = self._finalize_users.get(storage_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._finalize_users[storage_key] -= 1
            if not self._finalize_users[storage_key]:
                del self._finalize_users[storage_key]
                del self._finalize_locks[storage_key]

    async def _finalize(
        self,
        storage_key: str,
        total_chunks: int,
        original_name: str,
        mimetype: str,
        request_base_url: str,
        upload_id: Optional[str],
    ) -> CompletedUpload:
        async with self._key_lock(storage_key):
            staged = await asyncio.to_thread(self.staging.staged_size, storage_key)
            if staged > self.max_upload_size:
                raise UploadTooLargeError(
                    f"Upload of {staged} bytes exceeds the {self.max_upload_size} byte limit"
                )

            # reassembly overwrites whatever uploads/<key> held before
            self._served_outputs.discard(storage_key)
            reassembled = await self.reassembler.reassemble(storage_key, total_chunks)
            published = await self.publisher.publish(reassembled, mimetype, request_base_url)
            if not published.durable:
                self._served_outputs.add(storage_key)

        if upload_id:
            self.sessions.close(upload_id)

        return CompletedUpload(
            filename=storage_key,
            original_name=original_name,
            size=reassembled.size,
            mimetype=mimetype,
            published=published,
        )

    async def _discard_colliding_parts(self, storage_key: str) -> None:
        # chunk 0 starts a new logical upload: parts already on disk under the
        # same name belong to an abandoned or concurrent upload
        existing = await asyncio.to_thread(self.staging.existing_part_indices, storage_key)
        if not existing:
            return
        logger.warning(
            f"Found {len(existing)} stale chunks for {storage_key} "
            f"(highest index {existing[-1]}, next would be {existing[-1] + 1}); discarding them"
        )
        await asyncio.to_thread(self.staging.remove_parts, storage_key)

    def _session_for(self, upload_id: str, caller: str) -> UploadSession:
        session = self.sessions.get(upload_id)
        if session.caller != caller:
            raise UploadSessionNotFoundError(f"Upload session '{upload_id}' not found")
        return session

    def _resolve_key(
        self, original_name: Optional[str], upload_id: Optional[str], caller: str
    ) -> Tuple[str, str, Optional[str]]:
        if upload_id:
            session = self._session_for(upload_id, caller)
            return session.storage_key, session.original_name, session.mimetype
        return normalize_filename(original_name), original_name, None
