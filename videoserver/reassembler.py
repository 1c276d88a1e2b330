"""Ordered reassembly of staged chunk files into one upload."""

import asyncio
import errno
import shutil
from pathlib import Path
from typing import Awaitable, BinaryIO, Callable

from common.constants import DEFAULT_MERGE_BLOCK_SIZE_BYTES
from common.logging_config import get_logger
from videoserver.exceptions import ChunkLockedError, ChunkProcessingError, MissingChunkError
from videoserver.staging import StagingArea
from videoserver.types import ReassembledFile

logger = get_logger(__name__)

TRANSIENT_ERRNOS = {
    code for code in (
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        errno.EBUSY,
        getattr(errno, 'ETXTBSY', None),
    )
    if code is not None
}

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
WINDOWS_LOCK_ERRORS = {32, 33}


def is_transient_lock_error(exc: OSError) -> bool:
    """True when exc means the file is busy rather than broken."""
    if isinstance(exc, BlockingIOError):
        return True
    if getattr(exc, 'winerror', None) in WINDOWS_LOCK_ERRORS:
        return True
    return exc.errno in TRANSIENT_ERRNOS


class ChunkReassembler:
    """
    Concatenates '<key>.part_0' .. '<key>.part_<n-1>' into uploads/<key>.

    Each part is deleted as soon as it has been copied. Busy part files are
    retried a bounded number of times with a fixed delay.
    """

    def __init__(
        self,
        staging: StagingArea,
        retry_attempts: int = 5,
        retry_delay: float = 1.0,
        block_size: int = DEFAULT_MERGE_BLOCK_SIZE_BYTES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            staging: Staging area holding the part files
            retry_attempts: Attempts per read or delete before giving up
            retry_delay: Seconds between attempts
            block_size: Copy buffer size
            sleep: Coroutine used to wait between attempts
        """
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self.staging = staging
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.block_size = block_size
        self._sleep = sleep

    async def reassemble(self, storage_key: str, total_chunks: int) -> ReassembledFile:
        """
        Build the reassembled file for storage_key.

        Args:
            storage_key: Upload storage key
            total_chunks: Number of parts the client announced

        Returns:
            ReassembledFile describing the output

        Raises:
            MissingChunkError: A part is absent; no output file is left behind
            ChunkLockedError: A part stayed busy through every retry
            ChunkProcessingError: Any other I/O failure
        """
        present = set(self.staging.existing_part_indices(storage_key))
        for index in range(total_chunks):
            if index not in present:
                raise MissingChunkError(storage_key, index, total_chunks)

        output_path = self.staging.output_path(storage_key)
        logger.info(f"Reassembling {total_chunks} chunks into {output_path}")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            out = open(output_path, 'wb')
        except OSError as e:
            raise ChunkProcessingError(f"Cannot open output file {output_path}: {e}") from e

        try:
            with out:
                for index in range(total_chunks):
                    await self._append_part(out, storage_key, index, total_chunks)
        except BaseException:
            self.staging.remove_output(storage_key)
            raise

        size = output_path.stat().st_size
        logger.info(f"Reassembled {storage_key}: {total_chunks} chunks, {size} bytes")
        return ReassembledFile(storage_key=storage_key, path=output_path, size=size)

    async def _append_part(self, out: BinaryIO, storage_key: str, index: int, total_chunks: int) -> None:
        part = self.staging.part_path(storage_key, index)
        if not part.is_file():
            raise MissingChunkError(storage_key, index, total_chunks)

        start = out.tell()
        try:
            await self._with_retry(
                lambda: asyncio.to_thread(self._copy_part, part, out, start),
                part,
                "read",
            )
        except FileNotFoundError:
            raise MissingChunkError(storage_key, index, total_chunks)

        try:
            await self._with_retry(lambda: asyncio.to_thread(part.unlink), part, "delete")
        except FileNotFoundError:
            pass

        logger.debug(f"Chunk {index} of {storage_key} merged and deleted")

    def _copy_part(self, part: Path, out: BinaryIO, start: int) -> None:
        # a retried copy starts over from the part's own offset
        out.seek(start)
        out.truncate()
        with open(part, 'rb') as src:
            shutil.copyfileobj(src, out, self.block_size)

    async def _with_retry(self, operation: Callable[[], Awaitable[None]], part: Path, action: str) -> None:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                await operation()
                return
            except FileNotFoundError:
                raise
            except OSError as e:
                if not is_transient_lock_error(e):
                    raise ChunkProcessingError(f"Failed to {action} chunk {part.name}: {e}") from e
                if attempt == self.retry_attempts:
                    logger.error(f"Chunk {part.name} still busy after {attempt} attempts to {action}")
                    raise ChunkLockedError(str(part), attempt) from e
                logger.warning(
                    f"Chunk {part.name} busy during {action} "
                    f"(attempt {attempt}/{self.retry_attempts}), retrying in {self.retry_delay}s"
                )
                await self._sleep(self.retry_delay)
