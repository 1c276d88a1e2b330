"""Manages the local staging area: chunk part files and reassembled uploads."""

import os
import shutil
from pathlib import Path
from typing import BinaryIO

from common.constants import PART_SUFFIX
from common.logging_config import get_logger
from videoserver.exceptions import ChunkTooLargeError, StagingError

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024
IN_PROGRESS_SUFFIX = ".uploading"


class StagingArea:
    """
    Two scratch directories on local disk.

    chunks/  holds '<storage_key>.part_<index>' files while an upload is in flight
    uploads/ holds reassembled files; it is also served over HTTP for fallback links
    """

    def __init__(self, uploads_dir: Path, chunks_dir: Path):
        self.uploads_dir = Path(uploads_dir)
        self.chunks_dir = Path(chunks_dir)

    def ensure_directories(self) -> None:
        """
        Create both staging directories.

        Raises:
            OSError: If a directory cannot be created
        """
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.chunks_dir.mkdir(parents=True, exist_ok=True)

    def part_path(self, storage_key: str, chunk_index: int) -> Path:
        """
        Get file path for a chunk.

        Args:
            storage_key: Normalized name (or session-prefixed name) of the upload
            chunk_index: 0-based chunk number

        Returns:
            Path object for the part file
        """
        return self.chunks_dir / f"{storage_key}{PART_SUFFIX}{chunk_index}"

    def output_path(self, storage_key: str) -> Path:
        """Path of the reassembled file for storage_key."""
        return self.uploads_dir / storage_key

    def write_part(self, storage_key: str, chunk_index: int, source: BinaryIO, max_bytes: int) -> int:
        """
        Stream chunk data from source into its part file.

        Data lands in a temporary file first and is renamed into place, so a
        part file that exists is always complete.

        Args:
            storage_key: Upload storage key
            chunk_index: 0-based chunk number
            source: Readable binary stream positioned at the start of the chunk
            max_bytes: Per-chunk size limit

        Returns:
            Number of bytes written

        Raises:
            ChunkTooLargeError: If source yields more than max_bytes
            StagingError: If the part file cannot be written
        """
        final_path = self.part_path(storage_key, chunk_index)
        temp_path = final_path.with_name(final_path.name + IN_PROGRESS_SUFFIX)
        written = 0

        try:
            self.chunks_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'wb') as out:
                while True:
                    block = source.read(COPY_BUFFER_SIZE)
                    if not block:
                        break
                    written += len(block)
                    if written > max_bytes:
                        raise ChunkTooLargeError(
                            f"Chunk {chunk_index} exceeds the {max_bytes} byte limit"
                        )
                    out.write(block)
            os.replace(temp_path, final_path)
        except ChunkTooLargeError:
            self._discard(temp_path)
            raise
        except OSError as e:
            self._discard(temp_path)
            raise StagingError(f"Failed to store chunk {chunk_index}: {e}") from e

        return written

    def existing_part_indices(self, storage_key: str) -> list[int]:
        """
        List chunk numbers present on disk for storage_key.

        Returns:
            Sorted list of indices

        Raises:
            StagingError: If the chunks directory cannot be listed
        """
        prefix = f"{storage_key}{PART_SUFFIX}"
        try:
            names = os.listdir(self.chunks_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StagingError(f"Failed to list staging directory: {e}") from e

        indices = []
        for name in names:
            if not name.startswith(prefix):
                continue
            suffix = name[len(prefix):]
            if suffix.isdigit():
                indices.append(int(suffix))
        return sorted(indices)

    def next_part_index(self, storage_key: str) -> int:
        """Chunk number following the highest one on disk, 0 when none exist."""
        indices = self.existing_part_indices(storage_key)
        return indices[-1] + 1 if indices else 0

    def part_exists(self, storage_key: str, chunk_index: int) -> bool:
        return self.part_path(storage_key, chunk_index).is_file()

    def staged_size(self, storage_key: str) -> int:
        """Total bytes of the part files currently staged for storage_key."""
        total = 0
        for index in self.existing_part_indices(storage_key):
            try:
                total += self.part_path(storage_key, index).stat().st_size
            except FileNotFoundError:
                continue
        return total

    def remove_parts(self, storage_key: str) -> int:
        """
        Delete every part file of storage_key.

        Returns:
            Number of files deleted. Per-file failures are logged and skipped.
        """
        deleted = 0
        for index in self.existing_part_indices(storage_key):
            path = self.part_path(storage_key, index)
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Error deleting chunk {path}: {e}")
        return deleted

    def remove_output(self, storage_key: str) -> bool:
        """
        Delete the reassembled file of storage_key.

        Returns:
            True if a file was deleted
        """
        return self._discard(self.output_path(storage_key))

    def clear(self) -> int:
        """
        Empty both staging directories recursively.

        Used at startup: nothing in the staging area survives a restart.

        Returns:
            Number of top-level entries removed
        """
        removed = 0
        for directory in (self.uploads_dir, self.chunks_dir):
            if not directory.exists():
                continue
            for entry in directory.iterdir():
                try:
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                    removed += 1
                except OSError as e:
                    logger.error(f"Failed to remove stale staging entry {entry}: {e}")
        if removed:
            logger.info(f"Cleared {removed} stale staging entries")
        return removed

    def _discard(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            return False
