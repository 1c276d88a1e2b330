"""Utility functions for CLI operations."""

import sys
from typing import TextIO

from cli.constants import GREEN, RESET


class UploadProgress:
    """Callable that renders chunk upload progress on one terminal line."""

    def __init__(self, filename: str, stream: TextIO = sys.stdout):
        """
        Args:
            filename: Display name for the file
            stream: Output stream (stdout by default)
        """
        self.filename = filename
        self.stream = stream
        self._finished = False

    def __call__(self, sent_bytes: int, total_bytes: int, chunk_number: int, total_chunks: int) -> None:
        """
        Render progress after a chunk has been accepted by the server.

        Args:
            sent_bytes: Bytes sent so far
            total_bytes: File size in bytes
            chunk_number: 1-based number of the chunk just sent
            total_chunks: Number of chunks
        """
        progress = (sent_bytes / total_bytes) * 100 if total_bytes else 100.0
        self.stream.write(
            f"\rUploading {self.filename}: chunk {chunk_number}/{total_chunks}, "
            f"{format_file_size(sent_bytes)} / {format_file_size(total_bytes)} ({GREEN}{progress:.1f}%{RESET})"
        )
        self.stream.flush()
        if chunk_number == total_chunks:
            self.finish()

    def finish(self) -> None:
        """Finalize progress display with newline."""
        if self._finished:
            return
        self._finished = True
        self.stream.write('\n')
        self.stream.flush()


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def count_chunks(file_size: int, chunk_size: int) -> int:
    """Number of chunks a file of file_size bytes is split into (ceiling division)."""
    return -(-file_size // chunk_size)
