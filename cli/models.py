"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class UploadCommand:
    """Upload one video file in chunks."""

    file_path: str
    chunk_size_mib: float | None = None
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class CleanupCommand:
    """Discard the staged chunks of an upload."""

    filename: str
    command: Literal["cleanup"] = "cleanup"


@dataclass(frozen=True)
class HealthCommand:
    """Query server health."""

    command: Literal["health"] = "health"


CommandRequest = UploadCommand | CleanupCommand | HealthCommand
