"""In-memory registry of upload sessions opened with /api/upload/init."""

from typing import Callable, Dict, Optional

from common.logging_config import get_logger
from videoserver.exceptions import UploadSessionNotFoundError
from videoserver.types import UploadSession
from videoserver.utils import generate_upload_id, monotonic_time, normalize_filename, session_storage_key

logger = get_logger(__name__)


class UploadSessionRegistry:
    """
    Maps upload ids to sessions.

    A session gives the upload a server-generated storage key, so two uploads
    of the same file name never share chunk files or object names.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = monotonic_time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, UploadSession] = {}

    def open(
        self,
        original_name: str,
        total_chunks: int,
        caller: str,
        mimetype: Optional[str] = None,
        declared_size: Optional[int] = None,
    ) -> UploadSession:
        self._purge_expired()

        upload_id = generate_upload_id()
        session = UploadSession(
            upload_id=upload_id,
            original_name=original_name,
            storage_key=session_storage_key(upload_id, normalize_filename(original_name)),
            total_chunks=total_chunks,
            mimetype=mimetype,
            declared_size=declared_size,
            caller=caller,
            expires_at=self._clock() + self.ttl_seconds,
        )
        self._sessions[upload_id] = session
        logger.info(f"Opened upload session {upload_id} for {session.storage_key} ({total_chunks} chunks)")
        return session

    def get(self, upload_id: str) -> UploadSession:
        """
        Raises:
            UploadSessionNotFoundError: If upload_id is unknown or expired
        """
        session = self._sessions.get(upload_id)
        if session is None:
            raise UploadSessionNotFoundError(f"Upload session '{upload_id}' not found")
        if session.expires_at <= self._clock():
            del self._sessions[upload_id]
            raise UploadSessionNotFoundError(f"Upload session '{upload_id}' has expired")
        return session

    def close(self, upload_id: str) -> None:
        if self._sessions.pop(upload_id, None) is not None:
            logger.debug(f"Closed upload session {upload_id}")

    def __len__(self) -> int:
        return len(self._sessions)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [upload_id for upload_id, s in self._sessions.items() if s.expires_at <= now]
        for upload_id in expired:
            del self._sessions[upload_id]
        if expired:
            logger.info(f"Purged {len(expired)} expired upload sessions")
