"""HTTP client that splits a video into chunks and uploads them."""

import mimetypes
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

import httpx

from common.constants import API_PREFIX, DEFAULT_VIDEO_MIMETYPE, MIB, VIDEO_FIELD_NAME
from common.logging_config import get_logger
from cli.config import Config
from cli.constants import GREEN, RESET, SUPPORTED_FILE_EXTENSIONS, YELLOW
from cli.utils import UploadProgress, count_chunks, format_file_size

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, int, int], None]


class UploadFailedError(Exception):
    """
    Raised when an upload cannot be completed.

    message is the server's 'error' field verbatim when the server answered.
    """

    def __init__(
        self,
        message: str,
        chunk_index: Optional[int] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.chunk_index = chunk_index
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class VideoUploadClient:
    """HTTP client for the video upload API with retry logic and error handling."""

    def __init__(self, config: Config, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize upload client.

        Args:
            config: Configuration instance
            sleep: Function used to wait between retries
        """
        self.config = config
        self.session = httpx.Client(
            base_url=config.get_base_url(),
            timeout=config.get_timeout()
        )
        self.request_id = None
        self._sleep = sleep
        logger.info(f"Initialized VideoUploadClient [base_url={config.get_base_url()}]")

    def _calculate_finalize_timeout(self, file_size: int) -> float:
        """
        Timeout for the request that carries the final chunk.

        That request also reassembles and publishes the whole file.

        Returns:
            Timeout in seconds (request timeout + 1s per MiB of file)
        """
        return self.config.get_timeout() + file_size / MIB

    def _auth_headers(self) -> dict:
        api_key = self.config.get_api_key()
        return {'Authorization': f'Bearer {api_key}'} if api_key else {}

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        retry_timeouts: bool = True,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request, retrying network failures only.

        HTTP error responses are returned as they are; the caller decides.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            max_retries: Max retry attempts (uses config default if None)
            retry_timeouts: Also retry timeouts, not only connection failures
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            ConnectionError: If the server cannot be reached after all retries
        """
        retry_config = self.config.get_retry_config()
        max_retries = max_retries if max_retries is not None else retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']
        retryable = (httpx.ConnectError, httpx.TimeoutException) if retry_timeouts else (httpx.ConnectError,)

        self.request_id = str(uuid.uuid4())
        headers = {**self._auth_headers(), **kwargs.pop('headers', {})}
        headers['X-Request-ID'] = self.request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={self.request_id}]")

        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, endpoint, headers=headers, **kwargs)
                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )
                return response

            except retryable as e:
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    self._sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={self.request_id}]"
                )
                if isinstance(e, httpx.TimeoutException):
                    raise ConnectionError("Request timed out. Server may be overloaded.")
                raise ConnectionError("Cannot connect to upload server. Is it running?")

            except httpx.TimeoutException:
                logger.error(f"Request timed out: {method} {endpoint} [request_id={self.request_id}]")
                raise ConnectionError("Request timed out. Server may be overloaded.")

    def _error_message(self, response: httpx.Response) -> tuple[str, Optional[str]]:
        """
        Extract the server's error message and code.

        Returns:
            Tuple of (message, code); message is verbatim from the server when present
        """
        try:
            data = response.json()
        except ValueError:
            return (response.text or f"HTTP error {response.status_code}"), None
        if not isinstance(data, dict):
            return f"HTTP error {response.status_code}", None
        return data.get('error') or f"HTTP error {response.status_code}", data.get('code')

    def _raise_for_response(self, response: httpx.Response, chunk_index: Optional[int] = None) -> None:
        if response.is_success:
            return
        message, code = self._error_message(response)
        raise UploadFailedError(message, chunk_index=chunk_index, status_code=response.status_code, code=code)

    def validate_file(self, file_path: str) -> tuple[Path, int, str]:
        """
        Check that file_path is an uploadable video.

        Returns:
            Tuple of (path, size in bytes, mimetype)

        Raises:
            UploadFailedError: If the file is missing, empty, too large or not a video
        """
        path = Path(file_path).expanduser()
        if not path.exists():
            raise UploadFailedError(f"File not found: {file_path}")
        if not path.is_file():
            raise UploadFailedError(f"Not a file: {file_path}")

        guessed, _ = mimetypes.guess_type(path.name)
        is_video = path.name.lower().endswith(SUPPORTED_FILE_EXTENSIONS) or bool(guessed and guessed.startswith('video/'))
        if not is_video:
            raise UploadFailedError(f"Not a video file: {file_path}. Please upload only videos.")

        size = path.stat().st_size
        if size == 0:
            raise UploadFailedError(f"File is empty: {file_path}")
        max_size = self.config.get_max_file_size()
        if size > max_size:
            raise UploadFailedError(
                f"File too large: {format_file_size(size)} (maximum {format_file_size(max_size)})"
            )

        mimetype = guessed if guessed and guessed.startswith('video/') else DEFAULT_VIDEO_MIMETYPE
        return path, size, mimetype

    def open_session(self, original_name: str, total_chunks: int, mimetype: str, size: int) -> str:
        """
        Open an upload session.

        Returns:
            Upload id to send with every chunk

        Raises:
            UploadFailedError: If the server rejects the session
            ConnectionError: If the server cannot be reached
        """
        response = self._request_with_retry(
            'POST',
            f'{API_PREFIX}/upload/init',
            json={
                'originalname': original_name,
                'totalChunks': total_chunks,
                'mimeType': mimetype,
                'size': size,
            }
        )
        self._raise_for_response(response)
        upload_id = response.json()['uploadId']
        logger.info(f"Opened upload session {upload_id} for {original_name}")
        return upload_id

    def upload_video(
        self,
        file_path: str,
        chunk_size: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> dict:
        """
        Upload a video file chunk by chunk, in order.

        Stops at the first chunk the server rejects.

        Args:
            file_path: Path of the video
            chunk_size: Chunk size in bytes (config default if None)
            progress: Called after each accepted chunk with
                (sent_bytes, total_bytes, chunk_number, total_chunks)

        Returns:
            File Descriptor returned with the final chunk

        Raises:
            UploadFailedError: Validation failure or a rejected chunk
            ConnectionError: If the server cannot be reached
        """
        path, file_size, mimetype = self.validate_file(file_path)
        chunk_size = chunk_size or self.config.get_chunk_size()
        total_chunks = count_chunks(file_size, chunk_size)
        filename = path.name

        logger.info(
            f"Uploading {filename} ({format_file_size(file_size)}) in {total_chunks} chunks of {format_file_size(chunk_size)}"
        )

        upload_id = None
        if self.config.use_sessions():
            upload_id = self.open_session(filename, total_chunks, mimetype, file_size)

        sent = 0
        body = None
        with open(path, 'rb') as f:
            for chunk_index in range(total_chunks):
                data = f.read(chunk_size)
                is_final = chunk_index == total_chunks - 1

                form = {
                    'chunk': str(chunk_index),
                    'totalChunks': str(total_chunks),
                    'originalname': filename,
                    'mimeType': mimetype,
                }
                if upload_id:
                    form['uploadId'] = upload_id

                # the final request reassembles on the server; resending it after
                # a timeout would race the running reassembly
                response = self._request_with_retry(
                    'POST',
                    f'{API_PREFIX}/upload',
                    retry_timeouts=not is_final,
                    files={VIDEO_FIELD_NAME: (filename, data, mimetype)},
                    data=form,
                    timeout=self._calculate_finalize_timeout(file_size) if is_final else self.config.get_timeout(),
                )
                self._raise_for_response(response, chunk_index=chunk_index)

                sent += len(data)
                body = response.json()
                if progress:
                    progress(sent, file_size, chunk_index + 1, total_chunks)

        descriptor = body.get('file') if body else None
        if not descriptor:
            raise UploadFailedError("Server did not return file details for the final chunk", chunk_index=total_chunks - 1)

        logger.info(f"Upload of {filename} finished: {descriptor.get('videoUrl')}")
        return descriptor

    def upload(self, file_path: str, chunk_size_mib: Optional[float] = None) -> str:
        """
        Upload a video and describe the outcome.

        Returns:
            Success or error message
        """
        chunk_size = int(chunk_size_mib * MIB) if chunk_size_mib else None
        progress = UploadProgress(Path(file_path).name)
        try:
            descriptor = self.upload_video(file_path, chunk_size=chunk_size, progress=progress)
        except UploadFailedError as e:
            progress.finish()
            if e.chunk_index is not None:
                return f"Upload failed at chunk {e.chunk_index + 1}: {e.message}"
            return f"Upload failed: {e.message}"
        except ConnectionError as e:
            progress.finish()
            logger.error(f"Connection error during upload: {e}")
            return f"Error: {e}"

        if descriptor.get('usingFallback'):
            mode = f"{YELLOW}local storage (object store unavailable){RESET}"
        else:
            mode = f"{GREEN}cloud storage{RESET}"
        return (
            f"Uploaded: {descriptor.get('originalName')} ({format_file_size(descriptor.get('size', 0))})\n"
            f"Stored in: {mode}\n"
            f"URL: {descriptor.get('videoUrl')}"
        )

    def cleanup(self, filename: str) -> str:
        """
        Ask the server to discard staged chunks for filename.

        Returns:
            Success or error message
        """
        try:
            response = self._request_with_retry('POST', f'{API_PREFIX}/upload/cleanup', json={'filename': filename})
        except ConnectionError as e:
            logger.error(f"Connection error during cleanup: {e}")
            return f"Error: {e}"

        if not response.is_success:
            message, _ = self._error_message(response)
            return f"Cleanup failed: {message}"

        deleted = response.json().get('deletedFiles', 0)
        return f"Cleanup complete: {deleted} staged files deleted for {filename}"

    def health(self) -> str:
        """
        Query the server health endpoint.

        Returns:
            Status line or error message
        """
        try:
            response = self._request_with_retry('GET', '/health', max_retries=0)
        except ConnectionError as e:
            return f"Error: {e}"

        if not response.is_success:
            return f"Server unhealthy: HTTP {response.status_code}"

        data = response.json()
        return f"Server: {data.get('status', 'unknown')}, object store: {data.get('objectStore', 'unknown')}"

    def close(self) -> None:
        """Close HTTP session."""
        self.session.close()
