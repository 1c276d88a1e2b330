"""Publishes reassembled uploads to the object store, with local fallback."""

import asyncio
from typing import Dict, Optional

from common.constants import MIB, UPLOADS_URL_PREFIX
from common.logging_config import get_logger
from videoserver.exceptions import StoreUnavailableError
from videoserver.object_store import ObjectStore
from videoserver.staging import StagingArea
from videoserver.store_health import StoreEvent, StoreHealth, StoreState
from videoserver.types import PublishResult, ReassembledFile

logger = get_logger(__name__)


class StoragePublisher:
    """
    Moves a reassembled file into the durable bucket, or leaves it in the
    local uploads directory and hands back a fallback URL.

    Exactly one copy is authoritative after publish(): the object (local
    file deleted) or the local file (nothing uploaded).
    """

    def __init__(
        self,
        staging: StagingArea,
        store: Optional[ObjectStore],
        bucket: str,
        health: Optional[StoreHealth] = None,
        probe_timeout: float = 10.0,
        upload_timeout: float = 300.0,
        upload_timeout_per_mb: float = 1.0,
        public_read: bool = True,
        public_base_url: str = "",
    ):
        """
        Args:
            staging: Staging area holding the reassembled files
            store: Object store backend, None to always serve locally
            bucket: Target bucket name
            health: Shared availability state
            probe_timeout: Hard limit for the bucket probe, in seconds
            upload_timeout: Base hard limit for an object upload, in seconds
            upload_timeout_per_mb: Extra upload seconds per MiB of file
            public_read: Apply a public-read policy to buckets this publisher creates
            public_base_url: Base for fallback links; the request's base URL when empty
        """
        self.staging = staging
        self.store = store
        self.bucket = bucket
        self.health = health or StoreHealth()
        self.probe_timeout = probe_timeout
        self.upload_timeout = upload_timeout
        self.upload_timeout_per_mb = upload_timeout_per_mb
        self.public_read = public_read
        self.public_base_url = public_base_url.rstrip('/')
        self._late_uploads: Dict[str, asyncio.Task] = {}

    @property
    def store_state(self) -> StoreState:
        if self.store is None:
            return StoreState.UNAVAILABLE
        return self.health.state

    async def publish(self, reassembled: ReassembledFile, content_type: str, request_base_url: str) -> PublishResult:
        """
        Publish one reassembled file.

        Store failures of any kind end in the local fallback; this method
        does not raise for them. The health lock covers the known-down check
        and the probe only, so uploads of different files run side by side.

        Args:
            reassembled: File produced by the reassembler
            content_type: Mimetype stored with the object
            request_base_url: Base URL of the current request, for fallback links

        Returns:
            PublishResult with durable=True or False
        """
        object_name = reassembled.storage_key

        if self.store is None:
            return self._fallback(object_name, request_base_url)

        late = self._late_uploads.get(object_name)
        if late is not None:
            await asyncio.shield(late)

        async with self.health.lock:
            if self.health.is_known_down():
                logger.info(f"Object store known down, serving {object_name} locally")
                return self._fallback(object_name, request_base_url)

            if not await self.probe():
                return self._fallback(object_name, request_base_url)

        try:
            await self._upload(reassembled, content_type)
        except StoreUnavailableError as e:
            logger.error(f"Error uploading {object_name} to object store: {e}")
            async with self.health.lock:
                self.health.apply(StoreEvent.UPLOAD_FAILED)
            return self._fallback(object_name, request_base_url)

        async with self.health.lock:
            self.health.apply(StoreEvent.UPLOAD_SUCCEEDED)

        logger.info(f"Uploaded {object_name} to bucket {self.bucket}")
        if not self.staging.remove_output(object_name):
            logger.error(f"Local copy of {object_name} could not be removed after upload")

        return PublishResult(
            object_name=object_name,
            base_url=self.store.bucket_url(self.bucket),
            url=self.store.object_url(self.bucket, object_name),
            durable=True,
        )

    async def probe(self) -> bool:
        """
        Check the bucket under probe_timeout, creating it when missing.

        Callers hold health.lock.

        Returns:
            True if the store is usable
        """
        self.health.apply(StoreEvent.PROBE_STARTED)
        try:
            await self._call(self._ensure_bucket, timeout=self.probe_timeout)
        except StoreUnavailableError as e:
            logger.warning(f"Object store probe failed: {e}")
            self.health.apply(StoreEvent.PROBE_FAILED)
            return False
        except BaseException:
            self.health.apply(StoreEvent.PROBE_CANCELLED)
            raise

        self.health.apply(StoreEvent.PROBE_SUCCEEDED)
        return True

    async def close(self) -> None:
        """Wait until every abandoned upload has been reconciled."""
        pending = list(self._late_uploads.values())
        if pending:
            logger.info(f"Waiting for {len(pending)} abandoned uploads to settle")
            await asyncio.gather(*pending, return_exceptions=True)

    def _ensure_bucket(self) -> None:
        if self.store.bucket_exists(self.bucket):
            return

        self.store.make_bucket(self.bucket)
        if self.public_read:
            try:
                self.store.set_public_read(self.bucket)
            except Exception as e:
                logger.error(f"Error setting public-read policy on bucket {self.bucket}: {e}")

    async def _upload(self, reassembled: ReassembledFile, content_type: str) -> None:
        """
        Upload under the size-scaled timeout.

        The worker thread cannot be interrupted. When the request stops
        waiting for it (timeout or cancellation) the local file stays
        authoritative and an object that lands later is removed again.
        """
        timeout = self.upload_timeout + self.upload_timeout_per_mb * (reassembled.size / MIB)
        object_name = reassembled.storage_key
        worker = asyncio.ensure_future(asyncio.to_thread(
            self.store.put_file,
            self.bucket,
            object_name,
            reassembled.path,
            content_type,
        ))
        try:
            await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
        except asyncio.TimeoutError:
            self._abandon_upload(object_name, worker)
            raise StoreUnavailableError(f"put_file timed out after {timeout:g}s")
        except asyncio.CancelledError:
            self._abandon_upload(object_name, worker)
            raise
        except Exception as e:
            raise StoreUnavailableError(f"put_file failed: {e}") from e

    def _abandon_upload(self, object_name: str, worker: asyncio.Future) -> None:
        task = asyncio.ensure_future(self._remove_late_object(object_name, worker))
        self._late_uploads[object_name] = task
        task.add_done_callback(lambda done: self._forget_late_upload(object_name, done))

    def _forget_late_upload(self, object_name: str, task: asyncio.Task) -> None:
        if self._late_uploads.get(object_name) is task:
            del self._late_uploads[object_name]

    async def _remove_late_object(self, object_name: str, worker: asyncio.Future) -> None:
        try:
            await worker
        except Exception as e:
            logger.debug(f"Abandoned upload of {object_name} did not complete: {e}")
            return

        logger.warning(f"Abandoned upload of {object_name} completed late, removing the object")
        try:
            await asyncio.to_thread(self.store.remove_object, self.bucket, object_name)
        except Exception as e:
            logger.error(f"Could not remove late object {object_name} from bucket {self.bucket}: {e}")

    async def _call(self, func, *args, timeout: float) -> None:
        try:
            await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailableError(f"{func.__name__} timed out after {timeout:g}s")
        except Exception as e:
            raise StoreUnavailableError(f"{func.__name__} failed: {e}") from e

    def _fallback(self, object_name: str, request_base_url: str) -> PublishResult:
        base = self.public_base_url or request_base_url.rstrip('/')
        base_url = f"{base}{UPLOADS_URL_PREFIX}/"
        return PublishResult(
            object_name=object_name,
            base_url=base_url,
            url=f"{base_url}{object_name}",
            durable=False,
        )
