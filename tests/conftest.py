"""Shared pytest fixtures for all tests."""

import threading
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from cli.config import Config
from videoserver.main import app, build_upload_service
from videoserver.object_store import ObjectStore
from videoserver.service_locator import set_upload_service
from videoserver.staging import StagingArea


class FakeObjectStore(ObjectStore):
    """
    In-memory ObjectStore.

    Set probe_error / upload_error / policy_error to an exception instance to
    make the matching call fail; set probe_delay / upload_delay (seconds) to
    make it block.
    """

    def __init__(self, bucket_exists: bool = True):
        self.buckets = set()
        self.objects = {}
        self.content_types = {}
        self.policies = []
        self.calls = []
        self.probe_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None
        self.policy_error: Optional[Exception] = None
        self.probe_delay = 0.0
        self.upload_delay = 0.0
        self._initial_bucket_exists = bucket_exists
        self._release = threading.Event()

    def _block(self, seconds: float) -> None:
        if seconds:
            self._release.wait(seconds)

    def bucket_exists(self, bucket: str) -> bool:
        self.calls.append(('bucket_exists', bucket))
        self._block(self.probe_delay)
        if self.probe_error:
            raise self.probe_error
        return self._initial_bucket_exists or bucket in self.buckets

    def make_bucket(self, bucket: str) -> None:
        self.calls.append(('make_bucket', bucket))
        self.buckets.add(bucket)

    def set_public_read(self, bucket: str) -> None:
        self.calls.append(('set_public_read', bucket))
        if self.policy_error:
            raise self.policy_error
        self.policies.append(bucket)

    def put_file(self, bucket: str, object_name: str, file_path: Path, content_type: str) -> None:
        self.calls.append(('put_file', bucket, object_name))
        self._block(self.upload_delay)
        if self.upload_error:
            raise self.upload_error
        self.objects[(bucket, object_name)] = Path(file_path).read_bytes()
        self.content_types[(bucket, object_name)] = content_type

    def remove_object(self, bucket: str, object_name: str) -> None:
        self.calls.append(('remove_object', bucket, object_name))
        self.objects.pop((bucket, object_name), None)
        self.content_types.pop((bucket, object_name), None)

    def object_url(self, bucket: str, object_name: str) -> str:
        return f"http://store.test/{bucket}/{object_name}"

    def release(self) -> None:
        """Unblock any delayed call."""
        self._release.set()


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Returns:
        Path to temporary .lmsvideo directory
    """
    config_dir = tmp_path / '.lmsvideo'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def sample_video(tmp_path):
    """
    Create a small fake video file (10 KiB of patterned bytes).

    Returns:
        Path to the video file
    """
    file_path = tmp_path / 'lecture.mp4'
    file_path.write_bytes(bytes(range(256)) * 40)
    return file_path


@pytest.fixture
def staging(tmp_path):
    """Staging area rooted in a temporary directory."""
    area = StagingArea(tmp_path / 'uploads', tmp_path / 'chunks')
    area.ensure_directories()
    return area


@pytest.fixture
def fake_store_factory():
    """Build FakeObjectStore instances; all are released at teardown."""
    created = []

    def factory(**kwargs):
        store = FakeObjectStore(**kwargs)
        created.append(store)
        return store

    yield factory
    for store in created:
        store.release()


@pytest.fixture
def fake_store(fake_store_factory):
    return fake_store_factory()


@pytest.fixture
def upload_service(tmp_path, fake_store):
    """UploadService wired to temporary directories and the fake store."""
    service = build_upload_service(
        tmp_path / 'uploads',
        tmp_path / 'chunks',
        fake_store,
        bucket='video-bucket',
        public_base_url='',
        retry_delay=0,
    )
    service.staging.ensure_directories()
    return service


@pytest.fixture
def local_only_service(tmp_path):
    """UploadService with no object store configured."""
    service = build_upload_service(
        tmp_path / 'uploads',
        tmp_path / 'chunks',
        None,
        bucket='video-bucket',
        public_base_url='',
        retry_delay=0,
    )
    service.staging.ensure_directories()
    return service


@pytest.fixture
def api_client(upload_service):
    """FastAPI test client serving upload_service."""
    set_upload_service(upload_service)
    yield TestClient(app)
    set_upload_service(None)


@pytest.fixture
def local_api_client(local_only_service):
    """FastAPI test client whose uploads always fall back to local storage."""
    set_upload_service(local_only_service)
    yield TestClient(app)
    set_upload_service(None)
