"""Durable object store backends."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import urllib3
from minio import Minio

from common.logging_config import get_logger

logger = get_logger(__name__)


class ObjectStore(ABC):
    """
    Contract between the Storage Publisher and a bucket-based object store.

    Methods are blocking; the publisher runs them in a worker thread under
    its own timeouts. Any exception counts as the store being unavailable.
    """

    @abstractmethod
    def bucket_exists(self, bucket: str) -> bool:
        pass

    @abstractmethod
    def make_bucket(self, bucket: str) -> None:
        pass

    @abstractmethod
    def set_public_read(self, bucket: str) -> None:
        """Allow anonymous GET on every object of bucket."""
        pass

    @abstractmethod
    def put_file(self, bucket: str, object_name: str, file_path: Path, content_type: str) -> None:
        """Upload file_path as object_name, overwriting any existing object."""
        pass

    @abstractmethod
    def remove_object(self, bucket: str, object_name: str) -> None:
        """Delete object_name; a missing object is not an error."""
        pass

    @abstractmethod
    def object_url(self, bucket: str, object_name: str) -> str:
        """Public URL of an object."""
        pass

    def bucket_url(self, bucket: str) -> str:
        """Public URL prefix of bucket, ending with '/'."""
        return self.object_url(bucket, "")


def public_read_policy(bucket: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/*"],
            }
        ],
    })


class MinioObjectStore(ObjectStore):
    """
    MinIO / S3-compatible store accessed with the minio SDK.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        port: Optional[int] = None,
        secure: bool = True,
        region: Optional[str] = None,
        public_url: str = "",
        connect_timeout: float = 10.0,
        read_timeout: float = 300.0,
    ):
        """
        Args:
            endpoint: Store host name, without scheme
            access_key: Access key id
            secret_key: Secret access key
            port: Explicit port, None for the scheme default
            secure: Use TLS
            region: Bucket region, None to let the server decide
            public_url: Base URL for object links; derived from endpoint when empty
            connect_timeout: Socket connect timeout in seconds
            read_timeout: Socket read timeout in seconds
        """
        self.endpoint = endpoint
        self.port = port
        self.secure = secure
        self.public_url = public_url.rstrip('/') if public_url else self._default_public_url()

        host = f"{endpoint}:{port}" if port else endpoint
        http_client = urllib3.PoolManager(
            timeout=urllib3.Timeout(connect=connect_timeout, read=read_timeout),
            retries=urllib3.Retry(total=1, backoff_factor=0.2),
        )
        self._client = Minio(
            host,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
            http_client=http_client,
        )
        logger.info(f"Object store client configured [endpoint={host}, secure={secure}]")

    def _default_public_url(self) -> str:
        scheme = "https" if self.secure else "http"
        default_port = 443 if self.secure else 80
        if self.port and self.port != default_port:
            return f"{scheme}://{self.endpoint}:{self.port}"
        return f"{scheme}://{self.endpoint}"

    def bucket_exists(self, bucket: str) -> bool:
        return self._client.bucket_exists(bucket)

    def make_bucket(self, bucket: str) -> None:
        self._client.make_bucket(bucket)
        logger.info(f"Created bucket: {bucket}")

    def set_public_read(self, bucket: str) -> None:
        self._client.set_bucket_policy(bucket, public_read_policy(bucket))

    def put_file(self, bucket: str, object_name: str, file_path: Path, content_type: str) -> None:
        self._client.fput_object(bucket, object_name, str(file_path), content_type=content_type)

    def remove_object(self, bucket: str, object_name: str) -> None:
        self._client.remove_object(bucket, object_name)
        logger.info(f"Removed object {bucket}/{object_name}")

    def object_url(self, bucket: str, object_name: str) -> str:
        return f"{self.public_url}/{bucket}/{object_name}"
