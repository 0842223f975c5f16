"""
services/storage_service.py
Content publishers: store rendered output under a key and return its public URL.

Keys are deterministic per certificate, so publishing twice overwrites.
"""
import asyncio
from pathlib import Path
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageError
from app.utils.helpers import get_logger

logger = get_logger(__name__)


class ContentPublisher(Protocol):
    async def publish(self, key: str, content: bytes, content_type: str) -> str:
        """Store content under key and return a URL it can be fetched from."""
        ...


class LocalContentPublisher:
    """Writes objects to a directory served by the app at /generated."""

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(key, "key escapes the storage directory")
        return path

    async def publish(self, key: str, content: bytes, content_type: str) -> str:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.write_bytes, content)
        except OSError as e:
            raise StorageError(key, str(e)) from e
        logger.debug(f"Stored {key} ({len(content)} bytes, {content_type})")
        return f"{self.base_url}/generated/{key}"


class S3ContentPublisher:
    """S3 / MinIO publisher; boto3 calls run in a worker thread."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str = "",
        public_url: str = "",
        region: str = "us-east-1",
        access_key: str = "",
        secret_key: str = "",
        client=None,
    ):
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")
        self.region = region
        self.endpoint_url = endpoint_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._client = client

    def _get_client(self):
        """Lazy initialization of S3/MinIO client."""
        if self._client is None:
            kwargs = {"region_name": self.region}
            if self.endpoint_url:
                # MinIO needs path-style addressing
                kwargs["endpoint_url"] = self.endpoint_url
                kwargs["config"] = Config(signature_version="s3v4", s3={"addressing_style": "path"})
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"] = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key
            self._client = boto3.client("s3", **kwargs)
            logger.info(f"S3 client initialized for bucket: {self.bucket}")
        return self._client

    def public_url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _put(self, key: str, content: bytes, content_type: str) -> None:
        self._get_client().put_object(
            Bucket=self.bucket,
            Key=key,
            Body=content,
            ContentType=content_type,
        )

    async def publish(self, key: str, content: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(self._put, key, content, content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3] Upload of {key} failed: {e}")
            raise StorageError(key, str(e)) from e
        return self.public_url_for(key)


def build_publisher() -> ContentPublisher:
    """Select the publisher configured by STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "s3":
        return S3ContentPublisher(
            bucket=settings.S3_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            public_url=settings.S3_PUBLIC_URL,
            region=settings.AWS_REGION,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
        )
    if backend == "local":
        return LocalContentPublisher(settings.GENERATED_DIR, settings.PUBLIC_BASE_URL)
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
