"""Object storage module supporting multiple backends.

Supports: S3, MinIO and other S3-compatible storage, plus a local
filesystem backend for development. Unlike a single-bucket store, every
operation names its bucket because sources and renditions live apart.
"""

import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from transcode_worker.core.config import Settings

# Error codes S3 uses for a missing object or bucket on GET/HEAD
NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""
    pass


@dataclass
class StorageResult:
    """Result of a storage upload."""
    success: bool
    key: str
    url: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # s3, minio, local
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"
    cdn_domain: Optional[str] = None
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        """Build storage configuration from worker settings."""
        return cls(
            backend=settings.STORAGE_BACKEND,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            local_path=settings.LOCAL_STORAGE_PATH,
            cdn_domain=settings.CDN_DOMAIN,
            connect_timeout=settings.STORAGE_CONNECT_TIMEOUT,
            read_timeout=settings.STORAGE_READ_TIMEOUT,
        )


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    def __init__(self, config: StorageConfig):
        self.config = config

    @abstractmethod
    def upload(
        self,
        file_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to storage."""
        pass

    @abstractmethod
    def download(self, bucket: str, key: str, destination: str) -> int:
        """Download an object to a local file and return its size in bytes.

        Raises:
            ObjectNotFoundError: If the object does not exist
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    def exists(self, bucket: str, key: str) -> bool:
        """Check if an object exists.

        A missing object is reported as False; any other failure raises
        StorageError so callers can tell "not yet" from "broken".
        """
        pass

    @abstractmethod
    def presign(self, bucket: str, key: str, expires_in: int = 60) -> str:
        """Get a time-limited read reference for an object."""
        pass

    def public_url(self, bucket: str, key: str) -> str:
        """Get the public (CDN or bucket) URL of a published object."""
        if self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self.config.region}.amazonaws.com/{key}"


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Buckets are directories under ``local_path``.
    """

    def __init__(self, config: StorageConfig):
        super().__init__(config)
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, bucket: str, key: str) -> Path:
        """Get full path for a key."""
        return self.base_path / bucket / key

    def upload(
        self,
        file_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to local storage."""
        try:
            dest_path = self._get_full_path(bucket, key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            shutil.copy2(file_path, dest_path)
            file_size = dest_path.stat().st_size

            return StorageResult(
                success=True,
                key=key,
                url=self.public_url(bucket, key),
                file_size=file_size,
            )
        except OSError as e:
            return StorageResult(
                success=False,
                key=key,
                url="",
                error_message=str(e),
            )

    def download(self, bucket: str, key: str, destination: str) -> int:
        """Download a file from local storage."""
        src_path = self._get_full_path(bucket, key)
        if not src_path.is_file():
            raise ObjectNotFoundError(f"Object not found: {bucket}/{key}")
        try:
            shutil.copy2(src_path, destination)
            return os.path.getsize(destination)
        except OSError as e:
            raise StorageError(f"Failed to copy {bucket}/{key}: {e}") from e

    def exists(self, bucket: str, key: str) -> bool:
        """Check if a file exists in local storage."""
        return self._get_full_path(bucket, key).is_file()

    def presign(self, bucket: str, key: str, expires_in: int = 60) -> str:
        """Local files are read directly, so the reference is the path."""
        src_path = self._get_full_path(bucket, key)
        if not src_path.is_file():
            raise ObjectNotFoundError(f"Object not found: {bucket}/{key}")
        return str(src_path.absolute())

    def public_url(self, bucket: str, key: str) -> str:
        """Get URL for a file."""
        if self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"
        return f"file://{self._get_full_path(bucket, key).absolute()}"


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig, client: Optional[Any] = None):
        super().__init__(config)
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            boto_config = BotoConfig(
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
                retries={"max_attempts": 3, "mode": "standard"},
            )
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "config": boto_config,
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = boto_config.merge(BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                ))
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def upload(
        self,
        file_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to S3/MinIO."""
        try:
            client = self._get_client()
            file_size = os.path.getsize(file_path)

            with open(file_path, "rb") as f:
                response = client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )

            etag = response.get("ETag", "").strip('"')

            return StorageResult(
                success=True,
                key=key,
                url=self.public_url(bucket, key),
                file_size=file_size,
                etag=etag,
            )
        except (ClientError, BotoCoreError, OSError) as e:
            return StorageResult(
                success=False,
                key=key,
                url="",
                error_message=str(e),
            )

    def download(self, bucket: str, key: str, destination: str) -> int:
        """Stream an object from S3/MinIO into a local file."""
        try:
            response = self._get_client().get_object(Bucket=bucket, Key=key)
            with open(destination, "wb") as f:
                shutil.copyfileobj(response["Body"], f)
            return os.path.getsize(destination)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Object not found: {bucket}/{key}") from e
            raise StorageError(f"Failed to download {bucket}/{key}: {e}") from e
        except (BotoCoreError, OSError) as e:
            raise StorageError(f"Failed to download {bucket}/{key}: {e}") from e

    def exists(self, bucket: str, key: str) -> bool:
        """Check if an object exists in S3/MinIO."""
        try:
            self._get_client().head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise StorageError(f"Failed to check {bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check {bucket}/{key}: {e}") from e

    def presign(self, bucket: str, key: str, expires_in: int = 60) -> str:
        """Generate a presigned GET URL."""
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign {bucket}/{key}: {e}") from e


def _error_code(error: ClientError) -> str:
    """Extract the S3 error code from a botocore ClientError."""
    return str(error.response.get("Error", {}).get("Code", ""))


def create_storage(config: StorageConfig) -> StorageBackend:
    """Create appropriate storage backend."""
    backend_type = config.backend.lower()

    if backend_type == "local":
        return LocalStorage(config)
    elif backend_type in ("s3", "minio", "aws"):
        return S3Storage(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")
