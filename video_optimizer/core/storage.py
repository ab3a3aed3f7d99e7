"""Disk storage supporting multiple backends.

Supports: local filesystem, S3, MinIO, and other S3-compatible storage.
Disks are addressed by name through :class:`StorageManager`, the same way a
field configuration refers to them.
"""

import mimetypes
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from video_optimizer.core.config import settings

Content = Union[bytes, BinaryIO]

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class Visibility(str, Enum):
    """Whether a stored object is publicly addressable."""
    PUBLIC = "public"
    PRIVATE = "private"


# File modes used by local disks for each visibility.
LOCAL_FILE_MODES = {
    Visibility.PUBLIC: 0o644,
    Visibility.PRIVATE: 0o600,
}

S3_ACLS = {
    Visibility.PUBLIC: "public-read",
    Visibility.PRIVATE: "private",
}


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class FileNotFoundInStorageError(StorageError):
    """Raised when a path does not exist on a disk."""

    pass


class UnableToCheckExistenceError(StorageError):
    """Raised when a disk cannot tell whether a path exists."""

    pass


class UnsupportedTemporaryURLError(StorageError):
    """Raised by disks that cannot mint temporary signed URLs."""

    pass


class UnsupportedLocalPathError(StorageError):
    """Raised by disks whose objects have no local filesystem path."""

    pass


@dataclass
class StorageConfig:
    """Storage configuration for one disk."""
    backend: str  # local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage/app"
    base_url: Optional[str] = None
    cdn_domain: Optional[str] = None
    cdn_enabled: bool = False


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if a file exists."""
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read the full content of a file."""
        pass

    @abstractmethod
    def open_stream(self, key: str) -> BinaryIO:
        """Open a file for streaming reads. Callers close the stream."""
        pass

    @abstractmethod
    def put(
        self,
        key: str,
        content: Content,
        visibility: Visibility = Visibility.PUBLIC,
    ) -> None:
        """Write a file, replacing any existing one."""
        pass

    @abstractmethod
    def move(
        self,
        source: str,
        destination: str,
        visibility: Optional[Visibility] = None,
    ) -> None:
        """Move a file within this disk."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a file. Returns False when nothing was deleted."""
        pass

    @abstractmethod
    def delete_directory(self, key: str) -> bool:
        """Delete a directory (or key prefix) and everything below it."""
        pass

    @abstractmethod
    def url(self, key: str) -> str:
        """Get the plain, non-expiring URL for a file."""
        pass

    @abstractmethod
    def temporary_url(self, key: str, expires_in: int = 300) -> str:
        """Get a signed URL valid for ``expires_in`` seconds."""
        pass

    @abstractmethod
    def size(self, key: str) -> int:
        pass

    @abstractmethod
    def mime_type(self, key: str) -> str:
        pass

    @abstractmethod
    def path(self, key: str) -> str:
        """Get the local filesystem path of a file."""
        pass

    @property
    def is_local(self) -> bool:
        return False


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Writes go to a temporary file in the destination directory which is then
    renamed over the target, so readers never observe a partial file.
    """

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = config.base_url
        self.cdn_domain = config.cdn_domain
        self.cdn_enabled = config.cdn_enabled

    @property
    def is_local(self) -> bool:
        return True

    def _get_full_path(self, key: str) -> Path:
        if "\x00" in key:
            raise StorageError(f"Invalid path {key!r}: embedded null byte")
        try:
            full_path = (self.base_path / key.lstrip("/")).resolve()
        except (OSError, ValueError) as e:
            raise StorageError(f"Invalid path {key!r}: {e}") from e
        if full_path != self.base_path and self.base_path not in full_path.parents:
            raise StorageError(f"Path escapes disk root: {key}")
        return full_path

    def exists(self, key: str) -> bool:
        try:
            return self._get_full_path(key).is_file()
        except (OSError, ValueError) as e:
            raise UnableToCheckExistenceError(str(e)) from e

    def get(self, key: str) -> bytes:
        try:
            return self._get_full_path(key).read_bytes()
        except FileNotFoundError as e:
            raise FileNotFoundInStorageError(key) from e
        except OSError as e:
            raise StorageError(f"Unable to read {key}: {e}") from e

    def open_stream(self, key: str) -> BinaryIO:
        try:
            return open(self._get_full_path(key), "rb")
        except FileNotFoundError as e:
            raise FileNotFoundInStorageError(key) from e
        except OSError as e:
            raise StorageError(f"Unable to read {key}: {e}") from e

    def put(
        self,
        key: str,
        content: Content,
        visibility: Visibility = Visibility.PUBLIC,
    ) -> None:
        dest_path = self._get_full_path(key)
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=dest_path.parent, prefix=f".{dest_path.name}.", suffix=".part"
            )
        except OSError as e:
            raise StorageError(f"Unable to write {key}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                if isinstance(content, (bytes, bytearray)):
                    f.write(content)
                else:
                    shutil.copyfileobj(content, f)
            os.chmod(tmp_name, LOCAL_FILE_MODES[Visibility(visibility)])
            os.replace(tmp_name, dest_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Unable to write {key}: {e}") from e

    def move(
        self,
        source: str,
        destination: str,
        visibility: Optional[Visibility] = None,
    ) -> None:
        src_path = self._get_full_path(source)
        dest_path = self._get_full_path(destination)
        if not src_path.is_file():
            raise FileNotFoundInStorageError(source)

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(src_path, dest_path)
            if visibility is not None:
                os.chmod(dest_path, LOCAL_FILE_MODES[Visibility(visibility)])
        except OSError as e:
            raise StorageError(f"Unable to move {source} to {destination}: {e}") from e

    def delete(self, key: str) -> bool:
        file_path = self._get_full_path(key)
        try:
            if file_path.is_file():
                file_path.unlink()
                return True
            return False
        except OSError as e:
            raise StorageError(f"Unable to delete {key}: {e}") from e

    def delete_directory(self, key: str) -> bool:
        dir_path = self._get_full_path(key)
        if dir_path == self.base_path or not dir_path.is_dir():
            return False
        try:
            shutil.rmtree(dir_path)
            return True
        except OSError as e:
            raise StorageError(f"Unable to delete directory {key}: {e}") from e

    def url(self, key: str) -> str:
        key = key.lstrip("/")
        if self.cdn_enabled and self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{key}"
        return self._get_full_path(key).as_uri()

    def temporary_url(self, key: str, expires_in: int = 300) -> str:
        raise UnsupportedTemporaryURLError("Local disks do not support temporary URLs")

    def size(self, key: str) -> int:
        try:
            return self._get_full_path(key).stat().st_size
        except FileNotFoundError as e:
            raise FileNotFoundInStorageError(key) from e

    def mime_type(self, key: str) -> str:
        if not self.exists(key):
            raise FileNotFoundInStorageError(key)
        mime_type, _ = mimetypes.guess_type(key)
        return mime_type or "application/octet-stream"

    def path(self, key: str) -> str:
        return str(self._get_full_path(key))


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key or None,
                "aws_secret_access_key": self.config.secret_key or None,
            }

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def _head(self, key: str) -> dict:
        try:
            return self._get_client().head_object(Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_OBJECT_CODES:
                raise FileNotFoundInStorageError(key) from e
            raise StorageError(str(e)) from e
        except BotoCoreError as e:
            raise StorageError(str(e)) from e

    def exists(self, key: str) -> bool:
        try:
            self._head(key)
            return True
        except FileNotFoundInStorageError:
            return False
        except StorageError as e:
            raise UnableToCheckExistenceError(str(e)) from e

    def open_stream(self, key: str) -> BinaryIO:
        try:
            response = self._get_client().get_object(Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_OBJECT_CODES:
                raise FileNotFoundInStorageError(key) from e
            raise StorageError(str(e)) from e
        except BotoCoreError as e:
            raise StorageError(str(e)) from e
        return response["Body"]

    def get(self, key: str) -> bytes:
        body = self.open_stream(key)
        try:
            return body.read()
        finally:
            body.close()

    def put(
        self,
        key: str,
        content: Content,
        visibility: Visibility = Visibility.PUBLIC,
    ) -> None:
        client = self._get_client()
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        acl = S3_ACLS[Visibility(visibility)]
        try:
            if isinstance(content, (bytes, bytearray)):
                client.put_object(
                    Bucket=self.config.bucket,
                    Key=key,
                    Body=bytes(content),
                    ContentType=content_type,
                    ACL=acl,
                )
            else:
                client.upload_fileobj(
                    content,
                    self.config.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type, "ACL": acl},
                )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Unable to write {key}: {e}") from e

    def move(
        self,
        source: str,
        destination: str,
        visibility: Optional[Visibility] = None,
    ) -> None:
        client = self._get_client()
        copy_kwargs = {
            "Bucket": self.config.bucket,
            "Key": destination,
            "CopySource": {"Bucket": self.config.bucket, "Key": source},
        }
        if visibility is not None:
            copy_kwargs["ACL"] = S3_ACLS[Visibility(visibility)]
        try:
            client.copy_object(**copy_kwargs)
            client.delete_object(Bucket=self.config.bucket, Key=source)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_OBJECT_CODES:
                raise FileNotFoundInStorageError(source) from e
            raise StorageError(f"Unable to move {source} to {destination}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Unable to move {source} to {destination}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Unable to delete {key}: {e}") from e

    def delete_directory(self, key: str) -> bool:
        client = self._get_client()
        prefix = key.strip("/") + "/"
        try:
            response = client.list_objects_v2(Bucket=self.config.bucket, Prefix=prefix)
            keys = [obj["Key"] for obj in response.get("Contents", [])]
            for object_key in keys:
                client.delete_object(Bucket=self.config.bucket, Key=object_key)
            return bool(keys)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Unable to delete directory {key}: {e}") from e

    def url(self, key: str) -> str:
        if self.config.cdn_enabled and self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}/{key}"
        region = self.config.region or "us-east-1"
        return f"https://{self.config.bucket}.s3.{region}.amazonaws.com/{key}"

    def temporary_url(self, key: str, expires_in: int = 300) -> str:
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.config.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise UnsupportedTemporaryURLError(str(e)) from e

    def size(self, key: str) -> int:
        return int(self._head(key).get("ContentLength", 0))

    def mime_type(self, key: str) -> str:
        return self._head(key).get("ContentType") or "application/octet-stream"

    def path(self, key: str) -> str:
        raise UnsupportedLocalPathError("S3 disks have no local filesystem path")


def create_backend(config: StorageConfig) -> StorageBackend:
    """Create the storage backend described by ``config``."""
    backend_type = config.backend.lower()

    if backend_type == "local":
        return LocalStorage(config)
    elif backend_type in ("s3", "minio", "aws"):
        return S3Storage(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")


class StorageManager:
    """Registry of named disks.

    Built from settings unless explicit disks are given. The ``local`` disk
    holds temporary uploads and scratch files, ``public`` holds publicly
    served files and ``s3`` is available when a bucket is configured.
    """

    _instance: Optional["StorageManager"] = None

    def __init__(
        self,
        disks: Optional[dict[str, StorageBackend]] = None,
        default_disk: Optional[str] = None,
    ):
        self._disks: dict[str, StorageBackend] = (
            dict(disks) if disks is not None else self._disks_from_settings()
        )
        self.default_disk = default_disk or settings.DEFAULT_DISK

    @staticmethod
    def _disks_from_settings() -> dict[str, StorageBackend]:
        disks: dict[str, StorageBackend] = {
            "local": LocalStorage(StorageConfig(
                backend="local",
                local_path=settings.LOCAL_STORAGE_PATH,
            )),
            "public": LocalStorage(StorageConfig(
                backend="local",
                local_path=settings.PUBLIC_STORAGE_PATH,
                base_url=settings.PUBLIC_STORAGE_URL,
                cdn_domain=settings.CDN_DOMAIN,
                cdn_enabled=settings.CDN_ENABLED,
            )),
        }
        if settings.STORAGE_BUCKET:
            disks["s3"] = S3Storage(StorageConfig(
                backend="s3",
                bucket=settings.STORAGE_BUCKET,
                region=settings.STORAGE_REGION,
                access_key=settings.STORAGE_ACCESS_KEY,
                secret_key=settings.STORAGE_SECRET_KEY,
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                use_ssl=settings.STORAGE_USE_SSL,
                cdn_domain=settings.CDN_DOMAIN,
                cdn_enabled=settings.CDN_ENABLED,
            ))
        return disks

    @classmethod
    def get_instance(cls) -> "StorageManager":
        """Get singleton storage manager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def disk(self, name: Optional[str] = None) -> StorageBackend:
        """Get a disk by name, or the default disk."""
        disk_name = name or self.default_disk
        try:
            return self._disks[disk_name]
        except KeyError:
            raise StorageError(f"Disk [{disk_name}] is not configured") from None

    def register(self, name: str, backend: StorageBackend) -> None:
        self._disks[name] = backend

    def has_disk(self, name: str) -> bool:
        return name in self._disks


def get_storage() -> StorageManager:
    """Get the default storage manager."""
    return StorageManager.get_instance()
