#!/usr/bin/env python3
"""
Cloud storage disks for uploading exports and fetching import files.

Two drivers are available:
- ``local``: a directory on this machine (also handy for tests)
- ``s3``: Amazon S3 or any S3-compatible service via boto3
  (set ``endpoint_url`` for DigitalOcean Spaces, MinIO, ...)
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deaddrop.errors import ConfigurationError, SourceNotFoundError, StorageError

logger = logging.getLogger(__name__)


class CloudStorage:
    """Base class for storage disks"""

    def exists(self, path: str) -> bool:
        raise NotImplementedError("Subclasses must implement exists")

    def get(self, path: str) -> bytes:
        raise NotImplementedError("Subclasses must implement get")

    def put(self, path: str, data: bytes):
        raise NotImplementedError("Subclasses must implement put")

    def delete(self, path: str):
        raise NotImplementedError("Subclasses must implement delete")

    def put_file(self, path: str, local_path: Path):
        with open(local_path, 'rb') as f:
            self.put(path, f.read())

    def download_file(self, path: str, local_path: Path):
        Path(local_path).write_bytes(self.get(path))


class LocalDiskStorage(CloudStorage):
    """Disk backed by a local directory"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _full_path(self, path: str) -> Path:
        full = (self.root / path.lstrip('/')).resolve()
        if self.root.resolve() not in full.parents and full != self.root.resolve():
            raise StorageError(f"Path escapes disk root: {path}")
        return full

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def get(self, path: str) -> bytes:
        full = self._full_path(path)
        if not full.is_file():
            raise SourceNotFoundError(f"File not found on disk: {path}", path)
        return full.read_bytes()

    def put(self, path: str, data: bytes):
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)

    def put_file(self, path: str, local_path: Path):
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, full)

    def delete(self, path: str):
        full = self._full_path(path)
        if full.exists():
            full.unlink()


class S3Storage(CloudStorage):
    """Disk backed by an S3 bucket"""

    def __init__(self, bucket: str, prefix: str = '', client: Any = None, **client_options):
        if not bucket:
            raise ConfigurationError("S3 disk needs a bucket")
        self.bucket = bucket
        self.prefix = prefix.strip('/')
        self.client = client or boto3.client('s3', **client_options)

    def _key(self, path: str) -> str:
        path = path.lstrip('/')
        return f"{self.prefix}/{path}" if self.prefix else path

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageError(f"Could not check s3://{self.bucket}/{self._key(path)}: {e}") from e

    def get(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
            return response['Body'].read()
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey'):
                raise SourceNotFoundError(f"File not found on cloud storage: {path}", path) from e
            raise StorageError(f"Could not read s3://{self.bucket}/{self._key(path)}: {e}") from e

    def put(self, path: str, data: bytes):
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._key(path), Body=data,
                                   ContentType="application/sql")
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not write s3://{self.bucket}/{self._key(path)}: {e}") from e

    def put_file(self, path: str, local_path: Path):
        try:
            self.client.upload_file(str(local_path), self.bucket, self._key(path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not upload to s3://{self.bucket}/{self._key(path)}: {e}") from e

    def download_file(self, path: str, local_path: Path):
        try:
            self.client.download_file(self.bucket, self._key(path), str(local_path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not download s3://{self.bucket}/{self._key(path)}: {e}") from e

    def delete(self, path: str):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._key(path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not delete s3://{self.bucket}/{self._key(path)}: {e}") from e


class StorageRegistry:
    """Builds and caches named disks from ``storage.disks``"""

    def __init__(self, disks: Dict[str, Dict[str, Any]], local_root: Path):
        self.disks = disks or {}
        self.local_root = Path(local_root)
        self._instances: Dict[str, CloudStorage] = {}

    def register(self, name: str, disk: CloudStorage):
        self._instances[name] = disk

    def get(self, name: str) -> CloudStorage:
        if name not in self._instances:
            self._instances[name] = self._create(name)
        return self._instances[name]

    def _create(self, name: str) -> CloudStorage:
        definition = self.disks.get(name)
        if definition is None:
            if name == 'local':
                return LocalDiskStorage(self.local_root)
            raise ConfigurationError(f"Storage disk '{name}' is not configured")

        driver = definition.get('driver', 'local')
        if driver == 'local':
            return LocalDiskStorage(Path(definition.get('root', self.local_root)))
        if driver == 's3':
            client_options = {}
            for option in ('region_name', 'endpoint_url', 'aws_access_key_id', 'aws_secret_access_key'):
                if definition.get(option):
                    client_options[option] = definition[option]
            if definition.get('region') and 'region_name' not in client_options:
                client_options['region_name'] = definition['region']
            return S3Storage(definition.get('bucket'), definition.get('prefix', ''), **client_options)
        raise ConfigurationError(f"Unsupported storage driver '{driver}' for disk '{name}'")


@dataclass(frozen=True)
class UploadResult:
    cloud_path: str
    storage_disk: str
    local_deleted: bool


class CloudUploader:
    """Hands finished export files to a cloud disk"""

    def __init__(self, registry: StorageRegistry, disk: str = 'local', storage_path: str = 'dead-drop',
                 delete_local_after_upload: bool = False):
        self.registry = registry
        self.disk = disk
        self.storage_path = storage_path.strip('/')
        self.delete_local_after_upload = delete_local_after_upload

    def upload(self, local_file: Path, disk: Optional[str] = None) -> Optional[UploadResult]:
        """Upload ``local_file``; returns None when the target is the local disk"""
        disk = disk or self.disk
        if not disk or disk == 'local':
            return None

        local_file = Path(local_file)
        cloud_path = f"{self.storage_path}/{local_file.name}" if self.storage_path else local_file.name
        self.registry.get(disk).put_file(cloud_path, local_file)
        logger.info(f"Uploaded {local_file.name} to {disk}:{cloud_path}")

        local_deleted = False
        if self.delete_local_after_upload:
            local_file.unlink()
            local_deleted = True

        return UploadResult(cloud_path=cloud_path, storage_disk=disk, local_deleted=local_deleted)


class CloudDownloader:
    """Fetches import files from a cloud disk into a local temp directory.

    Every download gets its own temp file, so concurrent imports of files
    sharing a basename never overwrite each other.
    """

    def __init__(self, registry: StorageRegistry, temp_dir: Path):
        self.registry = registry
        self.temp_dir = Path(temp_dir)

    def download(self, cloud_path: str, disk: str) -> Path:
        storage = self.registry.get(disk)
        if not storage.exists(cloud_path):
            raise SourceNotFoundError(f"File not found on cloud storage: {cloud_path}", cloud_path)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        stem, suffix = os.path.splitext(os.path.basename(cloud_path))
        fd, name = tempfile.mkstemp(prefix=f"{stem}-", suffix=suffix or '.sql', dir=self.temp_dir)
        os.close(fd)
        local_path = Path(name)
        try:
            storage.download_file(cloud_path, local_path)
        except Exception:
            local_path.unlink()
            raise
        logger.info(f"Downloaded {disk}:{cloud_path} to {local_path}")
        return local_path
