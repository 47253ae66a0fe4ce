from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from app.config import settings

logger = logging.getLogger(__name__)

LOCAL_UPLOAD_URL_PREFIX = '/uploads'


class BlobStorageError(Exception):
    pass


class BlobStorage(Protocol):
    async def upload(self, key: str, data: bytes, *, content_type: str | None = None) -> None: ...

    async def download_url(self, key: str) -> str: ...


def bom_image_key(bom_table_id: str) -> str:
    return f'bom-images/{bom_table_id}'


class LocalBlobStorage:
    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or settings.upload_dir).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise BlobStorageError(f'Invalid blob key: {key}')
        return path

    def _write(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def upload(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        try:
            await run_in_threadpool(self._write, key, data)
        except OSError as exc:
            raise BlobStorageError(f'Failed to store {key}: {exc}') from exc

    async def download_url(self, key: str) -> str:
        if not self._path_for(key).exists():
            raise BlobStorageError(f'No blob stored under {key}')
        return f'{LOCAL_UPLOAD_URL_PREFIX}/{key}'


class GcsBlobStorage:
    def __init__(self, client: storage.Client | None = None) -> None:
        if not settings.storage_bucket:
            raise ValueError('STORAGE_BUCKET is required when BLOB_STORAGE=gcs')
        self.client = client or storage.Client(project=settings.firebase_project_id)
        self.bucket = self.client.bucket(settings.storage_bucket)

    async def upload(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        blob = self.bucket.blob(key)
        try:
            await run_in_threadpool(blob.upload_from_string, data, content_type=content_type or 'application/octet-stream')
        except GoogleAPICallError as exc:
            raise BlobStorageError(f'Failed to upload {key}: {exc}') from exc
        logger.info('Uploaded %s (%d bytes) to bucket %s', key, len(data), settings.storage_bucket)

    async def download_url(self, key: str) -> str:
        return self.bucket.blob(key).public_url
