"""Object store adapters. Local filesystem for dev, S3 (or MinIO) for production.

boto3 is synchronous, so S3 calls are wrapped with asyncio.to_thread to keep
the event loop free while a request waits on the store.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from filevault.services.exceptions import StorageError, StorageWriteError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

ACL_PUBLIC_READ = "public-read"
ACL_PRIVATE = "private"


@dataclass
class ObjectMeta:
    """What the store reports about an object after writing it."""
    size: int
    name: Optional[str]
    type: str


class ObjectStore(ABC):
    """Capabilities the file lifecycle service needs from blob storage."""

    @abstractmethod
    async def put(
        self,
        key: str,
        content: bytes,
        content_type: Optional[str],
        acl: str,
        filename: Optional[str] = None,
    ) -> ObjectMeta:
        """Store a blob under key. Raises StorageWriteError on failure."""

    @abstractmethod
    async def presigned_url(self, key: str, expires_in: int) -> str:
        """Return a time-limited read URL for key. Raises StorageError on failure."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the blob at key. Deleting a missing key is not an error."""

    async def _discard(self, key: str) -> None:
        """Remove a half-written object before put() reports failure. Never raises."""
        try:
            await self.delete(key)
        except Exception as e:
            logger.warning(f"Could not remove partially written object {key}: {e}")


class LocalObjectStore(ObjectStore):
    """Stores objects as files under a root directory.

    Content type and original filename go in a JSON sidecar next to each
    object so put() can report them back like a real store would.
    """

    SIDECAR_SUFFIX = ".meta.json"

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        parts = [p for p in key.strip("/").split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    def _sidecar(self, path: Path) -> Path:
        return path.with_name(path.name + self.SIDECAR_SUFFIX)

    async def put(self, key, content, content_type, acl, filename=None) -> ObjectMeta:
        path = self._path(key)
        sidecar = self._sidecar(path)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            await self._discard(key)
            raise StorageWriteError(f"Failed to write {key}: {e}") from e

        try:
            async with aiofiles.open(sidecar, "w") as f:
                await f.write(json.dumps({
                    "content_type": content_type or DEFAULT_CONTENT_TYPE,
                    "filename": filename,
                    "acl": acl,
                }))

            stat = await aiofiles.os.stat(path)
            async with aiofiles.open(sidecar, "r") as f:
                meta = json.loads(await f.read())
        except OSError as e:
            await self._discard(key)
            raise StorageWriteError(f"Failed to write {key}: {e}") from e

        return ObjectMeta(size=stat.st_size, name=meta.get("filename"), type=meta["content_type"])

    async def presigned_url(self, key: str, expires_in: int) -> str:
        # Local dev only: a file URI with the expiry attached, nothing enforces it.
        expires_at = int(time.time()) + expires_in
        return f"{self._path(key).as_uri()}?expires={expires_at}"

    async def delete(self, key: str) -> None:
        path = self._path(key)
        for target in (path, self._sidecar(path)):
            try:
                await aiofiles.os.remove(target)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to delete {key}: {e}") from e


class S3ObjectStore(ObjectStore):
    """S3-compatible object store backed by boto3."""

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region_name,
            )
            client = session.client(
                "s3",
                endpoint_url=endpoint_url,
                config=Config(signature_version="s3v4"),
            )
        self.s3 = client

    async def put(self, key, content, content_type, acl, filename=None) -> ObjectMeta:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": content,
            "ContentType": content_type or DEFAULT_CONTENT_TYPE,
            "ACL": acl,
        }
        if filename:
            # S3 metadata and headers must be ASCII
            quoted = quote(filename)
            params["ContentDisposition"] = f'attachment; filename="{quoted}"'
            params["Metadata"] = {"filename": quoted}

        try:
            await asyncio.to_thread(self.s3.put_object, **params)
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(f"Failed to write s3://{self.bucket}/{key}: {e}") from e

        try:
            head = await asyncio.to_thread(self.s3.head_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            await self._discard(key)
            raise StorageWriteError(f"Failed to read back s3://{self.bucket}/{key}: {e}") from e
        logger.debug(f"Wrote s3://{self.bucket}/{key} ({head['ContentLength']} bytes)")

        stored_name = head.get("Metadata", {}).get("filename")
        return ObjectMeta(
            size=head["ContentLength"],
            name=unquote(stored_name) if stored_name else None,
            type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
        )

    async def presigned_url(self, key: str, expires_in: int) -> str:
        try:
            return await asyncio.to_thread(
                self.s3.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign s3://{self.bucket}/{key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.s3.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return
            raise StorageError(f"Failed to delete s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete s3://{self.bucket}/{key}: {e}") from e


def create_object_store(settings) -> ObjectStore:
    """Build the object store selected by OBJECT_STORE_TYPE."""
    if settings.OBJECT_STORE_TYPE == "local":
        return LocalObjectStore(settings.FILE_STORAGE_PATH)
    if settings.OBJECT_STORE_TYPE == "s3":
        return S3ObjectStore(
            settings.S3_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
        )
    raise ValueError(f"Unknown object store type: {settings.OBJECT_STORE_TYPE}")
