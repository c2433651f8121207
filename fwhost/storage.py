"""Content-addressed firmware file storage.

Files are named ``<sha1 hex digest>.cab``. Two backends exist: a plain
directory on disk and a MinIO bucket. Blocking calls run in a worker thread.
"""

import asyncio
import io
import logging
import os
import tempfile
from typing import Callable, Iterator

from minio import Minio
from minio.error import S3Error

from fwhost.config import Settings
from fwhost.errors import StorageError

logger = logging.getLogger(__name__)

CAB_CONTENT_TYPE = "application/vnd.ms-cab-compressed"
CHUNK_SIZE = 32 * 1024


def object_name(checksum: str) -> str:
    return f"{checksum}.cab"


class StoredObject:
    """An open stored file; iterate ``body()`` then call ``cleanup()``."""

    def __init__(self, body: Callable[[], Iterator[bytes]], cleanup: Callable[[], None]):
        self.body = body
        self.cleanup = cleanup


class FilesystemStorage:
    def __init__(self, root: str):
        self.root = root

    def _path(self, name: str) -> str:
        return os.path.join(self.root, os.path.basename(name))

    async def prepare(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    async def ping(self) -> bool:
        return os.path.isdir(self.root) and os.access(self.root, os.W_OK)

    def _write(self, name: str, data: bytes) -> None:
        os.makedirs(self.root, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile(dir=self.root, delete=False)
        try:
            tmp.write(data)
            tmp.flush()
            tmp.close()
            os.replace(tmp.name, self._path(name))
        except BaseException:
            tmp.close()
            if os.path.exists(tmp.name):
                os.unlink(tmp.name)
            raise

    async def put(self, name: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, name, data)
        except OSError as e:
            logger.exception("write failed for %s", name)
            raise StorageError(f"failed to write {name}") from e

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(os.unlink, self._path(name))
        except FileNotFoundError:
            logger.info("%s already absent from %s", name, self.root)

    async def open(self, name: str) -> StoredObject:
        try:
            fh = await asyncio.to_thread(open, self._path(name), "rb")
        except OSError as e:
            raise StorageError(f"failed to open {name}") from e

        def body():
            while chunk := fh.read(CHUNK_SIZE):
                yield chunk

        return StoredObject(body, fh.close)


class MinioStorage:
    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket

    async def prepare(self) -> None:
        try:
            if not await asyncio.to_thread(
                self.client.bucket_exists, bucket_name=self.bucket
            ):
                await asyncio.to_thread(self.client.make_bucket, bucket_name=self.bucket)
                logger.info("created MinIO bucket %s", self.bucket)
        except Exception:
            logger.exception("MinIO bucket check/create failed for %s", self.bucket)

    async def ping(self) -> bool:
        try:
            return await asyncio.to_thread(
                self.client.bucket_exists, bucket_name=self.bucket
            )
        except Exception:
            return False

    async def put(self, name: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                bucket_name=self.bucket,
                object_name=name,
                data=io.BytesIO(data),
                length=len(data),
                content_type=CAB_CONTENT_TYPE,
            )
        except (S3Error, OSError) as e:
            logger.exception("put_object failed for %s", name)
            raise StorageError(f"failed to write {name}") from e

    async def delete(self, name: str) -> None:
        await asyncio.to_thread(
            self.client.remove_object, bucket_name=self.bucket, object_name=name
        )

    async def open(self, name: str) -> StoredObject:
        try:
            obj = await asyncio.to_thread(
                self.client.get_object, bucket_name=self.bucket, object_name=name
            )
        except (S3Error, OSError) as e:
            raise StorageError(f"failed to open {name}") from e

        def body():
            for data in obj.stream(CHUNK_SIZE):
                yield data

        def cleanup():
            try:
                obj.close()
            finally:
                obj.release_conn()

        return StoredObject(body, cleanup)


def make_storage(settings: Settings):
    if settings.STORAGE_BACKEND == "filesystem":
        return FilesystemStorage(settings.DOWNLOAD_DIR)
    if settings.STORAGE_BACKEND == "minio":
        client = Minio(
            endpoint=settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        return MinioStorage(client, settings.MINIO_BUCKET)
    raise ValueError(f"unknown STORAGE_BACKEND {settings.STORAGE_BACKEND!r}")
