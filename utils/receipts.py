from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from config import config
from exceptions import NotFoundError, StorageError
from logging_config import get_logger

logger = get_logger("receipts")


class ReceiptStorage:
    """
    Receipt images in a GridFS bucket.

    Expenses only keep the opaque reference returned by ``store``.
    """

    def __init__(self, store, bucket_name: str = None):
        self._store = store
        self._bucket_name = bucket_name or config.RECEIPTS_BUCKET
        self._bucket = None

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            self._bucket = AsyncIOMotorGridFSBucket(self._store.db, bucket_name=self._bucket_name)
        return self._bucket

    @staticmethod
    def _object_id(reference: str) -> ObjectId:
        try:
            return ObjectId(reference)
        except (InvalidId, TypeError):
            raise NotFoundError(f"Receipt {reference} not found")

    async def store(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        try:
            file_id = await self.bucket.upload_from_stream(path, data, metadata={"content_type": content_type})
        except PyMongoError as e:
            raise StorageError("Failed to upload receipt") from e
        logger.info("Receipt stored", extra={"data": {"path": path, "bytes": len(data)}})
        return str(file_id)

    async def open(self, reference: str) -> bytes:
        try:
            stream = await self.bucket.open_download_stream(self._object_id(reference))
            return await stream.read()
        except NoFile:
            raise NotFoundError(f"Receipt {reference} not found")
        except PyMongoError as e:
            raise StorageError("Failed to download receipt") from e

    async def delete(self, reference: str) -> None:
        try:
            await self.bucket.delete(self._object_id(reference))
        except NoFile:
            logger.warning("Receipt already gone", extra={"data": {"reference": reference}})
        except PyMongoError as e:
            raise StorageError("Failed to delete receipt") from e
