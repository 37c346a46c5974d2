import logging
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .chat_storage import ChatStorage, StorageError

logger = logging.getLogger(__name__)


class MongoDBChatStorage(ChatStorage):
    """Storage shared through a MongoDB collection, one document per key.

    The sync methods use pymongo, the async ones motor so that the event loop
    never waits on a server round trip.
    """
    def __init__(
        self,
        *,
        mongo_uri: str,
        mongo_db: str,
        mongo_collection: str,
    ):
        if not mongo_uri or not mongo_db or not mongo_collection:
            raise ValueError("MongoDB URI, database, and collection are required")
        self.mongo_uri = mongo_uri
        self.mongo_db = mongo_db
        self.mongo_collection = mongo_collection
        self._client = MongoClient(mongo_uri)
        self._coll = self._client[mongo_db][mongo_collection]
        self._async_client = AsyncIOMotorClient(mongo_uri)
        self._async_coll = self._async_client[mongo_db][mongo_collection]

    @staticmethod
    def _value_of(doc: Optional[dict]) -> Optional[str]:
        if doc is None:
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    @staticmethod
    def _update(value: str) -> dict:
        return {"$set": {"value": value, "updated_at": datetime.now(timezone.utc)}}

    def get_item(self, key: str) -> Optional[str]:
        try:
            doc = self._coll.find_one({"_id": key}, {"value": 1})
        except PyMongoError as e:
            raise StorageError(f"Failed to read '{key}' from MongoDB: {e}", key=key)
        return self._value_of(doc)

    def set_item(self, key: str, value: str) -> None:
        try:
            self._coll.update_one({"_id": key}, self._update(value), upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to write '{key}' to MongoDB: {e}", key=key)
        logger.debug(f"[STORAGE] Stored {len(value)} chars under '{key}' in {self.mongo_db}.{self.mongo_collection}")

    def remove_item(self, key: str) -> None:
        try:
            self._coll.delete_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(f"Failed to remove '{key}' from MongoDB: {e}", key=key)

    async def get_item_async(self, key: str) -> Optional[str]:
        try:
            doc = await self._async_coll.find_one({"_id": key}, {"value": 1})
        except PyMongoError as e:
            raise StorageError(f"Failed to read '{key}' from MongoDB: {e}", key=key)
        return self._value_of(doc)

    async def set_item_async(self, key: str, value: str) -> None:
        try:
            await self._async_coll.update_one({"_id": key}, self._update(value), upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to write '{key}' to MongoDB: {e}", key=key)
        logger.debug(f"[STORAGE] Stored {len(value)} chars under '{key}' in {self.mongo_db}.{self.mongo_collection}")

    async def remove_item_async(self, key: str) -> None:
        try:
            await self._async_coll.delete_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(f"Failed to remove '{key}' from MongoDB: {e}", key=key)

    def close(self) -> None:
        self._client.close()
        self._async_client.close()
