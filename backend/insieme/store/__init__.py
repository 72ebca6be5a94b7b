"""Document store over MongoDB: collection + id addressed documents."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class DocumentStore:
    """
    Key-value document access with last-writer-wins semantics.

    Each document is stored with ``_id`` equal to its id; ``_id`` is never
    returned to callers. No cross-document transactions are used.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialize store with MongoDB database."""
        self.db = db

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document, or None if it does not exist."""
        try:
            return await self.db[collection].find_one({"_id": doc_id}, {"_id": 0})
        except PyMongoError as e:
            raise PersistenceError(
                f"Read failed for {collection}/{doc_id}",
                details={"error": str(e)},
            ) from e

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully overwrite the document with this id."""
        document = {**data, "id": doc_id, "_id": doc_id}
        try:
            await self.db[collection].replace_one({"_id": doc_id}, document, upsert=True)
        except PyMongoError as e:
            raise PersistenceError(
                f"Write failed for {collection}/{doc_id}",
                details={"error": str(e)},
            ) from e

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        """
        Merge fields into an existing document.

        Returns:
            False if no document with this id exists (nothing is created).
        """
        try:
            result = await self.db[collection].update_one({"_id": doc_id}, {"$set": fields})
        except PyMongoError as e:
            raise PersistenceError(
                f"Update failed for {collection}/{doc_id}",
                details={"error": str(e)},
            ) from e
        return result.matched_count > 0

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Store a document under a freshly allocated id and return the id."""
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def find(
        self,
        collection: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        descending: bool = True,
    ) -> List[Dict[str, Any]]:
        """Return all documents whose fields equal the given filters."""
        try:
            cursor = self.db[collection].find(filters, {"_id": 0})
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else 1)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(
                f"Query failed for {collection}",
                details={"error": str(e), "filters": filters},
            ) from e


async def create_indexes(db: AsyncIOMotorDatabase, settings) -> None:
    """Create database indexes for the list views."""
    try:
        await db[settings.WORKSHEETS_COLLECTION].create_index(
            [("createdBy", 1), ("createdAt", -1)]
        )
        await db[settings.SUBMISSIONS_COLLECTION].create_index("userId")
        await db[settings.SUBMISSIONS_COLLECTION].create_index("worksheetId")
        await db[settings.PROBLEMS_COLLECTION].create_index(
            [("createdBy", 1), ("createdAt", -1)]
        )
        await db[settings.PRACTICE_SUBMISSIONS_COLLECTION].create_index("userId")
    except PyMongoError as e:
        logger.warning(f"Index creation warning: {e}")
        # Don't fail startup if indexes already exist
