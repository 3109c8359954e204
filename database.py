from contextlib import contextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
import certifi

from logging_config import get_logger
from config import config
from constants import IN_QUERY_BATCH_SIZE
from exceptions import StorageError

logger = get_logger("database")

T = TypeVar("T")

# (field, operator, value); dotted fields reach into arrays of sub-documents
Filter = Tuple[str, str, Any]

_OPERATORS = {
    "!=": "$ne",
    "in": "$in",
    "not_in": "$nin",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
}


class DatabaseProxy:
    """Lazily creates the motor client on first use."""

    def __init__(self, uri: Optional[str] = None):
        self._uri = uri
        self._client = None

    def initialize(self):
        if self._client is None:
            uri = self._uri or config.MONGO_URI
            if not uri:
                logger.error("MONGO_URI not found in configuration!")
            if config.ENV == "production":
                self._client = AsyncIOMotorClient(uri, tlsCAFile=certifi.where())
            else:
                self._client = AsyncIOMotorClient(uri)
            logger.info(f"MongoDB client initialized for DB: {config.DB_NAME}")

    def reset(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def __getattr__(self, name):
        self.initialize()
        return getattr(self._client, name)

    def __getitem__(self, name):
        self.initialize()
        return self._client[name]


def to_mongo_filter(filters: Sequence[Filter]) -> Dict[str, Any]:
    """Translate (field, op, value) triples into a MongoDB query document."""
    query: Dict[str, Any] = {}
    for field, op, value in filters:
        if op in ("==", "array_contains"):
            condition = value
        elif op in _OPERATORS:
            condition = {_OPERATORS[op]: list(value) if op in ("in", "not_in") else value}
        else:
            raise ValueError(f"Unsupported filter operator: {op}")

        existing = query.get(field)
        if field not in query:
            query[field] = condition
        elif isinstance(existing, dict) and isinstance(condition, dict):
            existing.update(condition)
        else:
            query.setdefault("$and", []).append({field: condition})
    return query


def chunked(values: Iterable[T], size: int = IN_QUERY_BATCH_SIZE) -> List[List[T]]:
    items = list(dict.fromkeys(values))
    return [items[i:i + size] for i in range(0, len(items), size)]


def build_update(
    set_fields: Optional[Dict[str, Any]] = None,
    inc: Optional[Dict[str, float]] = None,
    add_to_set: Optional[Dict[str, Any]] = None,
    push: Optional[Dict[str, Any]] = None,
    pull: Optional[Dict[str, Any]] = None,
    unset: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    update: Dict[str, Any] = {}
    if set_fields:
        update["$set"] = dict(set_fields)
    if inc:
        update["$inc"] = dict(inc)
    if add_to_set:
        update["$addToSet"] = dict(add_to_set)
    if push:
        update["$push"] = dict(push)
    if pull:
        update["$pull"] = dict(pull)
    if unset:
        update["$unset"] = {field: "" for field in unset}
    if not update:
        raise ValueError("Update requires at least one operation")
    return update


@contextmanager
def _storage_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Store operation failed: {action}", exc_info=True)
        raise StorageError(f"Storage failure while trying to {action}") from e


class DocumentStore:
    """
    CRUD, atomic field operations, transactions and live queries over MongoDB.

    Documents are addressed by their string ``id`` field; Mongo's ``_id`` never
    leaves this class. Every method accepts the session handed to a
    ``run_transaction`` callback so reads and writes join that transaction.
    """

    def __init__(self, client: Optional[DatabaseProxy] = None, db_name: Optional[str] = None):
        self._client = client or DatabaseProxy()
        self._db_name = db_name or config.DB_NAME

    @property
    def db(self):
        return self._client[self._db_name]

    def collection(self, name: str):
        return self.db[name]

    async def get(self, collection: str, doc_id: str, session=None) -> Optional[Dict[str, Any]]:
        with _storage_errors(f"read {collection}/{doc_id}"):
            return await self.collection(collection).find_one({"id": doc_id}, {"_id": 0}, session=session)

    async def set(self, collection: str, doc_id: str, record: Dict[str, Any], session=None) -> None:
        document = {**record, "id": doc_id}
        with _storage_errors(f"write {collection}/{doc_id}"):
            await self.collection(collection).replace_one({"id": doc_id}, document, upsert=True, session=session)

    async def update(self, collection: str, doc_id: str, *, session=None, **operations) -> bool:
        """Apply set_fields/inc/add_to_set/push/pull/unset atomically. Returns False if no document matched."""
        update = build_update(**operations)
        with _storage_errors(f"update {collection}/{doc_id}"):
            result = await self.collection(collection).update_one({"id": doc_id}, update, session=session)
        return result.matched_count > 0

    async def update_where(self, collection: str, filters: Sequence[Filter], *, session=None, **operations) -> int:
        update = build_update(**operations)
        with _storage_errors(f"update many in {collection}"):
            result = await self.collection(collection).update_many(to_mongo_filter(filters), update, session=session)
        return result.modified_count

    async def delete(self, collection: str, doc_id: str, session=None) -> bool:
        with _storage_errors(f"delete {collection}/{doc_id}"):
            result = await self.collection(collection).delete_one({"id": doc_id}, session=session)
        return result.deleted_count > 0

    async def delete_where(self, collection: str, filters: Sequence[Filter], session=None) -> int:
        with _storage_errors(f"delete many in {collection}"):
            result = await self.collection(collection).delete_many(to_mongo_filter(filters), session=session)
        return result.deleted_count

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        session=None,
    ) -> List[Dict[str, Any]]:
        with _storage_errors(f"query {collection}"):
            cursor = self.collection(collection).find(to_mongo_filter(filters), {"_id": 0}, session=session)
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=limit)

    async def count(self, collection: str, filters: Sequence[Filter] = (), session=None) -> int:
        with _storage_errors(f"count {collection}"):
            return await self.collection(collection).count_documents(to_mongo_filter(filters), session=session)

    async def query_in(
        self,
        collection: str,
        field: str,
        values: Iterable[Any],
        filters: Sequence[Filter] = (),
        session=None,
    ) -> List[Dict[str, Any]]:
        """IN query split into batches of IN_QUERY_BATCH_SIZE; results deduplicated by id."""
        results: Dict[str, Dict[str, Any]] = {}
        for batch in chunked(values):
            for record in await self.query(collection, [*filters, (field, "in", batch)], session=session):
                results.setdefault(record["id"], record)
        return list(results.values())

    async def run_transaction(self, callback: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run ``callback(session)`` inside a multi-document transaction.

        Transient conflicts are retried by the driver, so the callback must
        re-read whatever it validates. Any exception aborts the transaction.
        """
        with _storage_errors("run transaction"):
            async with await self._client.start_session() as session:
                return await session.with_transaction(callback)

    async def subscribe(self, collection: str, filters: Sequence[Filter] = ()) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield the current result set, then a fresh one after every change to the collection."""
        yield await self.query(collection, filters)
        try:
            async with self.collection(collection).watch() as stream:
                async for _change in stream:
                    yield await self.query(collection, filters)
        except PyMongoError as e:
            logger.error(f"Change stream on {collection} failed", exc_info=True)
            raise StorageError(f"Live updates for {collection} are unavailable") from e
