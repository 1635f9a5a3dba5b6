"""
MongoDB Document Store (Motor)

CRITICAL: Multi-document transactions require a replica set (or sharded
cluster). A standalone mongod rejects session.start_transaction().

Mapping of the DocumentStore contract onto MongoDB:
- Document id -> _id (stripped from returned documents)
- SERVER_TIMESTAMP -> $$NOW in an aggregation-pipeline update, so every
  timestamp comes from the server clock, never from this process
- DELETE_FIELD -> $unset pipeline stage
- Literal values are wrapped in $literal so user text starting with '$'
  is never evaluated as an expression
- Transactions: snapshot read concern, majority write concern. Errors
  labelled TransientTransactionError / UnknownTransactionCommitResult
  retry the whole callback. Other driver errors abort and surface as
  StoreError; exceptions raised by the callback propagate unchanged.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.read_preferences import ReadPreference
from pymongo.write_concern import WriteConcern

from .base import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentStore,
    Filter,
    StoreError,
    StoredDocument,
    T,
    Transaction,
    TransactionConflictError,
    validate_filters,
)

logger = logging.getLogger(__name__)

MONGO_OPERATORS = {
    "==": "$eq",
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
}

RETRYABLE_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")


# ==================== QUERY / UPDATE BUILDERS ====================

def build_query(filters: Sequence[Filter]) -> Dict[str, Any]:
    """Translate Filter predicates into a MongoDB query document."""
    validate_filters(filters)
    query: Dict[str, Any] = {}
    for f in filters:
        query.setdefault(f.field, {})[MONGO_OPERATORS[f.op]] = f.value
    return query


def _split_fields(data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    fields: Dict[str, Any] = {}
    unset: List[str] = []
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            fields[key] = "$$NOW"
        elif value is DELETE_FIELD:
            unset.append(key)
        else:
            fields[key] = {"$literal": value}
    return fields, unset


def build_merge_pipeline(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Pipeline that merges fields into an existing (or upserted) document."""
    fields, unset = _split_fields(data)
    pipeline: List[Dict[str, Any]] = []
    if fields:
        pipeline.append({"$set": fields})
    if unset:
        pipeline.append({"$unset": unset})
    if not pipeline:
        pipeline.append({"$replaceWith": "$$ROOT"})
    return pipeline


def build_replace_pipeline(doc_id: str, data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Pipeline that overwrites the whole document."""
    fields, _ = _split_fields(data)
    fields["_id"] = {"$literal": doc_id}
    return [{"$replaceWith": fields}]


def _strip_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


@contextmanager
def _driver_errors(action: str):
    """Re-raise driver failures as StoreError."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {action} failed: {e}")
        raise StoreError(f"MongoDB {action} failed: {e}") from e


# ==================== TRANSACTION ====================

class _MongoTransaction(Transaction):
    """Reads go straight to the session; writes are buffered until flush()."""

    def __init__(self, db, session):
        self._db = db
        self._session = session
        self._writes: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = await self._db[collection].find_one({"_id": doc_id}, session=self._session)
        return _strip_id(doc)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(("delete", collection, doc_id, None))

    async def flush(self) -> None:
        for kind, collection, doc_id, payload in self._writes:
            await _write(self._db, kind, collection, doc_id, payload, session=self._session)


async def _write(db, kind: str, collection: str, doc_id: str, payload: Optional[Dict[str, Any]], session=None) -> None:
    coll = db[collection]
    if kind == "delete":
        await coll.delete_one({"_id": doc_id}, session=session)
    elif kind == "set":
        await coll.update_one(
            {"_id": doc_id}, build_replace_pipeline(doc_id, payload), upsert=True, session=session
        )
    elif kind == "merge":
        await coll.update_one(
            {"_id": doc_id}, build_merge_pipeline(payload), upsert=True, session=session
        )
    else:
        result = await coll.update_one(
            {"_id": doc_id}, build_merge_pipeline(payload), session=session
        )
        if result.matched_count == 0:
            raise DocumentNotFoundError(collection, doc_id)


# ==================== STORE ====================

class MongoDocumentStore(DocumentStore):
    """DocumentStore backed by a Motor database handle."""

    def __init__(self, client: AsyncIOMotorClient, db_name: str):
        self._client = client
        self._db = client[db_name]
        self.db_name = db_name

    @classmethod
    def from_url(cls, mongo_url: str, db_name: str, **client_options) -> "MongoDocumentStore":
        options = {
            "maxPoolSize": 50,
            "minPoolSize": 10,
            "connectTimeoutMS": 5000,
            "serverSelectionTimeoutMS": 5000,
            "retryWrites": True,
            "tz_aware": True,
        }
        options.update(client_options)
        return cls(AsyncIOMotorClient(mongo_url, **options), db_name)

    @property
    def db(self):
        return self._db

    async def ping(self) -> None:
        await self._client.admin.command("ping")

    async def now(self) -> datetime:
        reply = await self._db.command("hello")
        local_time = reply["localTime"]
        if local_time.tzinfo is None:
            local_time = local_time.replace(tzinfo=timezone.utc)
        return local_time

    def new_id(self) -> str:
        return str(ObjectId())

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _driver_errors(f"get {collection}/{doc_id}"):
            return _strip_id(await self._db[collection].find_one({"_id": doc_id}))

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with _driver_errors(f"set {collection}/{doc_id}"):
            await _write(self._db, "merge" if merge else "set", collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        with _driver_errors(f"update {collection}/{doc_id}"):
            await _write(self._db, "update", collection, doc_id, fields)

    async def delete(self, collection: str, doc_id: str) -> None:
        with _driver_errors(f"delete {collection}/{doc_id}"):
            await _write(self._db, "delete", collection, doc_id, None)

    async def find(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        query = build_query(filters)
        with _driver_errors(f"find {collection}"):
            cursor = self._db[collection].find(query)
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            if limit is not None:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=limit)
        return [StoredDocument(str(doc["_id"]), _strip_id(doc)) for doc in docs]

    async def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        if not doc_ids:
            return 0
        with _driver_errors(f"delete_many {collection}"):
            result = await self._db[collection].delete_many({"_id": {"$in": list(doc_ids)}})
        return result.deleted_count

    async def run_transaction(
        self,
        callback: Callable[[Transaction], Awaitable[T]],
        max_attempts: int = 5,
    ) -> T:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        async with await self._client.start_session() as session:
            for attempt in range(1, max_attempts + 1):
                session.start_transaction(
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                    read_preference=ReadPreference.PRIMARY,
                )
                txn = _MongoTransaction(self._db, session)
                try:
                    result = await callback(txn)
                    await txn.flush()
                    await session.commit_transaction()
                    return result
                except PyMongoError as e:
                    await self._abort(session)
                    if any(e.has_error_label(label) for label in RETRYABLE_LABELS):
                        logger.warning(
                            f"Transaction conflict (attempt {attempt}/{max_attempts}): {e}"
                        )
                        continue
                    raise StoreError(f"Transaction failed: {e}") from e
                except Exception:
                    await self._abort(session)
                    raise

        raise TransactionConflictError(max_attempts)

    async def _abort(self, session) -> None:
        if not session.in_transaction:
            return
        try:
            await session.abort_transaction()
        except PyMongoError as e:
            # Server discards the transaction on its own once it times out
            logger.debug(f"abort_transaction failed: {e}")

    async def close(self) -> None:
        self._client.close()
