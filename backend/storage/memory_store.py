"""
In-Memory Document Store

Implements the full DocumentStore contract in process memory:
- Optimistic concurrency: every document carries a version. A transaction
  remembers the version of each document it read and commit fails with a
  conflict if any of them changed; the store then retries the callback.
- Commit validation and application run without awaiting, so no other
  coroutine can observe a half-applied transaction.
- Transaction reads yield to the event loop, so concurrent transactions
  really interleave (tests rely on this to exercise conflicts).
- Injectable clock for server timestamps and now().

Used by the test suite and by STORE_BACKEND=memory outside production.
"""

import asyncio
import copy
import itertools
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

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

# Buffered write kinds
_SET = "set"
_MERGE = "merge"
_UPDATE = "update"
_DELETE = "delete"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _matches(data: Dict[str, Any], f: Filter) -> bool:
    if f.field not in data:
        return f.op == "!="
    value = data[f.field]
    try:
        if f.op == "==":
            return value == f.value
        if f.op == "!=":
            return value != f.value
        if f.op == "<":
            return value < f.value
        if f.op == "<=":
            return value <= f.value
        if f.op == ">":
            return value > f.value
        if f.op == ">=":
            return value >= f.value
    except TypeError:
        # Mismatched types (e.g. None vs datetime) never match
        return False
    return False


class _MemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: Dict[Tuple[str, str], int] = {}
        self.writes: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if self.writes:
            raise StoreError("Transactions require all reads to be executed before all writes")
        version, data = self._store._read(collection, doc_id)
        self.reads.setdefault((collection, doc_id), version)
        data = copy.deepcopy(data)
        # Let other transactions run between this read and our commit
        await asyncio.sleep(0)
        return data

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.writes.append((_MERGE if merge else _SET, collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.writes.append((_UPDATE, collection, doc_id, copy.deepcopy(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes.append((_DELETE, collection, doc_id, None))

    def is_stale(self) -> bool:
        """True if any document read by this transaction has since changed."""
        return any(
            self._store._version_of(collection, doc_id) != version
            for (collection, doc_id), version in self.reads.items()
        )


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore kept in a dict of collections."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now
        # {collection: {doc_id: (version, data)}}
        self._collections: Dict[str, Dict[str, Tuple[int, Dict[str, Any]]]] = {}
        self._versions = itertools.count(1)
        self.commits = 0
        self.conflicts = 0

    # ---------- internals ----------

    def _read(self, collection: str, doc_id: str) -> Tuple[int, Optional[Dict[str, Any]]]:
        entry = self._collections.get(collection, {}).get(doc_id)
        if entry is None:
            return 0, None
        return entry

    def _version_of(self, collection: str, doc_id: str) -> int:
        return self._read(collection, doc_id)[0]

    def _resolve(self, data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        return {
            key: (now if value is SERVER_TIMESTAMP else value)
            for key, value in data.items()
        }

    def _apply(self, kind: str, collection: str, doc_id: str, payload: Optional[Dict[str, Any]], now: datetime) -> None:
        docs = self._collections.setdefault(collection, {})
        if kind == _DELETE:
            docs.pop(doc_id, None)
            return

        payload = self._resolve(payload or {}, now)
        if kind == _SET:
            data = {k: v for k, v in payload.items() if v is not DELETE_FIELD}
        else:
            current = docs.get(doc_id)
            data = dict(current[1]) if current else {}
            for key, value in payload.items():
                if value is DELETE_FIELD:
                    data.pop(key, None)
                else:
                    data[key] = value
        docs[doc_id] = (next(self._versions), data)

    def _commit(self, txn: _MemoryTransaction) -> bool:
        if txn.is_stale():
            return False

        for kind, collection, doc_id, _ in txn.writes:
            if kind == _UPDATE and self._version_of(collection, doc_id) == 0:
                created_earlier = any(
                    k in (_SET, _MERGE) and c == collection and d == doc_id
                    for k, c, d, _ in txn.writes
                )
                if not created_earlier:
                    raise DocumentNotFoundError(collection, doc_id)

        now = self._clock()
        for kind, collection, doc_id, payload in txn.writes:
            self._apply(kind, collection, doc_id, payload, now)
        self.commits += 1
        return True

    # ---------- DocumentStore ----------

    async def now(self) -> datetime:
        return self._clock()

    def new_id(self) -> str:
        return uuid.uuid4().hex

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._read(collection, doc_id)[1])

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._apply(_MERGE if merge else _SET, collection, doc_id, copy.deepcopy(data), self._clock())

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        if self._version_of(collection, doc_id) == 0:
            raise DocumentNotFoundError(collection, doc_id)
        self._apply(_UPDATE, collection, doc_id, copy.deepcopy(fields), self._clock())

    async def delete(self, collection: str, doc_id: str) -> None:
        self._apply(_DELETE, collection, doc_id, None, self._clock())

    async def find(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        validate_filters(filters)
        results = [
            StoredDocument(doc_id, copy.deepcopy(data))
            for doc_id, (_, data) in self._collections.get(collection, {}).items()
            if all(_matches(data, f) for f in filters)
        ]
        if order_by:
            results = [r for r in results if r.data.get(order_by) is not None]
            results.sort(key=lambda r: r.data[order_by], reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    async def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        docs = self._collections.get(collection, {})
        deleted = 0
        for doc_id in doc_ids:
            if docs.pop(doc_id, None) is not None:
                deleted += 1
        return deleted

    async def run_transaction(
        self,
        callback: Callable[[Transaction], Awaitable[T]],
        max_attempts: int = 5,
    ) -> T:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, max_attempts + 1):
            txn = _MemoryTransaction(self)
            try:
                result = await callback(txn)
            except Exception:
                # A decision taken on a stale snapshot is retried, not reported
                if txn.is_stale():
                    self.conflicts += 1
                    logger.debug(f"Stale read aborted transaction (attempt {attempt}/{max_attempts})")
                    continue
                raise

            if self._commit(txn):
                return result

            self.conflicts += 1
            logger.debug(f"Write conflict on commit (attempt {attempt}/{max_attempts})")

        raise TransactionConflictError(max_attempts)
