"""
Document Store Interface

All durable state (balances, questions, ledger entries, login locks) lives
behind this interface. Services receive a store instance; nothing keeps
state in module-level variables.

Contract:
- Single-document reads/writes are atomic.
- run_transaction() executes a callback against a Transaction. Reads inside
  the callback see a consistent snapshot; writes are buffered and committed
  all-or-nothing. A write conflict retries the whole callback, bounded by
  max_attempts, then raises TransactionConflictError.
- Exceptions raised by the callback abort the transaction and propagate
  unchanged. They are never retried.
- SERVER_TIMESTAMP is resolved with the store clock at commit time.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence, TypeVar

T = TypeVar("T")


class _Sentinel:
    """Marker value with a readable repr. Copies keep identity."""

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __copy__(self) -> "_Sentinel":
        return self

    def __deepcopy__(self, memo) -> "_Sentinel":
        return self

    def __reduce__(self) -> str:
        # Pickles as a reference to the module-level constant
        return self._name


# Field value resolved to the store's commit clock
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")

# Field value that removes the field in a merge write
DELETE_FIELD = _Sentinel("DELETE_FIELD")

# Supported comparison operators for Filter
FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


class Filter(NamedTuple):
    """Single query predicate: field <op> value."""
    field: str
    op: str
    value: Any


class StoredDocument(NamedTuple):
    """Query result: document id plus its data (without the id)."""
    id: str
    data: Dict[str, Any]


# ==================== ERRORS ====================

class StoreError(Exception):
    """Base class for durable store failures."""


class TransactionConflictError(StoreError):
    """Transaction lost a write conflict on every allowed attempt."""

    def __init__(self, attempts: int, message: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message or f"Transaction aborted after {attempts} conflicting attempts")


class DocumentNotFoundError(StoreError):
    """update() targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


def validate_filters(filters: Sequence[Filter]) -> None:
    for f in filters:
        if f.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {f.op!r}")


# ==================== INTERFACES ====================

class Transaction(ABC):
    """Handle passed to run_transaction() callbacks."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a document inside the transaction snapshot."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite (or merge into) a document at commit."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Update fields of an existing document at commit."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document at commit."""


class DocumentStore(ABC):
    """Durable store used by every engine component."""

    @abstractmethod
    async def now(self) -> datetime:
        """Current store clock (timezone-aware UTC)."""

    @abstractmethod
    def new_id(self) -> str:
        """Fresh unique document id."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Raises DocumentNotFoundError if the document does not exist."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """No-op when the document is absent."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        ...

    @abstractmethod
    async def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        """Delete the given documents as one batch. Returns deleted count."""

    @abstractmethod
    async def run_transaction(
        self,
        callback: Callable[[Transaction], Awaitable[T]],
        max_attempts: int = 5,
    ) -> T:
        ...

    async def close(self) -> None:
        """Release client resources."""
