"""
Durable Store Module

Document store abstraction shared by the DevCoin ledger and the login guard.

This module provides:
- DocumentStore / Transaction interfaces (single place where state lives)
- MongoDocumentStore: Motor-backed implementation (replica set required for transactions)
- InMemoryDocumentStore: same transactional contract, for tests and local development
"""

from .base import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentStore,
    Filter,
    StoreError,
    StoredDocument,
    Transaction,
    TransactionConflictError,
)

__all__ = [
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "DocumentNotFoundError",
    "DocumentStore",
    "Filter",
    "StoreError",
    "StoredDocument",
    "Transaction",
    "TransactionConflictError",
]
