"""
Store connection and configuration

Environment Validation - fails fast with clear error messages if required
variables are missing.

STORE_BACKEND:
- mongo (default): MongoDB replica set via Motor, MONGO_URL + DB_NAME required
- memory: in-process store for local development and tests (refused in production)
"""
import os
import logging
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from fastapi import Request

from storage import DocumentStore
from storage.memory_store import InMemoryDocumentStore
from storage.mongo_store import MongoDocumentStore
from utils.environment import is_production

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

VALID_BACKENDS = {"mongo", "memory"}


def get_store_backend() -> str:
    backend = os.environ.get("STORE_BACKEND", "mongo").lower()
    if backend not in VALID_BACKENDS:
        raise ValueError(f"Invalid STORE_BACKEND '{backend}'. Valid options: {sorted(VALID_BACKENDS)}")
    return backend


def validate_required_env_vars(backend: str):
    """
    Validate all critical environment variables exist before the app starts.
    Raises ValueError with clear error message if required variables are missing.
    """
    if backend == "memory":
        if is_production():
            raise ValueError("STORE_BACKEND=memory is not allowed in production")
        return

    required_vars = {
        "MONGO_URL": "MongoDB connection string, replica set required (e.g., mongodb://localhost:27017/?replicaSet=rs0)",
        "DB_NAME": "Database name (e.g., devcoin)"
    }

    missing = []
    for var, description in required_vars.items():
        if not os.environ.get(var):
            missing.append(f"  - {var}: {description}")

    if missing:
        error_msg = (
            "\n" + "=" * 60 + "\n"
            "CRITICAL: Missing required environment variables!\n"
            "=" * 60 + "\n"
            "The following environment variables must be set:\n\n"
            + "\n".join(missing) + "\n\n"
            "Please check your .env file or environment configuration.\n"
            + "=" * 60
        )
        raise ValueError(error_msg)


def create_store(backend: Optional[str] = None) -> DocumentStore:
    """Build the configured DocumentStore."""
    backend = backend or get_store_backend()
    validate_required_env_vars(backend)

    if backend == "memory":
        logger.warning("Using in-memory store: data is lost on restart")
        return InMemoryDocumentStore()

    try:
        return MongoDocumentStore.from_url(os.environ['MONGO_URL'], os.environ['DB_NAME'])
    except Exception as e:
        raise ValueError(f"Failed to create MongoDB client: {e}")


async def check_store_connection(store: DocumentStore) -> Tuple[bool, Optional[str]]:
    """
    Test store connection health.

    Returns:
        Tuple[bool, Optional[str]]: (success, error_message)
    """
    if not isinstance(store, MongoDocumentStore):
        return True, None

    try:
        await store.ping()
        logger.info(f"Database connected successfully: {store.db_name}")
        return True, None

    except Exception as e:
        error_msg = f"Database connection failed: {e}"
        logger.error(error_msg)
        return False, error_msg


def get_store(request: Request) -> DocumentStore:
    """FastAPI dependency: the store created at startup."""
    return request.app.state.store
