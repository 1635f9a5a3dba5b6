"""
DevCoin Database Initialization Script

RULES:
1. Environment Guard - requires DEVCOIN_INIT_CONFIRM=YES for production
2. Idempotent - running multiple times must not duplicate anything
3. No destructive operations - no dropping, deleting, truncation
4. Safe index creation - handles "index already exists" gracefully
5. Dry-run mode - --dry-run prints what it would do

Indexes back the queries the engine issues:
- duplicate guard: questions by ownerId + title + createdAt
- ledger history: devcoin_transactions by ownerId, newest first
- lock sweep: login_locks by lockedUntil

Usage:
    python -m devcoin.db_init
    python -m devcoin.db_init --dry-run
    ENVIRONMENT=production DEVCOIN_INIT_CONFIRM=YES python -m devcoin.db_init
"""

import os
import sys
import asyncio
import logging
from pathlib import Path
from typing import List, Tuple

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import OperationFailure

from login_guard.config import LOGIN_LOCKS_COLLECTION
from utils.environment import get_environment

from .config import COLLECTIONS

logger = logging.getLogger(__name__)

# Index definitions: (collection, index_spec, options)
REQUIRED_INDEXES = [
    (COLLECTIONS["questions"],
     [("ownerId", 1), ("title", 1), ("createdAt", -1)],
     {"name": "idx_owner_title_created"}),
    (COLLECTIONS["questions"], [("deletionStatus", 1)], {"name": "idx_deletion_status"}),
    (COLLECTIONS["ledger"], [("ownerId", 1), ("createdAt", -1)], {"name": "idx_owner_created"}),
    (COLLECTIONS["ledger"], [("relatedId", 1)], {"name": "idx_related_id"}),
    (LOGIN_LOCKS_COLLECTION, [("lockedUntil", 1)], {"sparse": True, "name": "idx_locked_until"}),
]


def check_environment() -> Tuple[bool, str]:
    """
    Check environment and confirm if production execution is allowed.

    Returns:
        Tuple of (allowed, message)
    """
    app_env = get_environment()

    if app_env == "production":
        confirm = os.environ.get("DEVCOIN_INIT_CONFIRM", "")
        if confirm != "YES":
            return False, (
                "PRODUCTION ENVIRONMENT DETECTED!\n"
                "To run init in production, set: DEVCOIN_INIT_CONFIRM=YES\n"
                "Current value: DEVCOIN_INIT_CONFIRM='%s'" % confirm
            )

    return True, f"Environment: {app_env}"


async def create_index_if_not_exists(
    db,
    collection_name: str,
    index_spec: List[Tuple],
    options: dict,
    dry_run: bool = False
) -> str:
    """Create an index if it doesn't exist."""
    collection = db[collection_name]
    index_name = options.get("name", str(index_spec))

    existing_indexes = await collection.index_information()

    if index_name in existing_indexes:
        return f"  [SKIP] Index '{index_name}' on '{collection_name}' already exists"

    if dry_run:
        return f"  [DRY-RUN] Would create index '{index_name}' on '{collection_name}'"

    try:
        await collection.create_index(index_spec, **options)
        return f"  [CREATE] Created index '{index_name}' on '{collection_name}'"
    except OperationFailure as e:
        if "already exists" in str(e).lower():
            return f"  [SKIP] Index '{index_name}' on '{collection_name}' already exists (race)"
        raise


async def ensure_indexes(db, dry_run: bool = False) -> List[str]:
    """Create every required index. Returns one report line per index."""
    results = []
    for collection_name, index_spec, options in REQUIRED_INDEXES:
        results.append(await create_index_if_not_exists(db, collection_name, index_spec, options, dry_run))
    return results


async def run_init(dry_run: bool = False):
    """Run the database initialization."""
    from dotenv import load_dotenv

    load_dotenv(Path(__file__).parent.parent / '.env')

    allowed, env_message = check_environment()
    logger.info(env_message)

    if not allowed:
        logger.error("Init blocked due to environment guard")
        sys.exit(1)

    mongo_url = os.environ.get('MONGO_URL')
    db_name = os.environ.get('DB_NAME')

    if not mongo_url or not db_name:
        logger.error("Missing MONGO_URL or DB_NAME environment variables")
        sys.exit(1)

    logger.info(f"Database: {db_name}")
    logger.info(f"Dry Run: {dry_run}")

    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]

    try:
        await client.admin.command('ping')
        logger.info("MongoDB connection: OK")
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        sys.exit(1)

    logger.info("=== Indexes ===")
    for line in await ensure_indexes(db, dry_run):
        logger.info(line)

    client.close()
    logger.info("SUCCESS: DevCoin DB init completed")


def main():
    """Main entry point."""
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="DevCoin Database Initialization")
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print what would be done without making changes'
    )

    args = parser.parse_args()

    asyncio.run(run_init(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
