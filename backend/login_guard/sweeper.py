"""
Expired login lock cleanup.

Scheduled job (hourly by default): deletes login_locks documents whose
lockedUntil is at or before the store clock, in bounded batches
(max 500 per batch). A backlog larger than batch_size * max_batches is
drained by later runs. Running it again with nothing expired is a no-op.

The sweep only reclaims storage. check_allowed() already ignores expired
locks, so correctness never depends on when this runs.
"""

import logging

from storage import DocumentStore, Filter

from .config import LOGIN_LOCKS_COLLECTION, SWEEP_SCHEDULE

logger = logging.getLogger(__name__)


class LockSweeper:

    def __init__(
        self,
        store: DocumentStore,
        batch_size: int = SWEEP_SCHEDULE["batch_size"],
        max_batches: int = SWEEP_SCHEDULE["max_batches"],
    ):
        if batch_size < 1 or max_batches < 1:
            raise ValueError("batch_size and max_batches must be positive")
        self.store = store
        self.batch_size = batch_size
        self.max_batches = max_batches

    async def sweep(self) -> int:
        """Delete expired locks. Returns the number of records removed."""
        now = await self.store.now()
        total = 0

        for _ in range(self.max_batches):
            expired = await self.store.find(
                LOGIN_LOCKS_COLLECTION,
                [Filter("lockedUntil", "<=", now)],
                limit=self.batch_size,
            )
            if not expired:
                break

            total += await self.store.delete_many(
                LOGIN_LOCKS_COLLECTION, [doc.id for doc in expired]
            )
            if len(expired) < self.batch_size:
                break

        if total == 0:
            logger.info("No expired locks to clean up")
        else:
            logger.info(f"Cleaned up {total} expired login locks")
        return total
