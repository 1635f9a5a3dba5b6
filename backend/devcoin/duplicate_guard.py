"""
Duplicate-Submission Guard

Rejects a question whose title matches a live (deletionStatus == normal)
question by the same account created within the cooldown window.

KNOWN LIMITATION: this is a point-in-time read outside the ledger
transaction. Two identical submissions arriving together can both pass
the check and both be charged. The guard only throttles accidental
double-clicks; the idempotency key on spend_and_create covers retries of
one request.
"""

import logging
import math
from datetime import timedelta
from typing import Optional

from storage import DocumentStore, Filter
from utils.errors import DuplicateSubmissionError

from .config import COLLECTIONS, DELETION_STATUS_NORMAL, DUPLICATE_WINDOW_SECONDS, ERROR_MESSAGES

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """Cooldown check for repeated question titles."""

    def __init__(self, store: DocumentStore, window_seconds: int = DUPLICATE_WINDOW_SECONDS):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store
        self.window_seconds = window_seconds

    async def check_duplicate(
        self,
        account_id: str,
        title: str,
        window_seconds: Optional[int] = None,
        ignore_question_id: Optional[str] = None,
    ) -> None:
        """
        Raise DuplicateSubmissionError if the account posted the same title
        inside the window. Timestamps come from the store clock.

        ignore_question_id skips the question created by an earlier attempt
        of the same idempotent request, so its replay is not rejected.
        """
        if window_seconds is None:
            window_seconds = self.window_seconds
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        window = timedelta(seconds=window_seconds)
        now = await self.store.now()

        matches = await self.store.find(
            COLLECTIONS["questions"],
            [
                Filter("ownerId", "==", account_id),
                Filter("title", "==", title),
                Filter("deletionStatus", "==", DELETION_STATUS_NORMAL),
                Filter("createdAt", ">", now - window),
            ],
            limit=2 if ignore_question_id else 1,
            order_by="createdAt",
            descending=True,
        )
        matches = [m for m in matches if m.id != ignore_question_id]
        if not matches:
            return

        previous = matches[0]
        retry_at = previous.data["createdAt"] + window
        retry_after = max(1, math.ceil((retry_at - now).total_seconds()))

        logger.warning(
            f"Duplicate question title from user {account_id} "
            f"(previous={previous.id}, retry in {retry_after}s)"
        )
        raise DuplicateSubmissionError(
            ERROR_MESSAGES["DUPLICATE_SUBMISSION"],
            {
                "questionId": previous.id,
                "retryAt": retry_at.isoformat(),
                "retryAfterSeconds": retry_after,
            },
        )
