"""
Question posting flow.

Order of checks:
1. caller identity
2. input validation (no store access)
3. duplicate guard (read-only, outside the transaction)
4. ledger transaction (the only place balances change)
"""

import logging
from typing import Optional

from storage import DocumentStore
from utils.errors import UnauthenticatedError

from .config import ERROR_MESSAGES
from .duplicate_guard import DuplicateGuard
from .ledger_service import LedgerService
from .models import PostQuestionRequest, PostQuestionResponse
from .validation import validate_post_question

logger = logging.getLogger(__name__)


class QuestionService:

    def __init__(
        self,
        store: DocumentStore,
        ledger: Optional[LedgerService] = None,
        guard: Optional[DuplicateGuard] = None,
    ):
        self.store = store
        self.ledger = ledger or LedgerService(store)
        self.guard = guard or DuplicateGuard(store)

    async def post_question(
        self,
        account_id: Optional[str],
        request: PostQuestionRequest,
        request_id: Optional[str] = None,
    ) -> PostQuestionResponse:
        if not account_id:
            raise UnauthenticatedError(ERROR_MESSAGES["UNAUTHENTICATED"])

        validate_post_question(request.title, request.body, request.attachment, request.category)

        replay_id = self.ledger.question_id_for(account_id, request_id) if request_id else None
        await self.guard.check_duplicate(account_id, request.title, ignore_question_id=replay_id)

        result = await self.ledger.spend_and_create(
            account_id,
            {
                "title": request.title,
                "body": request.body,
                "attachment": request.attachment,
                "category": request.category,
            },
            request_id=request_id,
        )

        return PostQuestionResponse(
            questionId=result.artifact_id,
            remainingBalance=result.remaining_balance,
        )
