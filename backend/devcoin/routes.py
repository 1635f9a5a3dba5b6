"""
DevCoin API Routes

Endpoints:
- POST /api/community/questions - Post a question (costs DevCoin)
- GET /api/devcoin/balance - Current DevCoin balance
- GET /api/devcoin/ledger - DevCoin transaction history
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from database import get_store
from storage import DocumentStore
from utils.auth import get_current_user
from utils.errors import EngineError, InternalError, http_error

from .config import ERROR_MESSAGES, LEDGER_PAGE_DEFAULT, LEDGER_PAGE_MAX
from .ledger_service import LedgerService
from .models import BalanceResponse, LedgerResponse, PostQuestionRequest, PostQuestionResponse
from .question_service import QuestionService

logger = logging.getLogger(__name__)

devcoin_router = APIRouter(tags=["DevCoin"])


# ==================== QUESTION ENDPOINTS ====================

@devcoin_router.post("/community/questions", response_model=PostQuestionResponse)
async def post_question(
    request: PostQuestionRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """
    Post a question and pay its DevCoin cost.

    The balance check, debit, question creation and ledger entry commit
    together or not at all. Send the same Idempotency-Key when retrying a
    request whose outcome is unknown; the original result is returned
    without a second debit.
    """
    service = QuestionService(store)
    try:
        return await service.post_question(user["id"], request, request_id=idempotency_key)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Question post failed for user {user['id']}: {e}")
        raise http_error(InternalError(ERROR_MESSAGES["INTERNAL"]))


# ==================== BALANCE ENDPOINTS ====================

@devcoin_router.get("/devcoin/balance", response_model=BalanceResponse)
async def get_balance(
    user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Get current user's DevCoin balance and the cost of posting a question."""
    ledger = LedgerService(store)
    try:
        balance = await ledger.get_balance(user["id"])
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Balance fetch failed for user {user['id']}: {e}")
        raise http_error(InternalError("Failed to load DevCoin balance"))

    return BalanceResponse(user_id=user["id"], balance=balance, question_cost=ledger.cost)


@devcoin_router.get("/devcoin/ledger", response_model=LedgerResponse)
async def get_ledger(
    limit: int = Query(LEDGER_PAGE_DEFAULT, ge=1, le=LEDGER_PAGE_MAX),
    user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """
    Get DevCoin transaction history (ledger entries), newest first.
    """
    try:
        entries = await LedgerService(store).get_ledger(user["id"], limit)
    except Exception as e:
        logger.error(f"Ledger fetch failed for user {user['id']}: {e}")
        raise HTTPException(
            status_code=500,
            detail=InternalError("Failed to load DevCoin history").to_dict()
        )

    return {
        "entries": entries,
        "count": len(entries)
    }
