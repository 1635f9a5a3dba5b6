"""
DevCoin Ledger Service

Core balance operations:
- spend_and_create: debit + create question + append ledger entry
- Balance queries
- Ledger history

CRITICAL: spend_and_create runs as ONE store transaction. The balance is
read inside the transaction, so two concurrent spends for the same account
can never both consume the same coins: the loser of the write conflict is
retried against the fresh balance, or fails with a transient error once the
retry budget is used up. Either everything commits or nothing does.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from storage import SERVER_TIMESTAMP, DocumentStore, Filter, StoreError, Transaction, TransactionConflictError
from utils.errors import (
    AccountNotFoundError,
    InsufficientFundsError,
    InternalError,
    TransactionAbortedError,
)

from .config import (
    BALANCE_FIELD,
    COLLECTIONS,
    DELETION_STATUS_NORMAL,
    ERROR_MESSAGES,
    LEDGER_ENTRY_TYPE,
    LEDGER_PAGE_DEFAULT,
    LEDGER_RELATED_TYPE,
    MAX_TRANSACTION_ATTEMPTS,
    QUESTION_POST_COST,
)
from .models import SpendResult

logger = logging.getLogger(__name__)

# Namespace for question ids derived from a caller idempotency key
QUESTION_ID_NAMESPACE = uuid.UUID("6f1c2b8e-3d4a-4c55-9a7e-2f0d8b1e5c93")


def _balance_of(account: Dict[str, Any]) -> int:
    balance = account.get(BALANCE_FIELD, 0)
    if not isinstance(balance, int) or isinstance(balance, bool) or balance < 0:
        return 0
    return balance


class LedgerService:
    """Service for spending DevCoin balances."""

    def __init__(
        self,
        store: DocumentStore,
        cost: int = QUESTION_POST_COST,
        max_attempts: int = MAX_TRANSACTION_ATTEMPTS,
    ):
        if not isinstance(cost, int) or cost <= 0:
            raise ValueError(f"cost must be a positive integer, got {cost!r}")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.cost = cost
        self.max_attempts = max_attempts

    def question_id_for(self, account_id: str, request_id: Optional[str]) -> str:
        """
        Question id used for every attempt of one spend.

        With a caller idempotency key the id is deterministic, so a retried
        request lands on the same document and is detected as a replay.
        """
        if request_id:
            return uuid.uuid5(QUESTION_ID_NAMESPACE, f"{account_id}:{request_id}").hex
        return self.store.new_id()

    async def spend_and_create(
        self,
        account_id: str,
        payload: Dict[str, Any],
        request_id: Optional[str] = None,
    ) -> SpendResult:
        """
        Atomically debit the account and create the question.

        Args:
            account_id: Account paying for the post
            payload: title, body, attachment, category (already validated)
            request_id: Optional idempotency key from the caller

        Returns:
            SpendResult with the question id and the balance after the debit

        Raises:
            AccountNotFoundError, InsufficientFundsError,
            TransactionAbortedError (conflict budget exhausted), InternalError
        """
        question_id = self.question_id_for(account_id, request_id)
        accounts = COLLECTIONS["accounts"]
        questions = COLLECTIONS["questions"]
        ledger = COLLECTIONS["ledger"]
        cost = self.cost

        async def spend(txn: Transaction) -> SpendResult:
            existing = await txn.get(questions, question_id)
            account = await txn.get(accounts, account_id)

            if account is None:
                raise AccountNotFoundError(ERROR_MESSAGES["ACCOUNT_NOT_FOUND"])

            balance = _balance_of(account)

            if existing is not None and existing.get("ownerId") == account_id:
                # Already committed by an earlier attempt of the same request
                return SpendResult(artifact_id=question_id, remaining_balance=balance, replayed=True)

            if balance < cost:
                raise InsufficientFundsError(
                    ERROR_MESSAGES["INSUFFICIENT_FUNDS"].format(cost=cost),
                    {"balance": balance, "cost": cost},
                )

            txn.set(questions, question_id, {
                "id": question_id,
                "title": payload["title"],
                "body": payload["body"],
                "attachment": payload.get("attachment") or None,
                "ownerId": account_id,
                "category": payload["category"],
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": None,
                "answerCount": 0,
                "viewCount": 0,
                "score": 0,
                "bestAnswerId": None,
                "deletionStatus": DELETION_STATUS_NORMAL,
                "deletionReason": None,
                "scheduledDeletionAt": None,
            })

            new_balance = balance - cost
            txn.update(accounts, account_id, {BALANCE_FIELD: new_balance})

            txn.set(ledger, self.store.new_id(), {
                "ownerId": account_id,
                "type": LEDGER_ENTRY_TYPE,
                "amount": -cost,
                "isFree": False,
                "relatedId": question_id,
                "relatedType": LEDGER_RELATED_TYPE,
                "createdAt": SERVER_TIMESTAMP,
            })

            return SpendResult(artifact_id=question_id, remaining_balance=new_balance)

        try:
            result = await self.store.run_transaction(spend, max_attempts=self.max_attempts)
        except InsufficientFundsError as e:
            logger.warning(
                f"Insufficient DevCoin for user {account_id}: "
                f"balance={e.details.get('balance')} cost={cost}"
            )
            raise
        except TransactionConflictError as e:
            logger.error(f"Spend transaction for user {account_id} aborted after {e.attempts} attempts")
            raise TransactionAbortedError(ERROR_MESSAGES["TRANSACTION_ABORTED"], attempts=e.attempts)
        except StoreError as e:
            logger.error(f"Spend transaction for user {account_id} failed: {e}")
            raise InternalError(f"{ERROR_MESSAGES['INTERNAL']}: {e}")

        if result.replayed:
            logger.info(f"Replayed question post {question_id} for user {account_id} (no debit)")
        else:
            logger.info(
                f"Debited {cost} DevCoin from user {account_id} for question {question_id}, "
                f"remaining={result.remaining_balance}"
            )
        return result

    async def get_balance(self, account_id: str) -> int:
        """Current spendable balance."""
        account = await self.store.get(COLLECTIONS["accounts"], account_id)
        if account is None:
            raise AccountNotFoundError(ERROR_MESSAGES["ACCOUNT_NOT_FOUND"])
        return _balance_of(account)

    async def get_ledger(self, account_id: str, limit: int = LEDGER_PAGE_DEFAULT) -> List[Dict[str, Any]]:
        """Get recent ledger entries for the account, newest first."""
        docs = await self.store.find(
            COLLECTIONS["ledger"],
            [Filter("ownerId", "==", account_id)],
            limit=limit,
            order_by="createdAt",
            descending=True,
        )
        return [doc.data for doc in docs]
