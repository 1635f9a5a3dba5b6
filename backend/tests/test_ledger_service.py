"""
Test Suite: DevCoin Ledger Service
==================================

spend_and_create must be all-or-nothing:
- balance check, debit, question and ledger entry commit together
- concurrent spends never overdraw the balance
- a retried request (same idempotency key) is not charged twice
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import question_payload
from devcoin.config import COLLECTIONS, LEDGER_ENTRY_TYPE
from devcoin.ledger_service import LedgerService
from storage import Filter, StoreError, TransactionConflictError
from utils.errors import (
    AccountNotFoundError,
    InsufficientFundsError,
    InternalError,
    TransactionAbortedError,
)


async def _questions(store, owner="user-1"):
    return await store.find(COLLECTIONS["questions"], [Filter("ownerId", "==", owner)])


async def _ledger(store, owner="user-1"):
    return await store.find(COLLECTIONS["ledger"], [Filter("ownerId", "==", owner)])


class TestSpendAndCreate:

    @pytest.mark.asyncio
    async def test_success_debits_and_creates_question_and_entry(self, store, clock, seed_account):
        await seed_account("user-1", 100)
        ledger = LedgerService(store, cost=10)

        result = await ledger.spend_and_create("user-1", question_payload())

        assert result.remaining_balance == 90
        assert result.replayed is False
        assert (await store.get(COLLECTIONS["accounts"], "user-1"))["balance"] == 90

        question = await store.get(COLLECTIONS["questions"], result.artifact_id)
        assert question["ownerId"] == "user-1"
        assert question["category"] == "Flutter"
        assert question["createdAt"] == clock.current
        assert question["deletionStatus"] == "normal"
        assert question["answerCount"] == 0
        assert question["attachment"] is None

        entries = await _ledger(store)
        assert len(entries) == 1
        entry = entries[0].data
        assert entry["amount"] == -10
        assert entry["type"] == LEDGER_ENTRY_TYPE
        assert entry["relatedId"] == result.artifact_id
        assert entry["relatedType"] == "question"
        assert entry["isFree"] is False

    @pytest.mark.asyncio
    async def test_other_account_fields_untouched(self, store, seed_account):
        await seed_account("user-1", 20)
        await LedgerService(store).spend_and_create("user-1", question_payload())

        account = await store.get(COLLECTIONS["accounts"], "user-1")
        assert account == {"balance": 10, "name": "Test User"}

    @pytest.mark.asyncio
    async def test_exact_balance_can_be_spent(self, store, seed_account):
        await seed_account("user-1", 10)
        result = await LedgerService(store, cost=10).spend_and_create("user-1", question_payload())
        assert result.remaining_balance == 0

    @pytest.mark.asyncio
    async def test_insufficient_funds_leaves_no_trace(self, store, seed_account):
        await seed_account("user-1", 9)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await LedgerService(store, cost=10).spend_and_create("user-1", question_payload())

        assert exc_info.value.details == {"balance": 9, "cost": 10}
        assert "10 DevCoin" in exc_info.value.message
        assert (await store.get(COLLECTIONS["accounts"], "user-1"))["balance"] == 9
        assert await _questions(store) == []
        assert await _ledger(store) == []

    @pytest.mark.asyncio
    async def test_account_not_found(self, store):
        with pytest.raises(AccountNotFoundError):
            await LedgerService(store).spend_and_create("ghost", question_payload())

        assert await store.find(COLLECTIONS["questions"]) == []

    @pytest.mark.asyncio
    async def test_missing_balance_field_counts_as_zero(self, store):
        await store.set(COLLECTIONS["accounts"], "user-1", {"name": "No Wallet"})

        with pytest.raises(InsufficientFundsError):
            await LedgerService(store).spend_and_create("user-1", question_payload())

    def test_invalid_cost_rejected(self, store):
        with pytest.raises(ValueError):
            LedgerService(store, cost=0)
        with pytest.raises(ValueError):
            LedgerService(store, cost=2.5)


class TestConcurrentSpends:

    @pytest.mark.asyncio
    async def test_no_double_spend(self, store, seed_account):
        """35 coins, cost 10, 10 concurrent posts: exactly 3 succeed."""
        await seed_account("user-1", 35)
        ledger = LedgerService(store, cost=10)

        results = await asyncio.gather(
            *[ledger.spend_and_create("user-1", question_payload(f"Concurrent question {i}")) for i in range(10)],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]

        assert len(successes) == 3
        assert all(isinstance(f, InsufficientFundsError) for f in failures)
        assert (await store.get(COLLECTIONS["accounts"], "user-1"))["balance"] == 5
        assert sorted(r.remaining_balance for r in successes) == [5, 15, 25]
        assert store.conflicts > 0

    @pytest.mark.asyncio
    async def test_artifacts_match_ledger_entries(self, store, seed_account):
        await seed_account("user-1", 100)
        ledger = LedgerService(store, cost=10)

        await asyncio.gather(
            *[ledger.spend_and_create("user-1", question_payload(f"Question number {i}")) for i in range(6)],
            return_exceptions=True,
        )

        balance = (await store.get(COLLECTIONS["accounts"], "user-1"))["balance"]
        questions = await _questions(store)
        entries = await _ledger(store)

        assert len(questions) == len(entries) == (100 - balance) // 10
        assert {q.id for q in questions} == {e.data["relatedId"] for e in entries}

    @pytest.mark.asyncio
    async def test_conflict_budget_surfaces_transient_error(self):
        store = MagicMock()
        store.new_id.return_value = "q-1"
        store.run_transaction = AsyncMock(side_effect=TransactionConflictError(5))

        with pytest.raises(TransactionAbortedError) as exc_info:
            await LedgerService(store).spend_and_create("user-1", question_payload())

        assert exc_info.value.code == "internal"
        assert exc_info.value.details == {"retryable": True, "attempts": 5}

    @pytest.mark.asyncio
    async def test_store_failure_is_internal_error(self):
        store = MagicMock()
        store.new_id.return_value = "q-1"
        store.run_transaction = AsyncMock(side_effect=StoreError("connection reset"))

        with pytest.raises(InternalError) as exc_info:
            await LedgerService(store).spend_and_create("user-1", question_payload())

        assert not isinstance(exc_info.value, TransactionAbortedError)


class TestIdempotentReplay:

    @pytest.mark.asyncio
    async def test_same_request_id_charges_once(self, store, seed_account):
        await seed_account("user-1", 50)
        ledger = LedgerService(store, cost=10)

        first = await ledger.spend_and_create("user-1", question_payload(), request_id="req-42")
        second = await ledger.spend_and_create("user-1", question_payload(), request_id="req-42")

        assert second.replayed is True
        assert second.artifact_id == first.artifact_id
        assert second.remaining_balance == 40
        assert len(await _questions(store)) == 1
        assert len(await _ledger(store)) == 1

    @pytest.mark.asyncio
    async def test_different_request_ids_charge_separately(self, store, seed_account):
        await seed_account("user-1", 50)
        ledger = LedgerService(store, cost=10)

        await ledger.spend_and_create("user-1", question_payload(), request_id="req-1")
        result = await ledger.spend_and_create("user-1", question_payload(), request_id="req-2")

        assert result.replayed is False
        assert result.remaining_balance == 30

    def test_question_id_is_scoped_to_account(self, store):
        ledger = LedgerService(store)
        assert ledger.question_id_for("user-1", "req") == ledger.question_id_for("user-1", "req")
        assert ledger.question_id_for("user-1", "req") != ledger.question_id_for("user-2", "req")


class TestQueries:

    @pytest.mark.asyncio
    async def test_get_balance(self, store, seed_account):
        await seed_account("user-1", 42)
        assert await LedgerService(store).get_balance("user-1") == 42

    @pytest.mark.asyncio
    async def test_get_balance_unknown_account(self, store):
        with pytest.raises(AccountNotFoundError):
            await LedgerService(store).get_balance("ghost")

    @pytest.mark.asyncio
    async def test_get_ledger_newest_first(self, store, clock, seed_account):
        await seed_account("user-1", 100)
        await seed_account("user-2", 100)
        ledger = LedgerService(store)

        for i in range(3):
            await ledger.spend_and_create("user-1", question_payload(f"Ledger question {i}"))
            clock.advance(minutes=1)
        await ledger.spend_and_create("user-2", question_payload())

        entries = await ledger.get_ledger("user-1", limit=2)

        assert len(entries) == 2
        assert entries[0]["createdAt"] > entries[1]["createdAt"]
        assert all(e["ownerId"] == "user-1" for e in entries)
