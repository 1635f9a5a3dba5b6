"""
Shared fixtures: in-memory store with a controllable clock.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from devcoin.config import COLLECTIONS
from storage.memory_store import InMemoryDocumentStore


class FakeClock:
    """Store clock that only moves when a test says so."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def seed_account(store):
    """Create an account with the given balance."""
    async def _seed(account_id: str = "user-1", balance: int = 100):
        await store.set(COLLECTIONS["accounts"], account_id, {"balance": balance, "name": "Test User"})
        return account_id
    return _seed


def question_payload(title: str = "How do I debounce a TextField?", **overrides):
    payload = {
        "title": title,
        "body": "I want to wait 300ms after typing before searching.",
        "attachment": None,
        "category": "Flutter",
    }
    payload.update(overrides)
    return payload
