"""
Login Lockout Service

Per-identifier state machine stored in login_locks:

    Clear (no record)
      -> Accumulating(n)        each failed attempt, 1 <= n < threshold
      -> Locked(until)          check_allowed() sees n >= threshold
      -> Clear                  successful login, or sweeper after expiry

Callers run check_allowed() BEFORE authenticating and record_attempt()
AFTER. The two calls are separate operations: two concurrent attempts for
the same identifier can both pass check_allowed() before either failure is
recorded. That window is accepted for a brute-force deterrent.

Each single step is atomic: the failure counter is incremented inside a
store transaction (no lost updates), and lock escalation only sets
lockedUntil if no other caller set it first.

An expired lock (lockedUntil in the past) no longer blocks, even before the
sweeper removes it. The next failure after expiry starts a fresh count.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from storage import DELETE_FIELD, SERVER_TIMESTAMP, DocumentStore, StoreError, Transaction, TransactionConflictError
from utils.errors import InternalError, InvalidArgumentError, LockedOutError, TransactionAbortedError

from .config import ERROR_MESSAGES, LOCKOUT_POLICY, LOGIN_LOCKS_COLLECTION, MAX_TRANSACTION_ATTEMPTS
from .models import LoginAttemptResult, LoginCheckResult

logger = logging.getLogger(__name__)


def normalize_identifier(identifier: Any) -> str:
    """Emails are case-insensitive; one lock record per address."""
    if not isinstance(identifier, str) or not identifier.strip():
        raise InvalidArgumentError(ERROR_MESSAGES["IDENTIFIER_REQUIRED"], field="email")
    return identifier.strip().lower()


def _failed_attempts(lock: Dict[str, Any]) -> int:
    count = lock.get("failedAttempts", 0)
    return count if isinstance(count, int) and count > 0 else 0


class LoginLockout:
    """Failed-login counter with timed lockout."""

    def __init__(
        self,
        store: DocumentStore,
        max_failed_attempts: int = LOCKOUT_POLICY["max_failed_attempts"],
        lock_window_minutes: int = LOCKOUT_POLICY["lock_window_minutes"],
        max_attempts: int = MAX_TRANSACTION_ATTEMPTS,
    ):
        if max_failed_attempts < 1:
            raise ValueError("max_failed_attempts must be at least 1")
        if lock_window_minutes < 1:
            raise ValueError("lock_window_minutes must be at least 1")
        self.store = store
        self.max_failed_attempts = max_failed_attempts
        self.lock_window = timedelta(minutes=lock_window_minutes)
        self.max_attempts = max_attempts

    async def check_allowed(self, identifier: Any) -> LoginCheckResult:
        """
        Check whether a login attempt may proceed.

        Raises:
            InvalidArgumentError: identifier missing or not a string
            LockedOutError: identifier is locked (details: lockedUntil, remainingMinutes)
        """
        key = normalize_identifier(identifier)
        lock = await self.store.get(LOGIN_LOCKS_COLLECTION, key)
        if lock is None:
            return LoginCheckResult(allowed=True)

        now = await self.store.now()
        locked_until = lock.get("lockedUntil")

        if locked_until is not None:
            if locked_until > now:
                raise self._locked_out(locked_until, now, "LOCKED")
            # Expired, waiting for the sweeper
            return LoginCheckResult(allowed=True)

        if _failed_attempts(lock) >= self.max_failed_attempts:
            locked_until = await self._escalate(key, now)
            if locked_until is not None and locked_until > now:
                logger.warning(f"Login locked for {key} until {locked_until.isoformat()}")
                raise self._locked_out(locked_until, now, "LOCK_TRIGGERED")

        return LoginCheckResult(allowed=True)

    async def record_attempt(self, identifier: Any, success: Any) -> LoginAttemptResult:
        """
        Record the outcome of a login attempt.

        Success clears the record. Failure increments the counter (merge
        write, lastAttemptAt from the store clock). While a lock is active
        the counter is left untouched.
        """
        key = normalize_identifier(identifier)
        if not isinstance(success, bool):
            raise InvalidArgumentError(ERROR_MESSAGES["SUCCESS_FLAG_REQUIRED"], field="success")

        if success:
            try:
                await self.store.delete(LOGIN_LOCKS_COLLECTION, key)
            except StoreError as e:
                logger.error(f"Failed to clear login lock for {key}: {e}")
                raise InternalError(f"Failed to record login attempt: {e}")
            return LoginAttemptResult(recorded=True)

        now = await self.store.now()

        async def increment(txn: Transaction) -> int:
            lock = await txn.get(LOGIN_LOCKS_COLLECTION, key) or {}
            locked_until = lock.get("lockedUntil")

            if locked_until is not None and locked_until > now:
                return _failed_attempts(lock)

            fields: Dict[str, Any] = {"lastAttemptAt": SERVER_TIMESTAMP}
            if locked_until is not None:
                # Lock expired but not swept yet: start a new sequence
                count = 1
                fields["lockedUntil"] = DELETE_FIELD
            else:
                count = _failed_attempts(lock) + 1
            fields["failedAttempts"] = count

            txn.set(LOGIN_LOCKS_COLLECTION, key, fields, merge=True)
            return count

        count = await self._run(increment, key)

        if count >= self.max_failed_attempts:
            logger.warning(f"Login failure threshold reached for {key} ({count} attempts)")
        return LoginAttemptResult(recorded=True, failedAttempts=count)

    async def _escalate(self, key: str, now: datetime) -> Optional[datetime]:
        """Set lockedUntil once; returns the lock that is in force, if any."""
        until = now + self.lock_window

        async def lock(txn: Transaction) -> Optional[datetime]:
            current = await txn.get(LOGIN_LOCKS_COLLECTION, key)
            if current is None:
                # Reset by a successful login in the meantime
                return None
            if current.get("lockedUntil") is not None:
                return current["lockedUntil"]
            if _failed_attempts(current) < self.max_failed_attempts:
                return None
            txn.update(LOGIN_LOCKS_COLLECTION, key, {"lockedUntil": until})
            return until

        return await self._run(lock, key)

    async def _run(self, callback, key: str):
        try:
            return await self.store.run_transaction(callback, max_attempts=self.max_attempts)
        except TransactionConflictError as e:
            logger.error(f"Login lock update for {key} aborted after {e.attempts} attempts")
            raise TransactionAbortedError("Login attempt could not be recorded. Please try again.", attempts=e.attempts)
        except StoreError as e:
            logger.error(f"Login lock update for {key} failed: {e}")
            raise InternalError(f"Failed to update login lock: {e}")

    def _locked_out(self, locked_until: datetime, now: datetime, message_key: str) -> LockedOutError:
        remaining_minutes = max(1, math.ceil((locked_until - now).total_seconds() / 60))
        return LockedOutError(
            ERROR_MESSAGES[message_key].format(minutes=remaining_minutes),
            {
                "lockedUntil": locked_until.isoformat(),
                "remainingMinutes": remaining_minutes,
            },
        )
