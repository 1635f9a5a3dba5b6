"""
Engine error taxonomy

Every rejection carries a stable machine-readable code, a human-readable
message and optional structured details (retry hints, balances).
Routes turn these into HTTPException(status_code=http_status, detail=to_dict()).
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class EngineError(Exception):
    """Base class for all errors surfaced to callers."""
    code = "internal"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(EngineError):
    """Malformed or out-of-bounds input. Never retried."""
    code = "invalid_argument"
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class UnauthenticatedError(EngineError):
    code = "unauthenticated"
    http_status = 401


class DuplicateSubmissionError(EngineError):
    """Same title by the same account inside the cooldown window."""
    code = "duplicate_submission"
    http_status = 429


class LockedOutError(EngineError):
    """Identifier is temporarily locked after repeated failed logins."""
    code = "locked_out"
    http_status = 403


class AccountNotFoundError(EngineError):
    code = "account_not_found"
    http_status = 404


class InsufficientFundsError(EngineError):
    code = "insufficient_funds"
    http_status = 402


class InternalError(EngineError):
    code = "internal"
    http_status = 500


class TransactionAbortedError(InternalError):
    """Ledger transaction kept conflicting until the retry budget ran out."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.details = {"retryable": True, "attempts": attempts}
        self.attempts = attempts


def http_error(error: EngineError):
    """Translate an EngineError into the HTTPException returned by routes."""
    return HTTPException(status_code=error.http_status, detail=error.to_dict())
