"""
Login Guard API Routes

Endpoints:
- POST /api/auth/login-guard/check - Check whether a login attempt is allowed
- POST /api/auth/login-guard/attempts - Record the result of a login attempt

Both endpoints are called by the login flow before any credentials are
verified, so they do not require an authenticated caller.
"""

import logging

from fastapi import APIRouter, Depends

from database import get_store
from storage import DocumentStore
from utils.errors import EngineError, InternalError, http_error

from .lockout_service import LoginLockout
from .models import LoginAttemptRequest, LoginAttemptResult, LoginCheckRequest, LoginCheckResult

logger = logging.getLogger(__name__)

login_guard_router = APIRouter(prefix="/auth/login-guard", tags=["Login Guard"])


@login_guard_router.post("/check", response_model=LoginCheckResult)
async def check_login_rate_limit(
    request: LoginCheckRequest,
    store: DocumentStore = Depends(get_store),
):
    """
    Check the login rate limit before attempting authentication.

    Returns {"allowed": true}, or 403 locked_out with lockedUntil and
    remainingMinutes in the error details.
    """
    try:
        return await LoginLockout(store).check_allowed(request.email)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Login rate limit check failed: {e}")
        raise http_error(InternalError("Failed to check login rate limit"))


@login_guard_router.post("/attempts", response_model=LoginAttemptResult, response_model_exclude_none=True)
async def record_login_attempt(
    request: LoginAttemptRequest,
    store: DocumentStore = Depends(get_store),
):
    """
    Record a login attempt result.

    Success resets the failure count; failure increments it.
    """
    try:
        return await LoginLockout(store).record_attempt(request.email, request.success)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Recording login attempt failed: {e}")
        raise http_error(InternalError("Failed to record login attempt"))
