"""
Login Guard Data Models
"""

from pydantic import BaseModel
from typing import Optional, Any
from datetime import datetime


class LoginCheckRequest(BaseModel):
    email: Optional[Any] = None


class LoginAttemptRequest(BaseModel):
    email: Optional[Any] = None
    success: Optional[Any] = None


class LoginCheckResult(BaseModel):
    allowed: bool = True


class LoginAttemptResult(BaseModel):
    recorded: bool = True
    failedAttempts: Optional[int] = None


class LoginLock(BaseModel):
    """Lock record as stored in login_locks (keyed by identifier)"""
    failedAttempts: int = 0
    lastAttemptAt: Optional[datetime] = None
    lockedUntil: Optional[datetime] = None
