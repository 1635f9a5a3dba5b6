"""
Authentication utilities

Caller identity comes from a bearer JWT whose "sub" claim is the account id.
Token issuance and verification policy live with the identity provider;
this module only decodes and checks the signature/expiry.
"""
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from datetime import datetime, timezone, timedelta
import os

from utils.errors import UnauthenticatedError

security = HTTPBearer(auto_error=False)
JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')


def _jwt_secret() -> str:
    return os.environ.get('JWT_SECRET', 'devcoin-secret-key-change-in-production')


def create_token(user_id: str, email: Optional[str] = None, expires_in: timedelta = timedelta(days=7)) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + expires_in
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def _unauthenticated(message: str) -> HTTPException:
    return HTTPException(status_code=401, detail=UnauthenticatedError(message).to_dict())


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Verify JWT token and return the caller identity"""
    if credentials is None:
        raise _unauthenticated("Authentication is required.")

    try:
        payload = jwt.decode(credentials.credentials, _jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthenticated("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthenticated("Invalid token")

    return {"id": user_id, "email": payload.get("email")}
