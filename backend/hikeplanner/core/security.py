"""
Bearer-token auth

Tokens are plain HS256 JWTs issued at signup/login. There is no password
check; the token only identifies which user's partition a request may touch.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from hikeplanner.core.config import JWT_ALGORITHM, JWT_EXPIRATION_HOURS, JWT_SECRET
from hikeplanner.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# Missing headers are reported as our own 401, not FastAPI's 403
security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str, name: str | None = None) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "name": name,
        "exp": datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        raise AuthenticationError("Invalid authentication token")
    if not payload.get("sub"):
        raise AuthenticationError("Invalid authentication token")
    return payload


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return decode_access_token(credentials.credentials)


async def get_current_user_id(payload: dict = Depends(get_token_payload)) -> str:
    """The caller's user id, which is also their partition key."""
    return payload["sub"]
