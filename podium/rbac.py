"""
podium/rbac.py
Bearer-token identity and role checks for the prediction API.

Tokens are issued by the tracker's auth service; this module only
verifies them. Claims: sub (user id), role, type="access".
"""
import os
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt

from podium.database import get_db
from podium.errors import ErrorCode, ForbiddenError, UnauthorizedError
from podium.orm.user import User

logger = logging.getLogger(__name__)

# ================= CONFIG =================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# ================= TOKEN UTILS =================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token carrying the user id in 'sub'"""
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "type": "access"
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT access token.
    Returns 401 if token is invalid or expired, or the user is inactive.
    """
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)

    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)

    user = await db.get(User, int(sub))
    if user is None or not user.is_active:
        logger.warning(f"Token for unknown or inactive user {sub}")
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise ForbiddenError("Admin role required")
    return current_user
