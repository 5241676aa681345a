import hashlib
import hmac
import logging
import os
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose.exceptions import ExpiredSignatureError, JWTError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..database import get_session
from ..models.user import User, UserRole
from .jwt import decode_access_token
from .tenancy import TenantScope

logger = logging.getLogger(__name__)


ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 100_000
SALT_BYTES = 16

# Actions each role may perform on financial entries
ROLE_PERMISSIONS = {
    UserRole.ADMIN: {"financial:read", "financial:create", "financial:update", "financial:delete"},
    UserRole.MANAGER: {"financial:read", "financial:create", "financial:update", "financial:delete"},
    UserRole.VIEWER: {"financial:read"},
}


def _pbkdf2_hash(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)


def hash_password(password: str) -> str:
    salt = os.urandom(SALT_BYTES)
    digest = _pbkdf2_hash(password, salt)
    return f"{ALGORITHM}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, salt_hex, hash_hex = stored.strip().split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False
    return hmac.compare_digest(_pbkdf2_hash(password, salt), expected)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def _raise_invalid(detail: str):
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    # Bearer header first, then the HttpOnly cookie set at login
    token = token or request.cookies.get("access_token")
    if not token:
        _raise_invalid("Not authenticated")

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        _raise_invalid("Token expired")
    except JWTError as e:
        logger.warning("JWT verification failed: %s", e)
        _raise_invalid("Invalid token")

    sub = payload.get("sub")
    if sub is None:
        _raise_invalid("Invalid token: missing subject")
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        _raise_invalid("Invalid token: bad subject format")

    user = (await session.exec(select(User).where(User.id == user_id))).first()
    if user is None or not user.is_active or user.deleted_at is not None:
        _raise_invalid("User not found")
    return user


def get_tenant_scope(current_user: User = Depends(get_current_user)) -> TenantScope:
    return TenantScope(company_id=current_user.company_id, user_id=current_user.id)


def require_permission(action: str):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if action not in ROLE_PERMISSIONS.get(current_user.role, set()):
            logger.warning("user=%s denied %s", current_user.id, action)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission {action}",
            )
        return current_user

    return checker
