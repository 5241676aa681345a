import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import jwt

from ..config import settings


def create_access_token(user_id: uuid.UUID, company_id: uuid.UUID, **claims: Any) -> str:
    """Sign a token for one user of one company; ``sub`` is the user id."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        **claims,
        "sub": str(user_id),
        "company_id": str(company_id),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require_exp": True, "require_sub": True},
    )
