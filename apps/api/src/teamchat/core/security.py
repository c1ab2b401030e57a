from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from teamchat.core.clock import utcnow
from teamchat.core.config import settings
from teamchat.core.principal import Principal
from teamchat.db.models import User

ACCESS_COOKIE_NAME = "teamchat_access"
ACCESS_COOKIE_PATH = "/"
ACCESS_COOKIE_HTTPONLY = True


def create_access_token(*, user_id: uuid.UUID, email: str) -> str:
    now = utcnow()
    exp = now + timedelta(minutes=settings.ACCESS_EXPIRES_MINUTES)

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])


def get_token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE_NAME)
    if token:
        return token

    # API clients may send the same token as a bearer credential
    auth = request.headers.get("authorization", "")
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def resolve_principal(db: Session, token: Optional[str]) -> Optional[Principal]:
    """Map an access token to the caller, or None when it is missing or invalid."""
    if not token:
        return None

    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    sub = payload.get("sub")
    if not sub:
        return None
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        return None

    # tokens for deleted users resolve to nobody
    if db.get(User, user_id) is None:
        return None
    return Principal(user_id=user_id)
