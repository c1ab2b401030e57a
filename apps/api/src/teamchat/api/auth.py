from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from teamchat.api.deps import require_user
from teamchat.core.config import settings
from teamchat.core.errors import Unauthenticated
from teamchat.core.logging_config import get_logger
from teamchat.core.principal import Principal
from teamchat.core.security import (
    ACCESS_COOKIE_HTTPONLY,
    ACCESS_COOKIE_NAME,
    ACCESS_COOKIE_PATH,
    create_access_token,
)
from teamchat.core.security_passwords import hash_password, verify_password
from teamchat.db.models import User
from teamchat.db.session import get_db
from teamchat.schemas.auth import LoginIn, RegisterIn, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])

logger = get_logger(__name__)


def user_out(user: User) -> UserOut:
    return UserOut(id=str(user.id), email=user.email, name=user.name, image=user.image)


def _set_access_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=ACCESS_COOKIE_NAME,
        value=token,
        httponly=ACCESS_COOKIE_HTTPONLY,
        secure=bool(settings.COOKIE_SECURE),
        samesite=settings.COOKIE_SAMESITE,
        path=ACCESS_COOKIE_PATH,
        max_age=settings.ACCESS_EXPIRES_MINUTES * 60,
    )


def _clear_cookies(response: Response) -> None:
    response.delete_cookie(key=ACCESS_COOKIE_NAME, path=ACCESS_COOKIE_PATH)


@router.post("/register", response_model=UserOut)
def register(payload: RegisterIn, response: Response, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()

    existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        name=(payload.name or "").strip() or None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    # registering signs the user in
    _set_access_cookie(response, create_access_token(user_id=user.id, email=user.email))

    logger.info("user registered user=%s", user.id)
    return user_out(user)


@router.post("/login", response_model=UserOut)
def login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        raise Unauthenticated("Invalid credentials")

    _set_access_cookie(response, create_access_token(user_id=user.id, email=user.email))
    return user_out(user)


@router.post("/logout")
def logout(response: Response):
    _clear_cookies(response)
    return {"ok": True}


@router.get("/me", response_model=UserOut)
def me(principal: Principal = Depends(require_user), db: Session = Depends(get_db)):
    user = db.get(User, principal.user_id)
    if not user:
        raise Unauthenticated()
    return user_out(user)
