from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from teamchat.api.auth import user_out
from teamchat.api.deps import require_user
from teamchat.core.principal import Principal
from teamchat.core.users import update_profile
from teamchat.db.session import get_db
from teamchat.schemas.auth import ProfileUpdateIn, UserOut

router = APIRouter(prefix="/users", tags=["users"])


@router.patch("/me", response_model=UserOut)
def update_me(payload: ProfileUpdateIn, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    user = update_profile(db, principal, name=payload.name, image=payload.image)
    return user_out(user)
