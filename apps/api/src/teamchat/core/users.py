from __future__ import annotations

import uuid
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamchat.core.errors import NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import User

logger = get_logger(__name__)


def load_users(db: Session, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]:
    """Fetch many users in one round trip, keyed by id."""
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    rows = db.execute(select(User).where(User.id.in_(ids))).scalars().all()
    return {u.id: u for u in rows}


def update_profile(
    db: Session,
    principal: Optional[Principal],
    *,
    name: Optional[str] = None,
    image: Optional[str] = None,
) -> User:
    principal = require_principal(principal)

    user = db.get(User, principal.user_id)
    if not user:
        raise NotFound("User not found")

    if name is not None:
        user.name = name.strip() or None
    if image is not None:
        user.image = image.strip() or None

    db.commit()
    logger.info("profile updated user=%s", user.id)
    return user
