"""Per-user, per-emoji reactions.

The only mutation is a toggle: a row present means "reacted". Two identical
toggles cancel out, so callers must not blindly retry one. Counts are
computed from the rows at read time and never stored.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.errors import Forbidden, InvalidOperation, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import message_access, require_workspace_member
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import Message, Reaction

logger = get_logger(__name__)


@dataclass
class ReactionGroup:
    emoji: str
    count: int = 0
    user_ids: List[uuid.UUID] = field(default_factory=list)


def toggle_reaction(
    db: Session,
    principal: Optional[Principal],
    *,
    message_id: uuid.UUID,
    emoji: str,
) -> bool:
    """Flip the caller's ``emoji`` reaction on a message; returns the new state."""
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.ADD_REACTION, str(principal.user_id))

    message = db.get(Message, message_id)
    if message is None or message.deleted_at is not None:
        raise NotFound("Message not found")

    require_workspace_member(db, message.workspace_id, principal.user_id)
    if not message_access(db, message, principal.user_id).can_write:
        raise Forbidden("You cannot react in this conversation")

    existing = db.execute(
        select(Reaction).where(
            Reaction.message_id == message_id,
            Reaction.user_id == principal.user_id,
            Reaction.emoji == emoji,
        )
    ).scalar_one_or_none()

    if existing is not None:
        db.delete(existing)
        db.commit()
        logger.info("reaction removed message=%s user=%s emoji=%s", message_id, principal.user_id, emoji)
        return False

    db.add(Reaction(message_id=message_id, user_id=principal.user_id, emoji=emoji))
    try:
        db.commit()
    except IntegrityError:
        # a concurrent toggle inserted the same row first
        db.rollback()
        raise InvalidOperation("Reaction changed concurrently, please retry")

    logger.info("reaction added message=%s user=%s emoji=%s", message_id, principal.user_id, emoji)
    return True


def aggregate_reactions(db: Session, message_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, List[ReactionGroup]]:
    """Group reactions by emoji for many messages with a single query.

    Emoji groups keep the order in which each emoji was first used.
    """
    ids = list(message_ids)
    if not ids:
        return {}

    rows = db.execute(
        select(Reaction.message_id, Reaction.emoji, Reaction.user_id)
        .where(Reaction.message_id.in_(ids))
        .order_by(Reaction.created_at.asc(), Reaction.id.asc())
    ).all()

    grouped: Dict[uuid.UUID, Dict[str, ReactionGroup]] = {}
    for message_id, emoji, user_id in rows:
        groups = grouped.setdefault(message_id, {})
        group = groups.setdefault(emoji, ReactionGroup(emoji=emoji))
        group.count += 1
        group.user_ids.append(user_id)

    return {mid: list(groups.values()) for mid, groups in grouped.items()}
