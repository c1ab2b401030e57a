"""Direct-message conversations, identified by their exact participant set.

``participants_key`` is the sorted, comma-joined participant ids. It is the
lookup key that makes DM creation idempotent per participant set.
"""

from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.errors import Forbidden, InvalidOperation, NotAMember, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import access_for_dm, get_membership, is_participant, require_workspace_member
from teamchat.core.principal import Principal, require_principal
from teamchat.core.users import load_users
from teamchat.db.models import DirectMessage, User

logger = get_logger(__name__)


def normalize_participants(creator_id: uuid.UUID, participant_ids: Iterable[uuid.UUID]) -> List[str]:
    """Deduplicate, always include the creator, sort."""
    ids = {str(pid) for pid in participant_ids}
    ids.add(str(creator_id))
    return sorted(ids)


def participants_key(participants: Iterable[str]) -> str:
    return ",".join(sorted(set(participants)))


def find_dm(db: Session, workspace_id: uuid.UUID, participants: List[str]) -> Optional[DirectMessage]:
    return db.execute(
        select(DirectMessage)
        .where(
            DirectMessage.workspace_id == workspace_id,
            DirectMessage.participants_key == participants_key(participants),
        )
        .order_by(DirectMessage.created_at.asc())
    ).scalars().first()


def create_dm(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    participant_ids: Iterable[uuid.UUID],
) -> DirectMessage:
    """Return the DM for this exact participant set, creating it if needed."""
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.CREATE_DM, str(principal.user_id))
    require_workspace_member(db, workspace_id, principal.user_id)

    participants = normalize_participants(principal.user_id, participant_ids)
    if len(participants) < 2:
        raise InvalidOperation("A direct message needs at least two participants")

    for pid in participants:
        if get_membership(db, workspace_id, uuid.UUID(pid)) is None:
            raise NotAMember("All participants must be members of this workspace")

    existing = find_dm(db, workspace_id, participants)
    if existing is not None:
        # keep the rate-limit window increment
        db.commit()
        return existing

    dm = DirectMessage(
        workspace_id=workspace_id,
        participants=participants,
        participants_key=participants_key(participants),
    )
    db.add(dm)
    db.commit()

    logger.info("dm created dm=%s workspace=%s participants=%d by=%s", dm.id, workspace_id, len(participants), principal.user_id)
    return dm


def add_participant(
    db: Session,
    principal: Optional[Principal],
    *,
    dm_id: uuid.UUID,
    user_id: uuid.UUID,
) -> DirectMessage:
    principal = require_principal(principal)

    dm = db.get(DirectMessage, dm_id)
    if dm is None:
        raise NotFound("Direct message not found")

    require_workspace_member(db, dm.workspace_id, principal.user_id)
    if not is_participant(dm, principal.user_id):
        raise Forbidden("Only participants can add people to this conversation")

    if is_participant(dm, user_id):
        raise InvalidOperation("User is already a participant")

    if get_membership(db, dm.workspace_id, user_id) is None:
        raise NotAMember("User is not a member of this workspace")

    # reassign so the JSON column is flagged dirty
    participants = sorted(list(dm.participants) + [str(user_id)])
    dm.participants = participants
    dm.participants_key = participants_key(participants)
    db.commit()

    logger.info("dm participant added dm=%s user=%s by=%s", dm.id, user_id, principal.user_id)
    return dm


def _with_users(db: Session, dms: List[DirectMessage]) -> List[Tuple[DirectMessage, List[User]]]:
    users = load_users(db, (uuid.UUID(pid) for dm in dms for pid in dm.participants))
    by_str = {str(uid): u for uid, u in users.items()}
    return [(dm, [by_str[pid] for pid in dm.participants if pid in by_str]) for dm in dms]


def get_dm(
    db: Session, principal: Optional[Principal], dm_id: uuid.UUID
) -> Optional[Tuple[DirectMessage, List[User]]]:
    if principal is None:
        return None
    dm = db.get(DirectMessage, dm_id)
    if dm is None or not access_for_dm(db, dm, principal.user_id):
        return None
    return _with_users(db, [dm])[0]


def list_dms(
    db: Session, principal: Optional[Principal], workspace_id: uuid.UUID
) -> List[Tuple[DirectMessage, List[User]]]:
    """DMs in the workspace the caller takes part in, newest first."""
    if principal is None or get_membership(db, workspace_id, principal.user_id) is None:
        return []

    rows = db.execute(
        select(DirectMessage)
        .where(DirectMessage.workspace_id == workspace_id)
        .order_by(DirectMessage.created_at.desc())
    ).scalars().all()

    # participants live in a JSON list; filter in Python so SQLite and Postgres agree
    mine = [dm for dm in rows if is_participant(dm, principal.user_id)]
    return _with_users(db, mine)
