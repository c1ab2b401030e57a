"""Workspace invitations and role transitions.

Role policy: owners and admins may change roles, but only the owner may
promote to admin or demote an admin. The owner's own role never changes
here; there is no ownership transfer.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.clock import as_utc, utcnow
from teamchat.core.config import settings
from teamchat.core.errors import (
    AlreadyMember,
    Forbidden,
    InvalidOperation,
    InvalidOrExpiredInvite,
    NotFound,
)
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import get_membership, require_workspace_manager, require_workspace_member
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import ROLE_ADMIN, ROLE_MEMBER, ROLE_OWNER, Invite, WorkspaceMember

logger = get_logger(__name__)

ASSIGNABLE_ROLES = (ROLE_ADMIN, ROLE_MEMBER)


def _now() -> datetime:
    return utcnow()


def generate_invite_token() -> str:
    # opaque and unguessable; never derived from ids or email
    return secrets.token_urlsafe(32)


def generate_invite(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    email: str,
) -> Invite:
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.CREATE_INVITE, str(principal.user_id))
    require_workspace_manager(db, workspace_id, principal.user_id, "Insufficient permissions to invite members")

    now = _now()
    invite = Invite(
        workspace_id=workspace_id,
        email=email.strip().lower(),
        token=generate_invite_token(),
        invited_by_user_id=principal.user_id,
        expires_at=now + timedelta(days=settings.INVITE_EXPIRES_DAYS),
        created_at=now,
    )
    db.add(invite)
    db.commit()

    logger.info("invite created workspace=%s by=%s", workspace_id, principal.user_id)
    return invite


def _is_redeemable(invite: Optional[Invite], now: datetime) -> bool:
    if invite is None or invite.used_at is not None:
        return False
    return as_utc(invite.expires_at) > now


def join_by_invite(db: Session, principal: Optional[Principal], *, token: str) -> uuid.UUID:
    """Redeem ``token`` for the caller and return the workspace id.

    Marking the invite used and inserting the membership commit together.
    """
    principal = require_principal(principal)
    now = _now()

    invite = db.execute(select(Invite).where(Invite.token == token)).scalar_one_or_none()
    if not _is_redeemable(invite, now):
        raise InvalidOrExpiredInvite()

    if get_membership(db, invite.workspace_id, principal.user_id) is not None:
        raise AlreadyMember()

    # conditional claim: a concurrent redemption that got there first leaves rowcount 0
    claimed = db.execute(
        update(Invite)
        .where(Invite.id == invite.id, Invite.used_at.is_(None))
        .values(used_at=now, used_by_user_id=principal.user_id)
        .execution_options(synchronize_session="fetch")
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise InvalidOrExpiredInvite()

    db.add(WorkspaceMember(workspace_id=invite.workspace_id, user_id=principal.user_id, role=ROLE_MEMBER, joined_at=now))
    db.commit()
    db.refresh(invite)

    logger.info("invite redeemed workspace=%s user=%s", invite.workspace_id, principal.user_id)
    return invite.workspace_id


def update_member_role(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
    new_role: str,
) -> WorkspaceMember:
    principal = require_principal(principal)
    actor_role = require_workspace_member(db, workspace_id, principal.user_id)

    target = get_membership(db, workspace_id, user_id)
    if target is None:
        raise NotFound("User is not a member of this workspace")

    if target.role == ROLE_OWNER:
        raise InvalidOperation("Cannot change owner role. Transfer ownership first.")

    if actor_role not in (ROLE_OWNER, ROLE_ADMIN):
        raise Forbidden("Only workspace owners and admins can change member roles")

    if new_role not in ASSIGNABLE_ROLES:
        raise InvalidOperation(f"Invalid role: {new_role}")

    if new_role == ROLE_ADMIN and actor_role != ROLE_OWNER:
        raise Forbidden("Only workspace owners can promote members to admin")

    if target.role == ROLE_ADMIN and new_role == ROLE_MEMBER and actor_role != ROLE_OWNER:
        raise Forbidden("Only workspace owners can demote admins")

    if target.role != new_role:
        target.role = new_role
        db.commit()
        logger.info(
            "member role updated workspace=%s user=%s role=%s by=%s",
            workspace_id,
            user_id,
            new_role,
            principal.user_id,
        )
    return target
