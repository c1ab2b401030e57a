"""Membership authority: who may see or write what.

Every call re-reads membership rows; nothing here caches a grant, because
membership can change between two requests from the same client.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamchat.core.errors import Forbidden, NotAMember
from teamchat.db.models import (
    ROLE_ADMIN,
    ROLE_OWNER,
    Channel,
    ChannelMember,
    DirectMessage,
    Message,
    WorkspaceMember,
)

MANAGER_ROLES = (ROLE_OWNER, ROLE_ADMIN)


@dataclass(frozen=True, slots=True)
class Access:
    can_read: bool
    can_write: bool


NO_ACCESS = Access(can_read=False, can_write=False)
FULL_ACCESS = Access(can_read=True, can_write=True)


def get_membership(db: Session, workspace_id: uuid.UUID, user_id: uuid.UUID) -> Optional[WorkspaceMember]:
    return db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def workspace_role(db: Session, workspace_id: uuid.UUID, user_id: uuid.UUID) -> Optional[str]:
    membership = get_membership(db, workspace_id, user_id)
    return membership.role if membership else None


def require_workspace_member(db: Session, workspace_id: uuid.UUID, user_id: uuid.UUID) -> str:
    role = workspace_role(db, workspace_id, user_id)
    if role is None:
        raise NotAMember()
    return role


def require_workspace_manager(
    db: Session,
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
    message: str = "Only workspace owners and admins can do this",
) -> str:
    role = require_workspace_member(db, workspace_id, user_id)
    if role not in MANAGER_ROLES:
        raise Forbidden(message)
    return role


def is_channel_member(db: Session, channel_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    row = db.execute(
        select(ChannelMember.id).where(
            ChannelMember.channel_id == channel_id,
            ChannelMember.user_id == user_id,
        )
    ).first()
    return row is not None


def access_for_channel(db: Session, channel: Channel, user_id: uuid.UUID) -> Access:
    if channel.deleted_at is not None:
        return NO_ACCESS
    if workspace_role(db, channel.workspace_id, user_id) is None:
        return NO_ACCESS
    if channel.is_private and not is_channel_member(db, channel.id, user_id):
        return NO_ACCESS
    return FULL_ACCESS


def channel_access(db: Session, channel_id: uuid.UUID, user_id: uuid.UUID) -> Access:
    channel = db.get(Channel, channel_id)
    if channel is None:
        return NO_ACCESS
    return access_for_channel(db, channel, user_id)


def is_participant(dm: DirectMessage, user_id: uuid.UUID) -> bool:
    return str(user_id) in (dm.participants or [])


def access_for_dm(db: Session, dm: DirectMessage, user_id: uuid.UUID) -> bool:
    """Participants keep access only while they are workspace members."""
    if not is_participant(dm, user_id):
        return False
    return workspace_role(db, dm.workspace_id, user_id) is not None


def dm_access(db: Session, dm_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    dm = db.get(DirectMessage, dm_id)
    return dm is not None and access_for_dm(db, dm, user_id)


def can_manage_channel(db: Session, channel: Channel, user_id: uuid.UUID) -> bool:
    """Channel creator, or a workspace owner/admin. Both must still be members."""
    role = workspace_role(db, channel.workspace_id, user_id)
    if role is None:
        return False
    return channel.created_by_user_id == user_id or role in MANAGER_ROLES


def message_access(db: Session, message: Message, user_id: uuid.UUID) -> Access:
    """Access to a message is access to the conversation it lives in."""
    if message.channel_id is not None:
        return channel_access(db, message.channel_id, user_id)
    if message.dm_id is not None and dm_access(db, message.dm_id, user_id):
        return FULL_ACCESS
    return NO_ACCESS
