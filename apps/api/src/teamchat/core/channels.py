from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.clock import utcnow
from teamchat.core.errors import Forbidden, InvalidOperation, NotAMember, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import (
    access_for_channel,
    can_manage_channel,
    get_membership,
    is_channel_member,
    require_workspace_member,
)
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import (
    Channel,
    ChannelMember,
    ChannelNotification,
    Message,
    User,
)

logger = get_logger(__name__)


def _now() -> datetime:
    return utcnow()


def _get_channel_or_404(db: Session, channel_id: uuid.UUID) -> Channel:
    channel = db.get(Channel, channel_id)
    if channel is None or channel.deleted_at is not None:
        raise NotFound("Channel not found")
    return channel


def _find_channel_member(db: Session, channel_id: uuid.UUID, user_id: uuid.UUID) -> Optional[ChannelMember]:
    return db.execute(
        select(ChannelMember).where(
            ChannelMember.channel_id == channel_id,
            ChannelMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def _drop_notification_setting(db: Session, channel_id: uuid.UUID, user_id: uuid.UUID) -> None:
    db.execute(
        delete(ChannelNotification)
        .where(ChannelNotification.channel_id == channel_id, ChannelNotification.user_id == user_id)
        .execution_options(synchronize_session="fetch")
    )


def create_channel(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    name: str,
    description: Optional[str] = None,
    is_private: bool = False,
) -> Channel:
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.CREATE_CHANNEL, str(principal.user_id))
    require_workspace_member(db, workspace_id, principal.user_id)

    channel = Channel(
        workspace_id=workspace_id,
        name=name.strip(),
        description=description,
        is_private=is_private,
        created_by_user_id=principal.user_id,
    )
    db.add(channel)
    db.flush()

    # creator is always a member, private or not
    db.add(ChannelMember(channel_id=channel.id, user_id=principal.user_id))
    db.commit()

    logger.info(
        "channel created channel=%s workspace=%s private=%s by=%s",
        channel.id,
        workspace_id,
        is_private,
        principal.user_id,
    )
    return channel


def list_channels(db: Session, principal: Optional[Principal], workspace_id: uuid.UUID) -> List[Channel]:
    """Public channels plus the private ones the caller belongs to."""
    if principal is None or get_membership(db, workspace_id, principal.user_id) is None:
        return []

    public = db.execute(
        select(Channel)
        .where(
            Channel.workspace_id == workspace_id,
            Channel.is_private.is_(False),
            Channel.deleted_at.is_(None),
        )
        .order_by(Channel.created_at.asc())
    ).scalars().all()

    private = db.execute(
        select(Channel)
        .join(ChannelMember, ChannelMember.channel_id == Channel.id)
        .where(
            Channel.workspace_id == workspace_id,
            Channel.is_private.is_(True),
            Channel.deleted_at.is_(None),
            ChannelMember.user_id == principal.user_id,
        )
        .order_by(Channel.created_at.asc())
    ).scalars().all()

    return list(public) + list(private)


def get_channel(db: Session, principal: Optional[Principal], channel_id: uuid.UUID) -> Optional[Channel]:
    if principal is None:
        return None
    channel = db.get(Channel, channel_id)
    if channel is None or not access_for_channel(db, channel, principal.user_id).can_read:
        return None
    return channel


def list_channel_members(db: Session, principal: Optional[Principal], channel_id: uuid.UUID) -> List[User]:
    if get_channel(db, principal, channel_id) is None:
        return []
    return list(
        db.execute(
            select(User)
            .join(ChannelMember, ChannelMember.user_id == User.id)
            .where(ChannelMember.channel_id == channel_id)
            .order_by(ChannelMember.joined_at.asc())
        ).scalars()
    )


def add_member(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
) -> ChannelMember:
    principal = require_principal(principal)
    channel = _get_channel_or_404(db, channel_id)

    require_workspace_member(db, channel.workspace_id, principal.user_id)
    if not is_channel_member(db, channel.id, principal.user_id):
        raise Forbidden("You must be a member of this channel to add others")

    if get_membership(db, channel.workspace_id, user_id) is None:
        raise NotAMember("User is not a member of this workspace")

    if is_channel_member(db, channel.id, user_id):
        raise InvalidOperation("User is already a member of this channel")

    member = ChannelMember(channel_id=channel.id, user_id=user_id)
    db.add(member)
    db.commit()

    logger.info("channel member added channel=%s user=%s by=%s", channel.id, user_id, principal.user_id)
    return member


def remove_member(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    principal = require_principal(principal)
    channel = _get_channel_or_404(db, channel_id)

    require_workspace_member(db, channel.workspace_id, principal.user_id)
    if not can_manage_channel(db, channel, principal.user_id):
        raise Forbidden("Only the channel creator, workspace owners and admins can remove members")

    membership = _find_channel_member(db, channel.id, user_id)
    if membership is None:
        raise InvalidOperation("User is not a member of this channel")

    db.delete(membership)
    _drop_notification_setting(db, channel.id, user_id)
    db.commit()

    logger.info("channel member removed channel=%s user=%s by=%s", channel.id, user_id, principal.user_id)


def update_channel(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: uuid.UUID,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Channel:
    principal = require_principal(principal)
    channel = _get_channel_or_404(db, channel_id)

    require_workspace_member(db, channel.workspace_id, principal.user_id)
    if not can_manage_channel(db, channel, principal.user_id):
        raise Forbidden("Only the channel creator, workspace owners and admins can edit channels")

    if name is not None:
        channel.name = name.strip()
    if description is not None:
        channel.description = description

    db.commit()
    logger.info("channel updated channel=%s by=%s", channel.id, principal.user_id)
    return channel


def delete_channel_cascade(db: Session, channel: Channel) -> None:
    """Retire a channel and what hangs off it.

    Scope: the channel's messages (replies included) are soft-deleted and
    keep their rows, reactions stay attached to them, notification settings
    and memberships are deleted, the channel row is marked deleted.
    Does not commit.
    """
    now = _now()
    db.execute(
        update(Message)
        .where(Message.channel_id == channel.id, Message.deleted_at.is_(None))
        .values(deleted_at=now)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        delete(ChannelNotification)
        .where(ChannelNotification.channel_id == channel.id)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        delete(ChannelMember).where(ChannelMember.channel_id == channel.id).execution_options(synchronize_session="fetch")
    )
    channel.deleted_at = now


def delete_channel(db: Session, principal: Optional[Principal], *, channel_id: uuid.UUID) -> None:
    principal = require_principal(principal)
    channel = _get_channel_or_404(db, channel_id)

    require_workspace_member(db, channel.workspace_id, principal.user_id)
    if not can_manage_channel(db, channel, principal.user_id):
        raise Forbidden("Only the channel creator, workspace owners and admins can delete channels")

    delete_channel_cascade(db, channel)
    db.commit()

    logger.info("channel deleted channel=%s by=%s", channel_id, principal.user_id)


def join_channel(db: Session, principal: Optional[Principal], *, channel_id: uuid.UUID) -> None:
    """Join a public channel. Joining twice is a no-op."""
    principal = require_principal(principal)
    channel = _get_channel_or_404(db, channel_id)

    require_workspace_member(db, channel.workspace_id, principal.user_id)

    if channel.is_private:
        raise Forbidden("Cannot join a private channel without an invitation")

    if is_channel_member(db, channel.id, principal.user_id):
        return

    db.add(ChannelMember(channel_id=channel.id, user_id=principal.user_id))
    db.commit()
    logger.info("channel joined channel=%s user=%s", channel.id, principal.user_id)


def leave_channel(db: Session, principal: Optional[Principal], *, channel_id: uuid.UUID) -> None:
    principal = require_principal(principal)

    membership = _find_channel_member(db, channel_id, principal.user_id)
    if membership is None:
        raise NotAMember("Not a member of this channel")

    db.delete(membership)
    _drop_notification_setting(db, channel_id, principal.user_id)
    db.commit()
    logger.info("channel left channel=%s user=%s", channel_id, principal.user_id)
