"""Per-user, per-channel notification opt-in and the ``last_seen`` watermark.

Delivery is at-least-once: if the process dies after the messages are read
but before the watermark commit, the next poll returns them again. It never
skips a message.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from teamchat.core.clock import as_utc, utcnow
from teamchat.core.errors import Forbidden, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import access_for_channel, require_workspace_member
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import Channel, ChannelNotification, Message

logger = get_logger(__name__)


def _now() -> datetime:
    return utcnow()


def _find_setting(db: Session, channel_id: uuid.UUID, user_id: uuid.UUID) -> Optional[ChannelNotification]:
    return db.execute(
        select(ChannelNotification).where(
            ChannelNotification.channel_id == channel_id,
            ChannelNotification.user_id == user_id,
        )
    ).scalar_one_or_none()


def toggle_notifications(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: uuid.UUID,
    enabled: bool,
) -> ChannelNotification:
    """Upsert the caller's setting for a channel.

    Turning notifications on (first time or again) moves the watermark to now,
    so the backlog is not replayed.
    """
    principal = require_principal(principal)

    channel = db.get(Channel, channel_id)
    if channel is None or channel.deleted_at is not None:
        raise NotFound("Channel not found")

    require_workspace_member(db, channel.workspace_id, principal.user_id)
    if not access_for_channel(db, channel, principal.user_id).can_read:
        raise Forbidden("You cannot follow this channel")

    setting = _find_setting(db, channel_id, principal.user_id)
    if setting is None:
        setting = ChannelNotification(
            channel_id=channel_id,
            user_id=principal.user_id,
            enabled=enabled,
            last_seen=_now(),
        )
        db.add(setting)
    else:
        if enabled and not setting.enabled:
            setting.last_seen = _now()
        setting.enabled = enabled

    db.commit()
    logger.info("notifications toggled channel=%s user=%s enabled=%s", channel_id, principal.user_id, enabled)
    return setting


def get_notification_setting(db: Session, principal: Optional[Principal], channel_id: uuid.UUID) -> bool:
    if principal is None:
        return False
    setting = _find_setting(db, channel_id, principal.user_id)
    return bool(setting and setting.enabled)


def users_to_notify(db: Session, channel_id: uuid.UUID) -> List[uuid.UUID]:
    return list(
        db.execute(
            select(ChannelNotification.user_id).where(
                ChannelNotification.channel_id == channel_id,
                ChannelNotification.enabled.is_(True),
            )
        ).scalars()
    )


def get_unnotified_messages(db: Session, principal: Optional[Principal]) -> List[Message]:
    """Messages newer than each enabled channel's watermark, oldest first.

    Watermarks advance to the newest message seen per channel, including the
    caller's own messages, which are not returned.
    """
    if principal is None:
        return []

    settings_rows = db.execute(
        select(ChannelNotification).where(
            ChannelNotification.user_id == principal.user_id,
            ChannelNotification.enabled.is_(True),
        )
    ).scalars().all()

    collected: List[Message] = []
    advance: Dict[uuid.UUID, datetime] = {}

    for setting in settings_rows:
        channel = db.get(Channel, setting.channel_id)
        if channel is None or not access_for_channel(db, channel, principal.user_id).can_read:
            continue

        messages = db.execute(
            select(Message)
            .where(
                Message.channel_id == setting.channel_id,
                Message.created_at > setting.last_seen,
                Message.deleted_at.is_(None),
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
        ).scalars().all()
        if not messages:
            continue

        advance[setting.id] = messages[-1].created_at
        collected.extend(m for m in messages if m.sender_user_id != principal.user_id)

    for setting_id, newest in advance.items():
        # never move a watermark backwards under a concurrent poll
        db.execute(
            update(ChannelNotification)
            .where(ChannelNotification.id == setting_id, ChannelNotification.last_seen < newest)
            .values(last_seen=newest)
            .execution_options(synchronize_session="fetch")
        )
    if advance:
        db.commit()

    collected.sort(key=lambda m: (as_utc(m.created_at), str(m.id)))
    return collected
