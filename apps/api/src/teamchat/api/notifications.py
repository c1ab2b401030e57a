from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from teamchat.api.deps import get_principal, parse_id, require_user
from teamchat.api.messages import message_out
from teamchat.core import notifications as notifications_core
from teamchat.core.messages import project_messages
from teamchat.core.principal import Principal
from teamchat.db.session import get_db
from teamchat.schemas.notifications import NotificationSettingOut, NotificationToggleIn, UnnotifiedOut

router = APIRouter(tags=["notifications"])


@router.get("/channels/{channel_id}/notifications", response_model=NotificationSettingOut)
def get_setting(channel_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    cid = parse_id(channel_id, "channel id")
    return NotificationSettingOut(
        channel_id=str(cid),
        enabled=notifications_core.get_notification_setting(db, principal, cid),
    )


@router.put("/channels/{channel_id}/notifications", response_model=NotificationSettingOut)
def toggle(
    channel_id: str,
    payload: NotificationToggleIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    setting = notifications_core.toggle_notifications(
        db, principal, channel_id=parse_id(channel_id, "channel id"), enabled=payload.enabled
    )
    return NotificationSettingOut(channel_id=str(setting.channel_id), enabled=setting.enabled)


@router.get("/notifications/unnotified", response_model=UnnotifiedOut)
def unnotified(db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    messages = notifications_core.get_unnotified_messages(db, principal)
    return UnnotifiedOut(messages=[message_out(v) for v in project_messages(db, messages, with_thread_counts=False)])
