from __future__ import annotations

from typing import List

from pydantic import BaseModel

from teamchat.schemas.messages import MessageOut


class NotificationToggleIn(BaseModel):
    enabled: bool


class NotificationSettingOut(BaseModel):
    channel_id: str
    enabled: bool


class UnnotifiedOut(BaseModel):
    messages: List[MessageOut]
