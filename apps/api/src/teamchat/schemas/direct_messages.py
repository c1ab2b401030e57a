from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from teamchat.schemas.channels import ChannelMemberOut


class DirectMessageCreateIn(BaseModel):
    participant_ids: List[str] = Field(min_length=1, max_length=50)


class ParticipantIn(BaseModel):
    user_id: str


class DirectMessageOut(BaseModel):
    id: str
    workspace_id: str
    participants: List[ChannelMemberOut]
    created_at: datetime
