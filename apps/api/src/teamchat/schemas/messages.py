from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# -------- Payload records (closed shapes; unknown fields rejected) --------
class AttachmentIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    storage_id: str = Field(min_length=1, max_length=64)
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=127)
    size: int = Field(ge=0)


class Attachment(AttachmentIn):
    # snapshotted at send time; None when the blob could not be resolved
    url: Optional[str] = None


class LinkPreview(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(min_length=1, max_length=2000)
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    site_name: Optional[str] = None


# -------- Messages --------
class MessageSendIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workspace_id: str
    channel_id: Optional[str] = None
    dm_id: Optional[str] = None
    text: str = Field(default="", max_length=40000)
    attachments: List[AttachmentIn] = Field(default_factory=list)
    link_previews: List[LinkPreview] = Field(default_factory=list)
    parent_message_id: Optional[str] = None

    @model_validator(mode="after")
    def _one_conversation(self) -> "MessageSendIn":
        if bool(self.channel_id) == bool(self.dm_id):
            raise ValueError("Must specify exactly one of channel_id or dm_id")
        return self


class MessageEditIn(BaseModel):
    text: str = Field(min_length=1, max_length=40000)


class ReactionToggleIn(BaseModel):
    emoji: str = Field(min_length=1, max_length=64)


class ReactionToggleOut(BaseModel):
    reacted: bool


class SenderOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    image: Optional[str] = None


class ReactionGroupOut(BaseModel):
    emoji: str
    count: int
    user_ids: List[str]


class MessageOut(BaseModel):
    id: str
    workspace_id: str
    channel_id: Optional[str] = None
    dm_id: Optional[str] = None
    sender_id: str
    sender: Optional[SenderOut] = None
    text: str
    attachments: List[Attachment] = Field(default_factory=list)
    link_previews: List[LinkPreview] = Field(default_factory=list)
    parent_message_id: Optional[str] = None
    reactions: List[ReactionGroupOut] = Field(default_factory=list)
    thread_count: int = 0
    pinned_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None
    created_at: datetime


class MessagePageOut(BaseModel):
    page: List[MessageOut]
    is_done: bool
    continue_cursor: Optional[str] = None


class ThreadCountOut(BaseModel):
    parent_message_id: str
    count: int


class UploadUrlOut(BaseModel):
    upload_url: str


class UploadedFileOut(BaseModel):
    storage_id: str
