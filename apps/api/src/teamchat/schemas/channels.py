from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ChannelCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=2000)
    is_private: bool = False


class ChannelUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=2000)


class ChannelOut(BaseModel):
    id: str
    workspace_id: str
    name: str
    description: Optional[str] = None
    is_private: bool
    created_by_user_id: str
    created_at: datetime


class ChannelMemberIn(BaseModel):
    user_id: str


class ChannelMemberOut(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
