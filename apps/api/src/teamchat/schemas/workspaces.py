from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class WorkspaceCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class WorkspaceOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_user_id: str
    role: str
    created_at: datetime


class WorkspaceMemberOut(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: str
    joined_at: datetime


class WorkspaceRoleOut(BaseModel):
    workspace_id: str
    role: str


class MemberRoleUpdateIn(BaseModel):
    role: str = Field(pattern="^(admin|member)$")


class InviteCreateIn(BaseModel):
    email: EmailStr


class InviteOut(BaseModel):
    id: str
    workspace_id: str
    email: str
    token: str
    expires_at: datetime


class JoinByInviteIn(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class JoinedOut(BaseModel):
    workspace_id: str
