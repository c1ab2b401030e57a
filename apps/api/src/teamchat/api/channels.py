from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from teamchat.api.deps import get_principal, parse_id, require_user
from teamchat.core import channels as channels_core
from teamchat.core.errors import NotFound
from teamchat.core.principal import Principal
from teamchat.db.models import Channel, User
from teamchat.db.session import get_db
from teamchat.schemas.channels import (
    ChannelCreateIn,
    ChannelMemberIn,
    ChannelMemberOut,
    ChannelOut,
    ChannelUpdateIn,
)

router = APIRouter(tags=["channels"])


def channel_out(ch: Channel) -> ChannelOut:
    return ChannelOut(
        id=str(ch.id),
        workspace_id=str(ch.workspace_id),
        name=ch.name,
        description=ch.description,
        is_private=ch.is_private,
        created_by_user_id=str(ch.created_by_user_id),
        created_at=ch.created_at,
    )


def member_out(u: User) -> ChannelMemberOut:
    return ChannelMemberOut(user_id=str(u.id), email=u.email, name=u.name, image=u.image)


@router.post("/workspaces/{workspace_id}/channels", response_model=ChannelOut)
def create_channel(
    workspace_id: str,
    payload: ChannelCreateIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    ch = channels_core.create_channel(
        db,
        principal,
        workspace_id=parse_id(workspace_id, "workspace id"),
        name=payload.name,
        description=payload.description,
        is_private=payload.is_private,
    )
    return channel_out(ch)


@router.get("/workspaces/{workspace_id}/channels", response_model=list[ChannelOut])
def list_channels(workspace_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    return [channel_out(ch) for ch in channels_core.list_channels(db, principal, parse_id(workspace_id, "workspace id"))]


@router.get("/channels/{channel_id}", response_model=ChannelOut)
def get_channel(channel_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    ch = channels_core.get_channel(db, principal, parse_id(channel_id, "channel id"))
    if not ch:
        raise NotFound("Channel not found")
    return channel_out(ch)


@router.patch("/channels/{channel_id}", response_model=ChannelOut)
def update_channel(
    channel_id: str,
    payload: ChannelUpdateIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    ch = channels_core.update_channel(
        db,
        principal,
        channel_id=parse_id(channel_id, "channel id"),
        name=payload.name,
        description=payload.description,
    )
    return channel_out(ch)


@router.delete("/channels/{channel_id}")
def delete_channel(channel_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    channels_core.delete_channel(db, principal, channel_id=parse_id(channel_id, "channel id"))
    return {"ok": True}


@router.get("/channels/{channel_id}/members", response_model=list[ChannelMemberOut])
def list_channel_members(
    channel_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)
):
    return [member_out(u) for u in channels_core.list_channel_members(db, principal, parse_id(channel_id, "channel id"))]


@router.post("/channels/{channel_id}/members")
def add_member(
    channel_id: str,
    payload: ChannelMemberIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    channels_core.add_member(
        db,
        principal,
        channel_id=parse_id(channel_id, "channel id"),
        user_id=parse_id(payload.user_id, "user id"),
    )
    return {"ok": True}


@router.delete("/channels/{channel_id}/members/{user_id}")
def remove_member(
    channel_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    channels_core.remove_member(
        db,
        principal,
        channel_id=parse_id(channel_id, "channel id"),
        user_id=parse_id(user_id, "user id"),
    )
    return {"ok": True}


@router.post("/channels/{channel_id}/join")
def join_channel(channel_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    channels_core.join_channel(db, principal, channel_id=parse_id(channel_id, "channel id"))
    return {"ok": True}


@router.post("/channels/{channel_id}/leave")
def leave_channel(channel_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    channels_core.leave_channel(db, principal, channel_id=parse_id(channel_id, "channel id"))
    return {"ok": True}
