from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from teamchat.api.deps import get_principal, get_storage, parse_id, parse_optional_id, require_user
from teamchat.core import messages as messages_core
from teamchat.core.errors import NotFound
from teamchat.core.messages import MessageView
from teamchat.core.pagination import Page
from teamchat.core.principal import Principal
from teamchat.core.reactions import toggle_reaction
from teamchat.core.storage import LocalBlobStorage
from teamchat.db.models import Message
from teamchat.db.session import get_db
from teamchat.schemas.messages import (
    Attachment,
    LinkPreview,
    MessageEditIn,
    MessageOut,
    MessagePageOut,
    MessageSendIn,
    ReactionGroupOut,
    ReactionToggleIn,
    ReactionToggleOut,
    SenderOut,
    ThreadCountOut,
)

router = APIRouter(tags=["messages"])


def message_out(view: MessageView) -> MessageOut:
    m = view.message
    sender = view.sender
    return MessageOut(
        id=str(m.id),
        workspace_id=str(m.workspace_id),
        channel_id=str(m.channel_id) if m.channel_id else None,
        dm_id=str(m.dm_id) if m.dm_id else None,
        sender_id=str(m.sender_user_id),
        sender=SenderOut(id=str(sender.id), name=sender.name, email=sender.email, image=sender.image) if sender else None,
        text=m.text,
        attachments=[Attachment(**a) for a in (m.attachments or [])],
        link_previews=[LinkPreview(**p) for p in (m.link_previews or [])],
        parent_message_id=str(m.parent_message_id) if m.parent_message_id else None,
        reactions=[ReactionGroupOut(emoji=g.emoji, count=g.count, user_ids=[str(u) for u in g.user_ids]) for g in view.reactions],
        thread_count=view.thread_count,
        pinned_at=m.pinned_at,
        edited_at=m.edited_at,
        created_at=m.created_at,
    )


def _page_out(page: Page[MessageView]) -> MessagePageOut:
    return MessagePageOut(
        page=[message_out(v) for v in page.page],
        is_done=page.is_done,
        continue_cursor=page.continue_cursor,
    )


def _view_or_404(db: Session, principal: Principal, message: Message) -> MessageOut:
    view = messages_core.get_message(db, principal, message.id)
    if view is None:
        raise NotFound("Message not found")
    return message_out(view)


@router.post("/messages", response_model=MessageOut)
def send_message(
    payload: MessageSendIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
    storage: LocalBlobStorage = Depends(get_storage),
):
    message = messages_core.send_message(
        db,
        principal,
        workspace_id=parse_id(payload.workspace_id, "workspace id"),
        channel_id=parse_optional_id(payload.channel_id, "channel id"),
        dm_id=parse_optional_id(payload.dm_id, "dm id"),
        text=payload.text,
        attachments=payload.attachments,
        link_previews=payload.link_previews,
        parent_message_id=parse_optional_id(payload.parent_message_id, "parent message id"),
        storage=storage,
    )
    return _view_or_404(db, principal, message)


@router.get("/channels/{channel_id}/messages", response_model=MessagePageOut)
def list_channel_messages(
    channel_id: str,
    cursor: Optional[str] = Query(default=None),
    page_size: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Optional[Principal] = Depends(get_principal),
):
    page = messages_core.list_messages(
        db, principal, channel_id=parse_id(channel_id, "channel id"), cursor=cursor, page_size=page_size
    )
    return _page_out(page)


@router.get("/dms/{dm_id}/messages", response_model=MessagePageOut)
def list_dm_messages(
    dm_id: str,
    cursor: Optional[str] = Query(default=None),
    page_size: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Optional[Principal] = Depends(get_principal),
):
    page = messages_core.list_messages(db, principal, dm_id=parse_id(dm_id, "dm id"), cursor=cursor, page_size=page_size)
    return _page_out(page)


@router.get("/channels/{channel_id}/pinned", response_model=list[MessageOut])
def channel_pinned(channel_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    views = messages_core.get_pinned(db, principal, channel_id=parse_id(channel_id, "channel id"))
    return [message_out(v) for v in views]


@router.get("/dms/{dm_id}/pinned", response_model=list[MessageOut])
def dm_pinned(dm_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    views = messages_core.get_pinned(db, principal, dm_id=parse_id(dm_id, "dm id"))
    return [message_out(v) for v in views]


@router.get("/messages/{message_id}", response_model=MessageOut)
def get_message(message_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    view = messages_core.get_message(db, principal, parse_id(message_id, "message id"))
    if view is None:
        raise NotFound("Message not found")
    return message_out(view)


@router.patch("/messages/{message_id}", response_model=MessageOut)
def edit_message(
    message_id: str,
    payload: MessageEditIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    message = messages_core.edit_message(db, principal, message_id=parse_id(message_id, "message id"), text=payload.text)
    return _view_or_404(db, principal, message)


@router.delete("/messages/{message_id}")
def remove_message(message_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    messages_core.remove_message(db, principal, message_id=parse_id(message_id, "message id"))
    return {"ok": True}


@router.get("/messages/{message_id}/thread", response_model=MessagePageOut)
def get_thread(
    message_id: str,
    cursor: Optional[str] = Query(default=None),
    page_size: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Optional[Principal] = Depends(get_principal),
):
    page = messages_core.get_thread_messages(
        db, principal, parent_message_id=parse_id(message_id, "message id"), cursor=cursor, page_size=page_size
    )
    return _page_out(page)


@router.get("/messages/{message_id}/thread-count", response_model=ThreadCountOut)
def get_thread_count(message_id: str, db: Session = Depends(get_db)):
    parent_id = parse_id(message_id, "message id")
    return ThreadCountOut(parent_message_id=str(parent_id), count=messages_core.get_thread_count(db, parent_id))


@router.post("/messages/{message_id}/reactions", response_model=ReactionToggleOut)
def react(
    message_id: str,
    payload: ReactionToggleIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    reacted = toggle_reaction(db, principal, message_id=parse_id(message_id, "message id"), emoji=payload.emoji)
    return ReactionToggleOut(reacted=reacted)


@router.post("/messages/{message_id}/pin", response_model=MessageOut)
def pin(message_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    message = messages_core.toggle_pin(db, principal, message_id=parse_id(message_id, "message id"))
    return _view_or_404(db, principal, message)
