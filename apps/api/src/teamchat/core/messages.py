"""Message store: send, page through, thread, edit, soft-delete, pin.

Messages are never physically removed by ``remove_message``; it sets
``deleted_at`` and every read path filters on it. Timelines list top-level
messages newest-first; threads list replies oldest-first.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.clock import utcnow
from teamchat.core.errors import Forbidden, InvalidOperation, InvalidReference, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import (
    MANAGER_ROLES,
    Access,
    FULL_ACCESS,
    NO_ACCESS,
    access_for_channel,
    access_for_dm,
    is_participant,
    message_access,
    require_workspace_member,
)
from teamchat.core.pagination import Page, clamp_page_size, empty_page, encode_cursor, keyset_after
from teamchat.core.principal import Principal, require_principal
from teamchat.core.reactions import ReactionGroup, aggregate_reactions
from teamchat.core.storage import BlobStorage, BlobStorageError
from teamchat.core.users import load_users
from teamchat.db.models import Channel, DirectMessage, Message, User
from teamchat.schemas.messages import Attachment, AttachmentIn, LinkPreview

logger = get_logger(__name__)


def _now() -> datetime:
    return utcnow()


@dataclass
class MessageView:
    """A message joined with what the UI renders next to it."""

    message: Message
    sender: Optional[User] = None
    reactions: List[ReactionGroup] = field(default_factory=list)
    thread_count: int = 0


# -------------------------
# Helpers
# -------------------------
def _conversation_access(
    db: Session,
    user_id: uuid.UUID,
    *,
    channel_id: Optional[uuid.UUID],
    dm_id: Optional[uuid.UUID],
) -> Access:
    if (channel_id is None) == (dm_id is None):
        return NO_ACCESS
    if channel_id is not None:
        channel = db.get(Channel, channel_id)
        return access_for_channel(db, channel, user_id) if channel else NO_ACCESS
    dm = db.get(DirectMessage, dm_id)
    if dm is None or not access_for_dm(db, dm, user_id):
        return NO_ACCESS
    return FULL_ACCESS


def _conversation_filter(*, channel_id: Optional[uuid.UUID], dm_id: Optional[uuid.UUID]):
    if channel_id is not None:
        return Message.channel_id == channel_id
    return Message.dm_id == dm_id


def _resolve_attachment_url(storage: Optional[BlobStorage], storage_id: str) -> Optional[str]:
    if storage is None:
        return None
    try:
        return storage.get_url(storage_id)
    except (BlobStorageError, OSError) as exc:
        logger.warning("attachment url resolution failed storage_id=%s error=%s", storage_id, exc)
        return None


def thread_counts(db: Session, parent_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, int]:
    if not parent_ids:
        return {}
    rows = db.execute(
        select(Message.parent_message_id, func.count(Message.id))
        .where(Message.parent_message_id.in_(list(parent_ids)), Message.deleted_at.is_(None))
        .group_by(Message.parent_message_id)
    ).all()
    return {pid: int(n) for pid, n in rows}


def project_messages(db: Session, messages: Sequence[Message], *, with_thread_counts: bool = True) -> List[MessageView]:
    """Join senders, reaction groups and thread counts onto a batch of messages."""
    ids = [m.id for m in messages]
    senders = load_users(db, (m.sender_user_id for m in messages))
    reactions = aggregate_reactions(db, ids)
    counts = thread_counts(db, ids) if with_thread_counts else {}

    return [
        MessageView(
            message=m,
            sender=senders.get(m.sender_user_id),
            reactions=reactions.get(m.id, []),
            thread_count=counts.get(m.id, 0),
        )
        for m in messages
    ]


def _paginate(
    db: Session,
    stmt,
    *,
    cursor: Optional[str],
    page_size: Optional[int],
    descending: bool,
    with_thread_counts: bool,
) -> Page[MessageView]:
    size = clamp_page_size(page_size)

    after = keyset_after(Message.created_at, Message.id, cursor, descending)
    if after is not None:
        stmt = stmt.where(after)

    if descending:
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc())
    else:
        stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc())

    rows = list(db.execute(stmt.limit(size + 1)).scalars())
    is_done = len(rows) <= size
    rows = rows[:size]

    next_cursor = None
    if not is_done and rows:
        last = rows[-1]
        next_cursor = encode_cursor(last.created_at, last.id)

    return Page(
        page=project_messages(db, rows, with_thread_counts=with_thread_counts),
        is_done=is_done,
        continue_cursor=next_cursor,
    )


def _get_live_message(db: Session, message_id: uuid.UUID) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.deleted_at is not None:
        raise NotFound("Message not found")
    return message


# -------------------------
# Mutations
# -------------------------
def send_message(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    channel_id: Optional[uuid.UUID] = None,
    dm_id: Optional[uuid.UUID] = None,
    text: str = "",
    attachments: Optional[Sequence[AttachmentIn]] = None,
    link_previews: Optional[Sequence[LinkPreview]] = None,
    parent_message_id: Optional[uuid.UUID] = None,
    storage: Optional[BlobStorage] = None,
) -> Message:
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.SEND_MESSAGE, str(principal.user_id))

    if (channel_id is None) == (dm_id is None):
        raise InvalidReference("Must specify either channel_id or dm_id")

    require_workspace_member(db, workspace_id, principal.user_id)

    if channel_id is not None:
        channel = db.get(Channel, channel_id)
        if channel is None or channel.deleted_at is not None or channel.workspace_id != workspace_id:
            raise InvalidReference("Invalid channel")
        if not access_for_channel(db, channel, principal.user_id).can_write:
            raise Forbidden("Not a member of this private channel")
    else:
        dm = db.get(DirectMessage, dm_id)
        if dm is None or dm.workspace_id != workspace_id:
            raise InvalidReference("Invalid direct message")
        if not is_participant(dm, principal.user_id):
            raise Forbidden("Not a participant of this direct message")

    attachments = list(attachments or [])
    if not text.strip() and not attachments:
        raise InvalidOperation("Message is empty")

    root_id = None
    if parent_message_id is not None:
        parent = db.get(Message, parent_message_id)
        if (
            parent is None
            or parent.deleted_at is not None
            or parent.channel_id != channel_id
            or parent.dm_id != dm_id
        ):
            raise InvalidReference("Invalid parent message")
        # flat threads: a reply to a reply joins the root's thread
        root_id = parent.parent_message_id or parent.id

    # URLs are resolved once here and stored with the message
    resolved = [
        Attachment(**a.model_dump(), url=_resolve_attachment_url(storage, a.storage_id)).model_dump()
        for a in attachments
    ]

    message = Message(
        workspace_id=workspace_id,
        channel_id=channel_id,
        dm_id=dm_id,
        sender_user_id=principal.user_id,
        text=text,
        attachments=resolved,
        link_previews=[p.model_dump() for p in (link_previews or [])],
        parent_message_id=root_id,
        created_at=_now(),
    )
    db.add(message)
    db.commit()

    logger.info(
        "message sent message=%s workspace=%s channel=%s dm=%s parent=%s sender=%s",
        message.id,
        workspace_id,
        channel_id,
        dm_id,
        root_id,
        principal.user_id,
    )
    return message


def edit_message(db: Session, principal: Optional[Principal], *, message_id: uuid.UUID, text: str) -> Message:
    principal = require_principal(principal)
    message = _get_live_message(db, message_id)
    require_workspace_member(db, message.workspace_id, principal.user_id)

    if message.sender_user_id != principal.user_id:
        raise Forbidden("Cannot edit this message")
    if not message_access(db, message, principal.user_id).can_write:
        raise Forbidden("Cannot edit this message")

    message.text = text
    message.edited_at = _now()
    db.commit()

    logger.info("message edited message=%s by=%s", message.id, principal.user_id)
    return message


def remove_message(db: Session, principal: Optional[Principal], *, message_id: uuid.UUID) -> None:
    """Soft-delete: the row stays, ``deleted_at`` is set. Replies are untouched."""
    principal = require_principal(principal)
    message = _get_live_message(db, message_id)

    role = require_workspace_member(db, message.workspace_id, principal.user_id)
    is_sender = message.sender_user_id == principal.user_id
    if not is_sender and role not in MANAGER_ROLES:
        raise Forbidden("Cannot delete this message")

    message.deleted_at = _now()
    db.commit()

    logger.info("message deleted message=%s by=%s", message.id, principal.user_id)


def toggle_pin(db: Session, principal: Optional[Principal], *, message_id: uuid.UUID) -> Message:
    principal = require_principal(principal)
    message = _get_live_message(db, message_id)
    require_workspace_member(db, message.workspace_id, principal.user_id)

    if not message_access(db, message, principal.user_id).can_write:
        raise Forbidden("Cannot pin messages in this conversation")

    if message.pinned_at is None:
        message.pinned_at = _now()
        message.pinned_by_user_id = principal.user_id
    else:
        message.pinned_at = None
        message.pinned_by_user_id = None
    db.commit()

    logger.info("message pin toggled message=%s pinned=%s by=%s", message.id, message.pinned_at is not None, principal.user_id)
    return message


# -------------------------
# Queries
# -------------------------
def list_messages(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: Optional[uuid.UUID] = None,
    dm_id: Optional[uuid.UUID] = None,
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
) -> Page[MessageView]:
    """Top-level timeline of a channel or DM, newest first."""
    if principal is None:
        return empty_page()
    if not _conversation_access(db, principal.user_id, channel_id=channel_id, dm_id=dm_id).can_read:
        return empty_page()

    stmt = select(Message).where(
        _conversation_filter(channel_id=channel_id, dm_id=dm_id),
        Message.deleted_at.is_(None),
        Message.parent_message_id.is_(None),
    )
    return _paginate(db, stmt, cursor=cursor, page_size=page_size, descending=True, with_thread_counts=True)


def get_thread_messages(
    db: Session,
    principal: Optional[Principal],
    *,
    parent_message_id: uuid.UUID,
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
) -> Page[MessageView]:
    """Replies under ``parent_message_id``, oldest first.

    The parent may itself be soft-deleted; its replies stay readable.
    """
    if principal is None:
        return empty_page()

    parent = db.get(Message, parent_message_id)
    if parent is None or not message_access(db, parent, principal.user_id).can_read:
        return empty_page()

    stmt = select(Message).where(
        Message.parent_message_id == parent_message_id,
        Message.deleted_at.is_(None),
    )
    return _paginate(db, stmt, cursor=cursor, page_size=page_size, descending=False, with_thread_counts=False)


def get_thread_count(db: Session, parent_message_id: uuid.UUID) -> int:
    return thread_counts(db, [parent_message_id]).get(parent_message_id, 0)


def get_message(db: Session, principal: Optional[Principal], message_id: uuid.UUID) -> Optional[MessageView]:
    if principal is None:
        return None
    message = db.get(Message, message_id)
    if message is None or message.deleted_at is not None:
        return None
    if not message_access(db, message, principal.user_id).can_read:
        return None
    return project_messages(db, [message])[0]


def get_pinned(
    db: Session,
    principal: Optional[Principal],
    *,
    channel_id: Optional[uuid.UUID] = None,
    dm_id: Optional[uuid.UUID] = None,
) -> List[MessageView]:
    if principal is None:
        return []
    if not _conversation_access(db, principal.user_id, channel_id=channel_id, dm_id=dm_id).can_read:
        return []

    rows = db.execute(
        select(Message)
        .where(
            _conversation_filter(channel_id=channel_id, dm_id=dm_id),
            Message.deleted_at.is_(None),
            Message.pinned_at.is_not(None),
        )
        .order_by(Message.pinned_at.desc())
    ).scalars().all()
    return project_messages(db, rows)


def generate_upload_url(db: Session, principal: Optional[Principal], storage: BlobStorage) -> str:
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.UPLOAD_FILE, str(principal.user_id))
    db.commit()
    return storage.generate_upload_url()
