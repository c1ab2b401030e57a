from __future__ import annotations

import uuid
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from teamchat.core import rate_limit
from teamchat.core.errors import Forbidden, InvalidOperation, NotFound
from teamchat.core.logging_config import get_logger
from teamchat.core.membership import get_membership, require_workspace_manager
from teamchat.core.principal import Principal, require_principal
from teamchat.db.models import (
    ROLE_ADMIN,
    ROLE_OWNER,
    Channel,
    ChannelMember,
    ChannelNotification,
    User,
    Workspace,
    WorkspaceMember,
)

logger = get_logger(__name__)

GENERAL_CHANNEL_NAME = "general"
GENERAL_CHANNEL_DESCRIPTION = "General discussion"


def create_workspace(
    db: Session,
    principal: Optional[Principal],
    *,
    name: str,
    description: Optional[str] = None,
) -> Workspace:
    """Create a workspace with its owner membership and a public #general.

    All four rows are committed together.
    """
    principal = require_principal(principal)
    rate_limit.limit(db, rate_limit.CREATE_WORKSPACE, str(principal.user_id))

    ws = Workspace(name=name.strip(), description=description, owner_user_id=principal.user_id)
    db.add(ws)
    db.flush()

    db.add(WorkspaceMember(workspace_id=ws.id, user_id=principal.user_id, role=ROLE_OWNER))

    general = Channel(
        workspace_id=ws.id,
        name=GENERAL_CHANNEL_NAME,
        description=GENERAL_CHANNEL_DESCRIPTION,
        is_private=False,
        created_by_user_id=principal.user_id,
    )
    db.add(general)
    db.flush()

    db.add(ChannelMember(channel_id=general.id, user_id=principal.user_id))
    db.commit()

    logger.info("workspace created workspace=%s owner=%s", ws.id, principal.user_id)
    return ws


def list_workspaces(db: Session, principal: Optional[Principal]) -> List[Tuple[Workspace, str]]:
    if principal is None:
        return []

    rows = db.execute(
        select(Workspace, WorkspaceMember.role)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == principal.user_id)
        .order_by(Workspace.created_at.asc())
    ).all()
    return [(ws, role) for ws, role in rows]


def get_workspace(
    db: Session, principal: Optional[Principal], workspace_id: uuid.UUID
) -> Optional[Tuple[Workspace, str]]:
    if principal is None:
        return None

    membership = get_membership(db, workspace_id, principal.user_id)
    if membership is None:
        return None

    ws = db.get(Workspace, workspace_id)
    return (ws, membership.role) if ws else None


def list_members(
    db: Session, principal: Optional[Principal], workspace_id: uuid.UUID
) -> List[Tuple[WorkspaceMember, User]]:
    if principal is None or get_membership(db, workspace_id, principal.user_id) is None:
        return []

    rows = db.execute(
        select(WorkspaceMember, User)
        .join(User, User.id == WorkspaceMember.user_id)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.joined_at.asc())
    ).all()
    return [(wm, u) for wm, u in rows]


def remove_workspace_member(
    db: Session,
    principal: Optional[Principal],
    *,
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    """Revoke a membership and the user's channel rows inside the workspace."""
    principal = require_principal(principal)
    actor_role = require_workspace_manager(
        db, workspace_id, principal.user_id, "Only workspace owners and admins can remove members"
    )

    target = get_membership(db, workspace_id, user_id)
    if target is None:
        raise NotFound("User is not a member of this workspace")
    if target.role == ROLE_OWNER:
        raise InvalidOperation("Cannot remove the workspace owner")
    if target.role == ROLE_ADMIN and actor_role != ROLE_OWNER:
        raise Forbidden("Only the workspace owner can remove admins")

    channel_ids = select(Channel.id).where(Channel.workspace_id == workspace_id)
    db.execute(
        delete(ChannelMember)
        .where(ChannelMember.user_id == user_id, ChannelMember.channel_id.in_(channel_ids))
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        delete(ChannelNotification)
        .where(ChannelNotification.user_id == user_id, ChannelNotification.channel_id.in_(channel_ids))
        .execution_options(synchronize_session="fetch")
    )
    db.delete(target)
    db.commit()

    logger.info("workspace member removed workspace=%s user=%s by=%s", workspace_id, user_id, principal.user_id)
