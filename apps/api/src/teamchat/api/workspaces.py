from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from teamchat.api.deps import get_principal, parse_id, require_user
from teamchat.core import invites as invites_core
from teamchat.core import workspaces as workspaces_core
from teamchat.core.errors import NotFound
from teamchat.core.principal import Principal
from teamchat.db.models import Workspace
from teamchat.db.session import get_db
from teamchat.schemas.workspaces import (
    InviteCreateIn,
    InviteOut,
    JoinByInviteIn,
    JoinedOut,
    MemberRoleUpdateIn,
    WorkspaceCreateIn,
    WorkspaceMemberOut,
    WorkspaceOut,
    WorkspaceRoleOut,
)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def _workspace_out(ws: Workspace, role: str) -> WorkspaceOut:
    return WorkspaceOut(
        id=str(ws.id),
        name=ws.name,
        description=ws.description,
        owner_user_id=str(ws.owner_user_id),
        role=role,
        created_at=ws.created_at,
    )


@router.post("", response_model=WorkspaceOut)
def create_workspace(payload: WorkspaceCreateIn, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    ws = workspaces_core.create_workspace(db, principal, name=payload.name, description=payload.description)
    return _workspace_out(ws, "owner")


@router.get("", response_model=list[WorkspaceOut])
def list_workspaces(db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    return [_workspace_out(ws, role) for ws, role in workspaces_core.list_workspaces(db, principal)]


@router.post("/join", response_model=JoinedOut)
def join_by_invite(payload: JoinByInviteIn, db: Session = Depends(get_db), principal: Principal = Depends(require_user)):
    workspace_id = invites_core.join_by_invite(db, principal, token=payload.token)
    return JoinedOut(workspace_id=str(workspace_id))


@router.get("/{workspace_id}", response_model=WorkspaceOut)
def get_workspace(workspace_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    found = workspaces_core.get_workspace(db, principal, parse_id(workspace_id, "workspace id"))
    if not found:
        # hide existence if no access
        raise NotFound("Workspace not found")
    ws, role = found
    return _workspace_out(ws, role)


@router.get("/{workspace_id}/my-role", response_model=WorkspaceRoleOut)
def get_my_role(workspace_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    found = workspaces_core.get_workspace(db, principal, parse_id(workspace_id, "workspace id"))
    if not found:
        raise NotFound("Workspace not found")
    ws, role = found
    return WorkspaceRoleOut(workspace_id=str(ws.id), role=role)


@router.get("/{workspace_id}/members", response_model=list[WorkspaceMemberOut])
def list_members(workspace_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    rows = workspaces_core.list_members(db, principal, parse_id(workspace_id, "workspace id"))
    return [
        WorkspaceMemberOut(
            user_id=str(u.id),
            email=u.email,
            name=u.name,
            image=u.image,
            role=wm.role,
            joined_at=wm.joined_at,
        )
        for wm, u in rows
    ]


@router.patch("/{workspace_id}/members/{member_user_id}", response_model=WorkspaceRoleOut)
def update_member_role(
    workspace_id: str,
    member_user_id: str,
    payload: MemberRoleUpdateIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    wm = invites_core.update_member_role(
        db,
        principal,
        workspace_id=parse_id(workspace_id, "workspace id"),
        user_id=parse_id(member_user_id, "user id"),
        new_role=payload.role,
    )
    return WorkspaceRoleOut(workspace_id=str(wm.workspace_id), role=wm.role)


@router.delete("/{workspace_id}/members/{member_user_id}")
def remove_member(
    workspace_id: str,
    member_user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    workspaces_core.remove_workspace_member(
        db,
        principal,
        workspace_id=parse_id(workspace_id, "workspace id"),
        user_id=parse_id(member_user_id, "user id"),
    )
    return {"ok": True}


@router.post("/{workspace_id}/invites", response_model=InviteOut)
def create_invite(
    workspace_id: str,
    payload: InviteCreateIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    invite = invites_core.generate_invite(
        db, principal, workspace_id=parse_id(workspace_id, "workspace id"), email=payload.email
    )
    return InviteOut(
        id=str(invite.id),
        workspace_id=str(invite.workspace_id),
        email=invite.email,
        token=invite.token,
        expires_at=invite.expires_at,
    )
