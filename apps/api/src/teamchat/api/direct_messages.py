from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from teamchat.api.channels import member_out
from teamchat.api.deps import get_principal, parse_id, require_user
from teamchat.core import direct_messages as dms_core
from teamchat.core.errors import NotFound
from teamchat.core.principal import Principal
from teamchat.db.models import DirectMessage, User
from teamchat.db.session import get_db
from teamchat.schemas.direct_messages import DirectMessageCreateIn, DirectMessageOut, ParticipantIn

router = APIRouter(tags=["direct_messages"])


def _dm_out(dm: DirectMessage, users: List[User]) -> DirectMessageOut:
    return DirectMessageOut(
        id=str(dm.id),
        workspace_id=str(dm.workspace_id),
        participants=[member_out(u) for u in users],
        created_at=dm.created_at,
    )


@router.post("/workspaces/{workspace_id}/dms", response_model=DirectMessageOut)
def create_dm(
    workspace_id: str,
    payload: DirectMessageCreateIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    dm = dms_core.create_dm(
        db,
        principal,
        workspace_id=parse_id(workspace_id, "workspace id"),
        participant_ids=[parse_id(pid, "user id") for pid in payload.participant_ids],
    )
    dm, users = dms_core.get_dm(db, principal, dm.id)
    return _dm_out(dm, users)


@router.get("/workspaces/{workspace_id}/dms", response_model=list[DirectMessageOut])
def list_dms(workspace_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    return [_dm_out(dm, users) for dm, users in dms_core.list_dms(db, principal, parse_id(workspace_id, "workspace id"))]


@router.get("/dms/{dm_id}", response_model=DirectMessageOut)
def get_dm(dm_id: str, db: Session = Depends(get_db), principal: Optional[Principal] = Depends(get_principal)):
    found = dms_core.get_dm(db, principal, parse_id(dm_id, "dm id"))
    if not found:
        raise NotFound("Direct message not found")
    dm, users = found
    return _dm_out(dm, users)


@router.post("/dms/{dm_id}/participants", response_model=DirectMessageOut)
def add_participant(
    dm_id: str,
    payload: ParticipantIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
):
    dm = dms_core.add_participant(
        db,
        principal,
        dm_id=parse_id(dm_id, "dm id"),
        user_id=parse_id(payload.user_id, "user id"),
    )
    dm, users = dms_core.get_dm(db, principal, dm.id)
    return _dm_out(dm, users)
