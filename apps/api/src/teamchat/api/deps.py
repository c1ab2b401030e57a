from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from teamchat.core.errors import InvalidReference
from teamchat.core.principal import Principal, require_principal
from teamchat.core.security import get_token_from_request, resolve_principal
from teamchat.core.storage import LocalBlobStorage, get_blob_storage
from teamchat.db.session import get_db


def get_principal(request: Request, db: Session = Depends(get_db)) -> Optional[Principal]:
    """Caller identity, or None. Query routes take this and degrade to empty."""
    return resolve_principal(db, get_token_from_request(request))


def require_user(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    return require_principal(principal)


def get_storage() -> LocalBlobStorage:
    return get_blob_storage()


def parse_id(value: str, what: str = "id") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidReference(f"Invalid {what}")


def parse_optional_id(value: Optional[str], what: str = "id") -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    return parse_id(value, what)
