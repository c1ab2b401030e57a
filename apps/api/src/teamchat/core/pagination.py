"""Keyset pagination over (created_at, id) with opaque cursors."""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from sqlalchemy import and_, or_

from teamchat.core.clock import as_utc
from teamchat.core.config import settings
from teamchat.core.errors import InvalidReference

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    page: List[T] = field(default_factory=list)
    is_done: bool = True
    continue_cursor: Optional[str] = None


def empty_page() -> Page:
    return Page(page=[], is_done=True, continue_cursor=None)


def clamp_page_size(page_size: Optional[int]) -> int:
    if not page_size or page_size < 1:
        return settings.DEFAULT_PAGE_SIZE
    return min(page_size, settings.MAX_PAGE_SIZE)


def encode_cursor(created_at: datetime, row_id: uuid.UUID) -> str:
    raw = json.dumps({"t": as_utc(created_at).isoformat(), "id": str(row_id)}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def decode_cursor(cursor: str) -> Tuple[datetime, uuid.UUID]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("utf-8")))
    except (binascii.Error, ValueError):
        raise InvalidReference("Invalid pagination cursor")

    if not isinstance(data, dict) or not isinstance(data.get("t"), str) or not isinstance(data.get("id"), str):
        raise InvalidReference("Invalid pagination cursor")
    try:
        return as_utc(datetime.fromisoformat(data["t"])), uuid.UUID(data["id"])
    except ValueError:
        raise InvalidReference("Invalid pagination cursor")


def keyset_after(created_col: Any, id_col: Any, cursor: Optional[str], descending: bool):
    """WHERE clause selecting rows strictly after ``cursor`` in scan order."""
    if not cursor:
        return None
    created_at, row_id = decode_cursor(cursor)
    if descending:
        return or_(created_col < created_at, and_(created_col == created_at, id_col < row_id))
    return or_(created_col > created_at, and_(created_col == created_at, id_col > row_id))
