"""Explicit caller identity.

Every core function takes the caller as a ``Principal`` argument instead of
reading ambient request state. ``None`` means the request is anonymous.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from teamchat.core.errors import Unauthenticated


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: uuid.UUID


def require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal
