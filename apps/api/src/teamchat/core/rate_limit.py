"""Fixed-window quotas per (action, user).

Counters live in the ``rate_limit_windows`` table and are updated inside the
caller's transaction, so a mutation that fails after consuming a slot rolls
the slot back with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamchat.core.clock import as_utc, utcnow
from teamchat.core.config import settings
from teamchat.core.errors import RateLimited
from teamchat.core.logging_config import get_logger
from teamchat.db.models import RateLimitWindow

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimit:
    rate: int
    period_seconds: int


SEND_MESSAGE = "send_message"
UPLOAD_FILE = "upload_file"
CREATE_WORKSPACE = "create_workspace"
CREATE_CHANNEL = "create_channel"
CREATE_DM = "create_dm"
ADD_REACTION = "add_reaction"
CREATE_INVITE = "create_invite"

RATE_LIMITS: Dict[str, RateLimit] = {
    SEND_MESSAGE: RateLimit(rate=30, period_seconds=60),
    UPLOAD_FILE: RateLimit(rate=10, period_seconds=60),
    CREATE_WORKSPACE: RateLimit(rate=5, period_seconds=3600),
    CREATE_CHANNEL: RateLimit(rate=10, period_seconds=3600),
    CREATE_DM: RateLimit(rate=20, period_seconds=3600),
    ADD_REACTION: RateLimit(rate=50, period_seconds=60),
    CREATE_INVITE: RateLimit(rate=10, period_seconds=3600),
}


def _now() -> datetime:
    return utcnow()


def _find_window(db: Session, name: str, key: str) -> Optional[RateLimitWindow]:
    return db.execute(
        select(RateLimitWindow).where(RateLimitWindow.name == name, RateLimitWindow.key == key)
    ).scalar_one_or_none()


def limit(db: Session, name: str, key: str) -> None:
    """Consume one slot of ``name`` for ``key`` or raise RateLimited.

    Call before staging any other writes in the transaction.
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    cfg = RATE_LIMITS[name]
    epoch = int(_now().timestamp())
    start_epoch = epoch - (epoch % cfg.period_seconds)
    window_start = datetime.fromtimestamp(start_epoch, tz=timezone.utc)

    row = _find_window(db, name, key)

    if row is None:
        row = RateLimitWindow(name=name, key=key, window_start=window_start, count=0)
        db.add(row)
        try:
            db.flush()
        except IntegrityError:
            # a concurrent first call created the window
            db.rollback()
            row = _find_window(db, name, key)

    if as_utc(row.window_start) != window_start:
        row.window_start = window_start
        row.count = 0

    if row.count >= cfg.rate:
        retry_after = max(1, start_epoch + cfg.period_seconds - epoch)
        logger.info("rate limit hit action=%s key=%s retry_after=%s", name, key, retry_after)
        raise RateLimited(
            f"Too many requests ({name.replace('_', ' ')}). Try again in {retry_after}s.",
            retry_after=retry_after,
        )

    row.count += 1
    db.flush()
