"""Blob storage used for message attachments and avatars.

The chat core only needs two calls from a store: mint an upload URL and turn
a storage id back into a retrievable URL. ``LocalBlobStorage`` keeps files
on disk under ``BLOB_STORAGE_DIR``.
"""

from __future__ import annotations

import re
import secrets
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol

from teamchat.core.config import settings
from teamchat.core.logging_config import get_logger

logger = get_logger(__name__)

_STORAGE_ID_RE = re.compile(r"^[0-9a-f]{32}$")
_TICKET_RE = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


class BlobStorageError(RuntimeError):
    pass


class BlobStorage(Protocol):
    def generate_upload_url(self) -> str: ...

    def get_url(self, storage_id: str) -> Optional[str]: ...


class LocalBlobStorage:
    def __init__(self, root: str | Path, base_url: str, max_bytes: int):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    def _tickets_dir(self) -> Path:
        return self.root / ".tickets"

    def generate_upload_url(self) -> str:
        ticket = secrets.token_urlsafe(24)
        tickets = self._tickets_dir()
        tickets.mkdir(parents=True, exist_ok=True)
        (tickets / ticket).touch()
        return f"{self.base_url}/files/upload/{ticket}"

    def store(self, ticket: str, data: bytes) -> str:
        """Consume an upload ticket and persist ``data``; returns the storage id."""
        if not _TICKET_RE.match(ticket):
            raise BlobStorageError("Invalid upload ticket")
        marker = self._tickets_dir() / ticket
        if not marker.exists():
            raise BlobStorageError("Upload ticket is unknown or already used")
        if len(data) > self.max_bytes:
            raise BlobStorageError(f"File too large (max {self.max_bytes} bytes)")

        storage_id = uuid.uuid4().hex
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / storage_id).write_bytes(data)
        marker.unlink()

        logger.info("blob stored storage_id=%s size=%s", storage_id, len(data))
        return storage_id

    def path_for(self, storage_id: str) -> Optional[Path]:
        if not _STORAGE_ID_RE.match(storage_id):
            return None
        path = self.root / storage_id
        return path if path.is_file() else None

    def get_url(self, storage_id: str) -> Optional[str]:
        if self.path_for(storage_id) is None:
            return None
        return f"{self.base_url}/files/{storage_id}"


@lru_cache(maxsize=1)
def get_blob_storage() -> LocalBlobStorage:
    return LocalBlobStorage(
        root=settings.BLOB_STORAGE_DIR,
        base_url=settings.PUBLIC_BASE_URL,
        max_bytes=settings.MAX_UPLOAD_BYTES,
    )
