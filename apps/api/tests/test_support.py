from __future__ import annotations

import base64
import json
import uuid
from datetime import datetime, timezone

import pytest
import requests

from teamchat.core import link_previews
from teamchat.core.errors import InvalidReference, Unauthenticated
from teamchat.core.pagination import clamp_page_size, decode_cursor, encode_cursor
from teamchat.core.principal import require_principal
from teamchat.core.security import create_access_token, resolve_principal
from teamchat.core.security_passwords import hash_password, verify_password
from teamchat.core.storage import BlobStorageError, LocalBlobStorage


# -------- pagination --------
def test_cursor_round_trip_normalizes_to_utc():
    row_id = uuid.uuid4()
    naive = datetime(2026, 5, 1, 10, 30, 0, 123456)
    created_at, decoded_id = decode_cursor(encode_cursor(naive, row_id))
    assert created_at == naive.replace(tzinfo=timezone.utc)
    assert decoded_id == row_id


@pytest.mark.parametrize("bad", ["", "%%%", "eyJ0IjogMX0"])
def test_malformed_cursor(bad):
    with pytest.raises(InvalidReference):
        decode_cursor(bad)


@pytest.mark.parametrize(
    "payload",
    [
        {"t": "2026-01-01T00:00:00+00:00", "id": 5},
        {"t": 1, "id": str(uuid.UUID(int=1))},
        {"t": "yesterday", "id": str(uuid.UUID(int=1))},
        ["2026-01-01T00:00:00+00:00", str(uuid.UUID(int=1))],
        "just a string",
    ],
)
def test_cursor_with_wrong_field_types(payload):
    cursor = base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("utf-8")
    with pytest.raises(InvalidReference):
        decode_cursor(cursor)


def test_page_size_is_clamped():
    assert clamp_page_size(None) == 50
    assert clamp_page_size(0) == 50
    assert clamp_page_size(10) == 10
    assert clamp_page_size(10_000) == 100


# -------- identity --------
def test_require_principal():
    with pytest.raises(Unauthenticated):
        require_principal(None)


def test_token_resolves_to_existing_user_only(db, alice):
    token = create_access_token(user_id=alice.user_id, email="user1@example.com")
    assert resolve_principal(db, token) == alice

    stranger = create_access_token(user_id=uuid.uuid4(), email="ghost@example.com")
    assert resolve_principal(db, stranger) is None
    assert resolve_principal(db, "garbage") is None
    assert resolve_principal(db, None) is None


def test_password_hashing():
    hashed = hash_password("correct horse")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)
    assert not verify_password("x" * 100, hashed)
    assert not verify_password("correct horse", "not-a-bcrypt-hash")


# -------- blob storage --------
def test_upload_ticket_flow(tmp_path):
    storage = LocalBlobStorage(tmp_path, "http://files.test/", max_bytes=16)

    url = storage.generate_upload_url()
    assert url.startswith("http://files.test/files/upload/")
    ticket = url.rsplit("/", 1)[-1]

    storage_id = storage.store(ticket, b"hello")
    assert storage.get_url(storage_id) == f"http://files.test/files/{storage_id}"
    assert storage.path_for(storage_id).read_bytes() == b"hello"

    with pytest.raises(BlobStorageError):
        storage.store(ticket, b"again")


def test_upload_limits_and_unknown_ids(tmp_path):
    storage = LocalBlobStorage(tmp_path, "http://files.test", max_bytes=4)
    ticket = storage.generate_upload_url().rsplit("/", 1)[-1]

    with pytest.raises(BlobStorageError):
        storage.store(ticket, b"too large")
    with pytest.raises(BlobStorageError):
        storage.store("../etc/passwd", b"x")

    assert storage.get_url(uuid.uuid4().hex) is None
    assert storage.get_url("../../secret") is None


# -------- link previews --------
class _Resp:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code


def test_fetch_link_metadata_reads_open_graph(monkeypatch):
    page = """
    <html><head>
      <title>Fallback</title>
      <meta property="og:title" content="Launch &amp; Learn">
      <meta content="All about it" property="og:description">
      <meta property="og:image" content="https://example.com/a.png">
      <meta property="og:site_name" content="Example">
    </head></html>
    """
    calls = []

    def fake_get(url, headers=None, timeout=None):
        calls.append((url, timeout))
        return _Resp(page)

    monkeypatch.setattr(link_previews.requests, "get", fake_get)

    meta = link_previews.fetch_link_metadata("https://example.com/post", timeout=2)
    assert meta == {
        "url": "https://example.com/post",
        "title": "Launch & Learn",
        "description": "All about it",
        "image": "https://example.com/a.png",
        "site_name": "Example",
    }
    assert calls == [("https://example.com/post", 2)]


def test_parse_metadata_keeps_quotes_inside_content():
    page = """
    <head>
      <meta property="og:title" content="It's launch day">
      <meta name="description" content='She said "ship it"'>
    </head>
    """
    meta = link_previews.parse_metadata("https://example.com", page)
    assert meta["title"] == "It's launch day"
    assert meta["description"] == 'She said "ship it"'
    assert meta["site_name"] is None


def test_fetch_link_metadata_falls_back_to_title(monkeypatch):
    monkeypatch.setattr(link_previews.requests, "get", lambda *a, **k: _Resp("<title> Plain </title>"))
    meta = link_previews.fetch_link_metadata("https://example.com")
    assert meta["title"] == "Plain"
    assert meta["image"] is None


def test_fetch_link_metadata_failures_become_none(monkeypatch):
    def boom(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(link_previews.requests, "get", boom)
    assert link_previews.fetch_link_metadata("https://example.com") is None

    monkeypatch.setattr(link_previews.requests, "get", lambda *a, **k: _Resp("", status_code=404))
    assert link_previews.fetch_link_metadata("https://example.com") is None

    assert link_previews.fetch_link_metadata("ftp://example.com") is None
