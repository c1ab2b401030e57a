from __future__ import annotations

import pytest
import requests
from fastapi.testclient import TestClient

from teamchat.api.deps import get_storage
from teamchat.core import link_previews
from teamchat.core.config import settings
from teamchat.core.security import ACCESS_COOKIE_NAME
from teamchat.core.storage import LocalBlobStorage
from teamchat.db.session import get_db
from teamchat.main import app


@pytest.fixture
def client(session_factory, tmp_path):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    storage = LocalBlobStorage(tmp_path / "blobs", "http://testserver", max_bytes=1024)
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def register(client: TestClient, email: str, name: str | None = None) -> dict:
    """Register a user and return bearer headers; the cookie jar is left empty."""
    r = client.post("/auth/register", json={"email": email, "password": "password123", "name": name})
    assert r.status_code == 200, r.text
    token = r.cookies.get(ACCESS_COOKIE_NAME)
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_register_login_me_logout(client):
    r = client.post("/auth/register", json={"email": "Ada@Example.com", "password": "password123", "name": "Ada"})
    assert r.status_code == 200
    assert r.json()["email"] == "ada@example.com"

    assert client.post("/auth/register", json={"email": "ada@example.com", "password": "password123"}).status_code == 409

    client.cookies.clear()
    assert client.get("/auth/me").status_code == 401

    bad = client.post("/auth/login", json={"email": "ada@example.com", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json()["code"] == "unauthenticated"

    ok = client.post("/auth/login", json={"email": "ada@example.com", "password": "password123"})
    assert ok.status_code == 200
    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["name"] == "Ada"

    client.post("/auth/logout")
    client.cookies.clear()
    assert client.get("/auth/me").status_code == 401


def test_profile_update(client):
    headers = register(client, "ada@example.com")
    r = client.patch("/users/me", json={"name": "Countess", "image": "http://img.test/a.png"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Countess"


def test_workspace_channel_message_flow(client):
    alice = register(client, "alice@example.com", "Alice")
    bob = register(client, "bob@example.com", "Bob")

    ws = client.post("/workspaces", json={"name": "Acme"}, headers=alice).json()
    assert ws["role"] == "owner"

    channels = client.get(f"/workspaces/{ws['id']}/channels", headers=alice).json()
    assert [c["name"] for c in channels] == ["general"]
    general = channels[0]["id"]

    # bob is outside the workspace: queries are empty, mutations are refused
    assert client.get(f"/workspaces/{ws['id']}/channels", headers=bob).json() == []
    assert client.get(f"/workspaces/{ws['id']}", headers=bob).status_code == 404
    r = client.post("/messages", json={"workspace_id": ws["id"], "channel_id": general, "text": "hi"}, headers=bob)
    assert r.status_code == 403
    assert r.json()["code"] == "not_a_member"

    invite = client.post(f"/workspaces/{ws['id']}/invites", json={"email": "bob@example.com"}, headers=alice).json()
    joined = client.post("/workspaces/join", json={"token": invite["token"]}, headers=bob)
    assert joined.json() == {"workspace_id": ws["id"]}
    again = client.post("/workspaces/join", json={"token": invite["token"]}, headers=bob)
    assert again.status_code == 410

    root = client.post(
        "/messages", json={"workspace_id": ws["id"], "channel_id": general, "text": "hello"}, headers=alice
    ).json()
    assert root["sender"]["name"] == "Alice"

    reply = client.post(
        "/messages",
        json={"workspace_id": ws["id"], "channel_id": general, "text": "hey", "parent_message_id": root["id"]},
        headers=bob,
    ).json()

    react = client.post(f"/messages/{root['id']}/reactions", json={"emoji": "👍"}, headers=bob)
    assert react.json() == {"reacted": True}

    page = client.get(f"/channels/{general}/messages", headers=alice).json()
    assert [m["id"] for m in page["page"]] == [root["id"]]
    assert page["page"][0]["thread_count"] == 1
    assert page["page"][0]["reactions"][0]["count"] == 1

    thread = client.get(f"/messages/{root['id']}/thread", headers=alice).json()
    assert [m["id"] for m in thread["page"]] == [reply["id"]]
    assert client.get(f"/messages/{root['id']}/thread-count").json()["count"] == 1

    edited = client.patch(f"/messages/{root['id']}", json={"text": "hello world"}, headers=alice).json()
    assert edited["text"] == "hello world"
    assert edited["edited_at"] is not None
    assert client.patch(f"/messages/{root['id']}", json={"text": "nope"}, headers=bob).status_code == 403

    assert client.delete(f"/messages/{reply['id']}", headers=bob).json() == {"ok": True}
    assert client.get(f"/messages/{root['id']}/thread-count").json()["count"] == 0


def test_payload_shapes_are_closed(client):
    alice = register(client, "alice@example.com")
    ws = client.post("/workspaces", json={"name": "Acme"}, headers=alice).json()

    r = client.post(
        "/messages",
        json={"workspace_id": ws["id"], "text": "no target"},
        headers=alice,
    )
    assert r.status_code == 422

    channels = client.get(f"/workspaces/{ws['id']}/channels", headers=alice).json()
    r = client.post(
        "/messages",
        json={"workspace_id": ws["id"], "channel_id": channels[0]["id"], "text": "x", "mood": "happy"},
        headers=alice,
    )
    assert r.status_code == 422

    assert client.get("/channels/not-a-uuid", headers=alice).status_code == 400


def test_dm_endpoints(client):
    alice = register(client, "alice@example.com")
    bob = register(client, "bob@example.com")
    ws = client.post("/workspaces", json={"name": "Acme"}, headers=alice).json()
    invite = client.post(f"/workspaces/{ws['id']}/invites", json={"email": "bob@example.com"}, headers=alice).json()
    client.post("/workspaces/join", json={"token": invite["token"]}, headers=bob)

    bob_id = client.get("/auth/me", headers=bob).json()["id"]
    first = client.post(f"/workspaces/{ws['id']}/dms", json={"participant_ids": [bob_id]}, headers=alice).json()
    second = client.post(f"/workspaces/{ws['id']}/dms", json={"participant_ids": [bob_id]}, headers=alice).json()
    assert first["id"] == second["id"]
    assert len(first["participants"]) == 2

    listed = client.get(f"/workspaces/{ws['id']}/dms", headers=bob).json()
    assert [d["id"] for d in listed] == [first["id"]]


def test_rate_limited_response_carries_retry_after(client, monkeypatch):
    alice = register(client, "alice@example.com")
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)

    for i in range(5):
        assert client.post("/workspaces", json={"name": f"ws-{i}"}, headers=alice).status_code == 200

    r = client.post("/workspaces", json={"name": "too many"}, headers=alice)
    assert r.status_code == 429
    assert r.json()["code"] == "rate_limited"
    assert int(r.headers["Retry-After"]) >= 1


def test_file_upload_and_download(client):
    alice = register(client, "alice@example.com")
    upload_url = client.post("/files/upload-url", headers=alice).json()["upload_url"]

    path = upload_url.replace("http://testserver", "")
    stored = client.post(path, content=b"binary-data")
    assert stored.status_code == 200
    storage_id = stored.json()["storage_id"]

    assert client.get(f"/files/{storage_id}").content == b"binary-data"
    assert client.post(path, content=b"reuse").status_code == 400
    assert client.get("/files/0123456789abcdef0123456789abcdef").status_code == 404


def test_link_preview_endpoint(client, monkeypatch):
    alice = register(client, "alice@example.com")

    class _Resp:
        status_code = 200
        text = '<meta property="og:title" content="Example Domain">'

    monkeypatch.setattr(link_previews.requests, "get", lambda *a, **k: _Resp())
    r = client.post("/link-previews", json={"url": "https://example.com"}, headers=alice)
    assert r.status_code == 200
    assert r.json()["preview"]["title"] == "Example Domain"

    def boom(*a, **k):
        raise requests.Timeout("slow")

    monkeypatch.setattr(link_previews.requests, "get", boom)
    r = client.post("/link-previews", json={"url": "https://example.com"}, headers=alice)
    assert r.status_code == 200
    assert r.json() == {"preview": None}


def test_notification_endpoints(client):
    alice = register(client, "alice@example.com")
    ws = client.post("/workspaces", json={"name": "Acme"}, headers=alice).json()
    general = client.get(f"/workspaces/{ws['id']}/channels", headers=alice).json()[0]["id"]

    r = client.put(f"/channels/{general}/notifications", json={"enabled": True}, headers=alice)
    assert r.json() == {"channel_id": general, "enabled": True}
    assert client.get(f"/channels/{general}/notifications", headers=alice).json()["enabled"] is True
    assert client.get("/notifications/unnotified", headers=alice).json() == {"messages": []}


def test_bad_cursor_is_a_client_error(client):
    alice = register(client, "alice@example.com")
    ws = client.post("/workspaces", json={"name": "Acme"}, headers=alice).json()
    general = client.get(f"/workspaces/{ws['id']}/channels", headers=alice).json()[0]["id"]

    # base64 of {"t": "2026-01-01T00:00:00+00:00", "id": 5}
    cursor = "eyJ0IjogIjIwMjYtMDEtMDFUMDA6MDA6MDArMDA6MDAiLCAiaWQiOiA1fQ"
    r = client.get(f"/channels/{general}/messages", params={"cursor": cursor}, headers=alice)
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_reference"
