import json
import os

from fastapi.testclient import TestClient

from app.di import build_container
from server.http_app import create_app


def _login(client: TestClient, username="admin", password="admin") -> dict:
    res = client.post("/api/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


def test_login(client: TestClient):
    res = client.post("/api/login", json={"username": "admin", "password": "admin"})
    assert res.json() == {"token": "admin", "username": "admin"}

    bad = client.post("/api/login", json={"username": "admin", "password": "x"})
    assert bad.status_code == 401
    assert "error" in bad.json()


def test_requires_session(client: TestClient):
    assert client.get("/api/tree").status_code == 401
    res = client.get("/api/tree", headers=_login(client))
    assert res.status_code == 200
    assert res.json()["type"] == "dir"


def test_file_lifecycle(client: TestClient):
    auth = _login(client)
    res = client.post(
        "/api/create", json={"parent": "", "name": "notes.md", "type": "file", "content": "# a"},
        headers=auth,
    )
    assert res.json() == {"status": "created", "path": "notes.md"}

    assert client.get("/api/file", params={"path": "notes.md"}, headers=auth).json() == {
        "type": "markdown", "content": "# a", "name": "notes.md"
    }

    res = client.put("/api/file", params={"path": "notes.md"}, content=b"# b", headers=auth)
    assert res.json() == {"status": "ok"}
    assert client.get("/api/file", params={"path": "notes.md"}, headers=auth).json()["content"] == "# b"

    res = client.delete("/api/file", params={"path": "notes.md"}, headers=auth)
    assert res.json() == {"status": "deleted"}
    assert client.get("/api/file", params={"path": "notes.md"}, headers=auth).status_code == 404


def test_error_statuses(client: TestClient):
    auth = _login(client)
    assert client.get("/api/file", params={"path": "../../etc/passwd"}, headers=auth).status_code == 400
    assert client.put("/api/file", params={"path": "a.txt"}, content=b"x", headers=auth).status_code == 400
    assert client.delete("/api/file", params={"path": ""}, headers=auth).status_code == 400
    assert client.get("/api/file", params={"path": ""}, headers=auth).status_code == 400
    assert client.post("/api/create", json={"parent": ""}, headers=auth).status_code == 400
    res = client.post(
        "/api/create", json={"parent": "", "name": "x", "type": "link"}, headers=auth
    )
    assert res.status_code == 400
    assert res.json() == {"error": "invalid type"}


def test_upload_and_raw(client: TestClient):
    auth = _login(client)
    res = client.post(
        "/api/upload", params={"path": ""}, files={"file": ("pic.png", b"\x89PNG", "image/png")},
        headers=auth,
    )
    assert res.json() == {"status": "uploaded", "path": "pic.png"}

    raw = client.get("/api/raw", params={"path": "pic.png", "token": "admin"})
    assert raw.status_code == 200
    assert raw.content == b"\x89PNG"
    assert client.get("/api/raw", params={"path": "pic.png"}).status_code == 401


def test_permission_gating(make_settings):
    container = build_container(make_settings(PERMISSIONS_ENABLED=True))
    (container.root / "docs").mkdir()
    client = TestClient(create_app(container))
    auth = _login(client)

    assert client.get("/api/tree", params={"path": "docs"}).status_code == 403
    assert client.get("/api/tree", params={"path": "docs"}, headers=auth).status_code == 403

    assert client.post("/api/permissions", json={"path": "docs"}, headers=auth).status_code == 200
    assert client.get("/api/permissions", headers=auth).json() == {"permissions": ["docs"]}
    assert client.get("/api/tree", params={"path": "docs"}).status_code == 401
    assert client.get("/api/tree", params={"path": "docs"}, headers=auth).status_code == 200

    res = client.post(
        "/api/create", json={"parent": "docs", "name": "x.md", "type": "file"}, headers=auth
    )
    assert res.json()["path"] == "docs/x.md"
    assert client.post(
        "/api/create", json={"parent": "", "name": "y.md", "type": "file"}, headers=auth
    ).status_code == 403

    client.delete("/api/permissions", params={"path": "docs"}, headers=auth)
    assert client.get("/api/tree", params={"path": "docs"}, headers=auth).status_code == 403
    assert client.delete("/api/permissions", params={"all": "true"}, headers=auth).status_code == 200


def test_external_user_edit_over_http(client: TestClient, container):
    auth = _login(client)
    path = container.user_store.file_path
    before = path.stat().st_mtime_ns
    path.write_text(json.dumps([{"username": "admin", "password": "admin"}]), encoding="utf-8")
    os.utime(path, ns=(before, before + 2_000_000_000))

    assert client.post("/api/login", json={"username": "admin", "password": "admin"}).status_code == 401
    assert client.get("/api/tree", headers=auth).status_code == 401
    auth = _login(client)
    assert client.get("/api/tree", headers=auth).status_code == 200


def test_logout(client: TestClient):
    auth = _login(client)
    assert client.post("/api/logout", headers=auth).json() == {"status": "ok"}
    assert client.get("/api/tree", headers=auth).status_code == 401


def test_state_files_live_outside_served_root(container):
    assert container.user_store.file_path.exists()
    assert container.root not in container.user_store.file_path.resolve().parents


def test_anonymous_caller_cannot_grant_itself_access(make_settings):
    container = build_container(
        make_settings(PERMISSIONS_ENABLED=True, SESSION_AUTH_ENABLED=False)
    )
    (container.root / "secret").mkdir()
    (container.root / "secret" / "k.md").write_text("top", encoding="utf-8")
    client = TestClient(create_app(container))

    assert client.get("/api/file", params={"path": "secret/k.md"}).status_code == 403
    assert client.post("/api/permissions", json={"path": "secret"}).status_code == 401
    assert client.get("/api/permissions").status_code == 401
    assert client.delete("/api/permissions", params={"all": "true"}).status_code == 401
    assert client.get("/api/file", params={"path": "secret/k.md"}).status_code == 403

    auth = _login(client)
    assert client.post("/api/permissions", json={"path": "secret"}, headers=auth).status_code == 200
    assert client.get("/api/file", params={"path": "secret/k.md"}).json()["content"] == "top"
