from datetime import timedelta

from fastapi.testclient import TestClient

from app.core.security import create_access_token, decode_refresh_token
from app.main import app
from app.models.access_log import AccessLog
from app.models.security import RefreshToken
from app.services.token_service import token_service

PASSWORD = "password123"


def _login(client, username, password=PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


def _cleared(response, name):
    return any(
        header.startswith(f"{name}=") and "Max-Age=0" in header
        for header in response.headers.get_list("set-cookie")
    )


def test_register_creates_user_without_session(client):
    response = client.post(
        "/auth/register",
        json={"username": "alice", "password": PASSWORD, "displayName": "Alice A."},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User registered successfully"
    assert body["user"]["username"] == "alice"
    assert body["user"]["displayName"] == "Alice A."
    assert body["user"]["status"] == "offline"
    assert "passwordHash" not in body["user"]
    assert "set-cookie" not in response.headers


def test_register_duplicate_username_conflicts(client, make_user):
    make_user("alice")
    response = client.post("/auth/register", json={"username": "alice", "password": PASSWORD})
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_register_validation_errors_are_bad_requests(client):
    assert client.post("/auth/register", json={"username": "alice"}).status_code == 400
    assert client.post("/auth/register", json={"username": "al", "password": PASSWORD}).status_code == 400
    response = client.post("/auth/register", json={"username": "bad name!", "password": PASSWORD})
    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_login_sets_http_only_cookies(client, make_user, db):
    alice = make_user("alice")
    response = _login(client, "alice")

    assert response.status_code == 200
    assert response.json()["message"] == "Login successful"
    cookies = response.headers.get_list("set-cookie")
    access = next(c for c in cookies if c.startswith("accessToken="))
    refresh = next(c for c in cookies if c.startswith("refreshToken="))
    for header in (access, refresh):
        assert "HttpOnly" in header
        assert "SameSite=strict" in header
    assert "Max-Age=900" in access
    assert "Max-Age=604800" in refresh

    jti = decode_refresh_token(response.cookies["refreshToken"]).jti
    assert db.query(RefreshToken).filter(RefreshToken.user_id == alice.id).one().token_jti == jti


def test_login_with_bad_credentials(client, make_user):
    make_user("alice")
    assert _login(client, "alice", "wrong-password").status_code == 401
    response = _login(client, "nobody")
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid credentials"


def test_me_requires_session(client):
    response = client.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required. No token provided."


def test_me_returns_profile(client, make_user):
    make_user("alice", email="alice@example.com")
    _login(client, "alice")

    response = client.get("/auth/me")
    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "alice"
    assert body["email"] == "alice@example.com"
    assert "set-cookie" not in response.headers


def test_expired_access_cookie_is_refreshed_transparently(client, make_user, db):
    alice = make_user("alice")
    _, refresh = token_service.issue_token_pair(db, alice.id)
    browser = TestClient(app)
    browser.cookies.set("accessToken", create_access_token(alice.id, expires_delta=timedelta(seconds=-1)))
    browser.cookies.set("refreshToken", refresh)

    response = browser.get("/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == alice.id
    new_refresh = response.cookies["refreshToken"]
    assert token_service.verify_access(response.cookies["accessToken"]).user_id == alice.id
    db.expire_all()
    assert [r.token_jti for r in db.query(RefreshToken).all()] == [decode_refresh_token(new_refresh).jti]


def test_rejected_session_clears_cookies(client):
    browser = TestClient(app)
    browser.cookies.set("accessToken", "garbage")

    response = browser.get("/auth/me")

    assert response.status_code == 401
    assert _cleared(response, "accessToken")
    assert _cleared(response, "refreshToken")


def test_logout_revokes_refresh_token_and_clears_cookies(client, make_user, db):
    make_user("alice")
    refresh = _login(client, "alice").cookies["refreshToken"]

    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Logout successful"}
    assert _cleared(response, "accessToken")
    assert _cleared(response, "refreshToken")
    assert client.cookies.get("accessToken") is None
    db.expire_all()
    assert db.query(RefreshToken).count() == 0
    assert token_service.revoke(db, refresh) is False
    assert client.get("/auth/me").status_code == 401


def test_logout_without_session_still_succeeds(client):
    response = client.post("/auth/logout")
    assert response.status_code == 200
    assert _cleared(response, "refreshToken")


def test_logout_succeeds_when_revocation_fails(client, make_user, monkeypatch):
    make_user("alice")
    _login(client, "alice")

    def boom(db, token):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(token_service, "revoke", boom)
    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert _cleared(response, "accessToken")


def test_logout_all_revokes_every_device(client, make_user, db):
    alice = make_user("alice")
    other_device = TestClient(app)
    _login(other_device, "alice")
    _login(client, "alice")

    response = client.post("/auth/logout-all")

    assert response.status_code == 200
    db.expire_all()
    assert db.query(RefreshToken).filter(RefreshToken.user_id == alice.id).count() == 0
    # The other device can no longer refresh once its access token is gone
    other_device.cookies.delete("accessToken")
    assert other_device.get("/auth/me").status_code == 401


def test_requests_are_recorded_in_access_log(client, make_user, db):
    alice = make_user("alice")
    _login(client, "alice")
    client.get("/auth/me")

    db.expire_all()
    entry = db.query(AccessLog).filter(AccessLog.url == "/auth/me").one()
    assert entry.method == "GET"
    assert entry.status == 200
    assert entry.user_id == alice.id


def test_health_and_root(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "OK"
    assert health.json()["realtimeConnections"] == 0
    assert client.get("/").json()["status"] == "running"
    assert "chat_http_requests_total" in client.get("/metrics").text
