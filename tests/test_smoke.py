from conftest import login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_anonymous_session_is_401_envelope(client):
    r = client.get("/api/auth/session")
    assert r.status_code == 401
    assert r.json["success"] is False
    assert r.json["code"] == "UNAUTHORIZED"


def test_login_sets_http_only_cookie_and_default_farm(client, farm):
    r = login(client, "owner@example.com")
    cookie = r.headers.get("Set-Cookie") or ""
    assert cookie.startswith("session=")
    assert "HttpOnly" in cookie
    assert r.json["data"]["farm"]["id"] == farm["farm_id"]
    assert r.json["data"]["role"] == "OWNER"

    r = client.get("/api/auth/session")
    assert r.status_code == 200
    assert r.json["data"]["user"]["email"] == "owner@example.com"
    assert r.json["data"]["permissions"]["manageMembers"] is True


def test_login_bad_password(client, farm):
    r = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"


def test_register_then_duplicate(client):
    r = client.post("/api/auth/register", json={"email": "New@Example.com", "password": "longenough", "name": "Nia"})
    assert r.status_code == 201
    assert r.json["data"]["user"]["email"] == "new@example.com"
    assert r.json["data"]["farm"] is None

    r = client.post("/api/auth/register", json={"email": "new@example.com", "password": "longenough", "name": "Nia"})
    assert r.status_code == 400
    assert r.json["code"] == "EMAIL_TAKEN"


def test_register_validation_details(client):
    r = client.post("/api/auth/register", json={"email": "bad", "password": "short", "name": "N"})
    assert r.status_code == 400
    assert r.json["code"] == "VALIDATION_ERROR"
    fields = {d["field"] for d in r.json["details"]}
    assert fields == {"email", "password", "name"}


def test_non_string_password_is_rejected_cleanly(client, farm):
    r = client.post("/api/auth/register", json={"email": "num@example.com", "password": 12345678, "name": "Numa"})
    assert r.status_code == 400
    [detail] = r.json["details"]
    assert detail["field"] == "password"
    assert detail["code"] == "INVALID_TYPE"

    r = client.post("/api/auth/login", json={"email": "owner@example.com", "password": 12345678})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"


def test_logout_clears_session(client, farm):
    login(client, "owner@example.com")
    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    r = client.get("/api/auth/session")
    assert r.status_code == 401


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json == {"success": False, "error": "Resource not found.", "code": "NOT_FOUND"}


def test_unexpected_error_is_generic_500(client, farm, monkeypatch):
    import app.farmbook.modules.dashboard.api as dashboard_api

    def boom(s, farm_id):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(dashboard_api, "dashboard_stats", boom)
    login(client, "owner@example.com")
    r = client.get(f"/api/farms/{farm['farm_id']}/dashboard")
    assert r.status_code == 500
    assert r.json["code"] == "INTERNAL_ERROR"
    assert "secret" not in r.json["error"]


def test_error_message_follows_accept_language(client):
    r = client.get("/api/auth/session", headers={"Accept-Language": "fr-FR,fr;q=0.9"})
    assert r.status_code == 401
    assert r.json["code"] == "UNAUTHORIZED"
    assert r.json["error"] == "Authentification requise."
