from datetime import timedelta

from sqlalchemy import func, select

from app.farmbook.db import session_scope
from app.farmbook.models import User
from app.farmbook.modules.farms.models import FarmMember
from app.farmbook.modules.invitations.models import FarmInvitation
from app.farmbook.utils import utcnow
from conftest import PASSWORD, login


def _invite(client, farm, email="new.hand@example.com", role="WORKER"):
    r = client.post(f"/api/farms/{farm['farm_id']}/invitations", json={"email": email, "role": role})
    assert r.status_code == 201, r.json
    return r.json["data"]


def _expire(app, token):
    with session_scope(app) as s:
        inv = s.execute(select(FarmInvitation).where(FarmInvitation.token == token)).scalar_one()
        inv.expires_at = utcnow() - timedelta(minutes=1)


def test_owner_creates_invitation_with_link(client, farm):
    login(client, "owner@example.com")
    data = _invite(client, farm)
    inv = data["invitation"]
    assert inv["status"] == "PENDING"
    assert inv["role"] == "WORKER"
    assert len(inv["token"]) >= 32
    assert data["invitationLink"] == f"http://farmbook.test/invitations/{inv['token']}"

    r = client.get(f"/api/farms/{farm['farm_id']}/invitations")
    assert [i["email"] for i in r.json["data"]] == ["new.hand@example.com"]


def test_second_pending_invitation_is_rejected(client, farm):
    login(client, "owner@example.com")
    _invite(client, farm)
    r = client.post(f"/api/farms/{farm['farm_id']}/invitations", json={"email": "NEW.HAND@example.com", "role": "WORKER"})
    assert r.status_code == 400
    assert r.json["code"] == "INVITATION_PENDING"


def test_inviting_a_member_is_rejected(client, farm):
    login(client, "owner@example.com")
    r = client.post(f"/api/farms/{farm['farm_id']}/invitations", json={"email": "worker@example.com", "role": "WORKER"})
    assert r.status_code == 400
    assert r.json["code"] == "ALREADY_MEMBER"


def test_worker_cannot_invite(client, farm):
    login(client, "worker@example.com")
    r = client.post(f"/api/farms/{farm['farm_id']}/invitations", json={"email": "x@example.com", "role": "WORKER"})
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"


def test_invalid_role_is_rejected(client, farm):
    login(client, "owner@example.com")
    r = client.post(f"/api/farms/{farm['farm_id']}/invitations", json={"email": "x@example.com", "role": "BOSS"})
    assert r.status_code == 400
    assert r.json["details"][0]["field"] == "role"


def test_new_user_accepts(app, client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm, role="ASSOCIATE")["invitation"]["token"]
    client.post("/api/auth/logout")

    r = client.get(f"/api/invitations/{token}")
    assert r.status_code == 200
    assert r.json["data"]["farmName"] == "Green Acres"
    assert "token" not in r.json["data"]

    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 200, r.json
    assert r.json["data"]["member"]["role"] == "ASSOCIATE"
    assert r.json["data"]["farm"]["id"] == farm["farm_id"]

    # Acceptance logs the new user straight in.
    r = client.get("/api/auth/session")
    assert r.status_code == 200
    assert r.json["data"]["user"]["email"] == "new.hand@example.com"
    assert r.json["data"]["role"] == "ASSOCIATE"

    r = client.get(f"/api/invitations/{token}")
    assert r.json["data"]["status"] == "ACCEPTED"


def test_accepting_twice_is_invalid(app, client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    client.post("/api/auth/logout")
    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 200

    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 400
    assert r.json["code"] == "INVITATION_INVALID"

    with session_scope(app) as s:
        count = s.execute(
            select(func.count(FarmMember.id))
            .join(User, User.id == FarmMember.user_id)
            .where(User.email == "new.hand@example.com")
        ).scalar_one()
        assert count == 1


def test_expired_invitation(app, client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    _expire(app, token)
    client.post("/api/auth/logout")

    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 400
    assert r.json["code"] == "INVITATION_EXPIRED"

    r = client.get(f"/api/invitations/{token}")
    assert r.json["data"]["status"] == "EXPIRED"
    with session_scope(app) as s:
        inv = s.execute(select(FarmInvitation).where(FarmInvitation.token == token)).scalar_one()
        assert inv.status == "EXPIRED"
        assert s.execute(select(User).where(User.email == "new.hand@example.com")).scalar_one_or_none() is None


def test_stored_expired_invitation_is_invalid(app, client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    _expire(app, token)
    client.post("/api/auth/logout")

    # Reading it records the expiry; later acceptance sees a settled invitation.
    assert client.get(f"/api/invitations/{token}").json["data"]["status"] == "EXPIRED"
    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 400
    assert r.json["code"] == "INVITATION_INVALID"


def test_expired_invitation_can_be_reissued(app, client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    _expire(app, token)
    fresh = _invite(client, farm)["invitation"]
    assert fresh["token"] != token
    assert fresh["status"] == "PENDING"


def test_unknown_token_is_404(client):
    r = client.get("/api/invitations/does-not-exist")
    assert r.status_code == 404
    assert r.json["code"] == "INVITATION_NOT_FOUND"


def test_logged_in_user_with_other_email_is_rejected(client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm, email="outsider@example.com")["invitation"]["token"]
    login(client, "worker@example.com")
    r = client.post(f"/api/invitations/{token}", json={})
    assert r.status_code == 400
    assert r.json["code"] == "INVITATION_EMAIL_MISMATCH"


def test_existing_account_accepts_with_password(client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm, email="outsider@example.com")["invitation"]["token"]
    client.post("/api/auth/logout")

    r = client.post(f"/api/invitations/{token}", json={"password": "wrong-one"})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"

    r = client.post(f"/api/invitations/{token}", json={"password": PASSWORD})
    assert r.status_code == 200
    assert r.json["data"]["member"]["userId"] == farm["outsider_id"]


def test_new_user_needs_name_and_password(client, farm):
    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    client.post("/api/auth/logout")
    r = client.post(f"/api/invitations/{token}", json={"name": "N", "password": "123"})
    assert r.status_code == 400
    assert {d["field"] for d in r.json["details"]} == {"name", "password"}


def test_failed_acceptance_leaves_nothing_behind(app, client, farm, monkeypatch):
    import app.farmbook.modules.invitations.service as invitations_service

    login(client, "owner@example.com")
    token = _invite(client, farm)["invitation"]["token"]
    client.post("/api/auth/logout")

    def boom(*args, **kwargs):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(invitations_service, "record_event", boom)
    r = client.post(f"/api/invitations/{token}", json={"name": "Nadia Hand", "password": "secret1"})
    assert r.status_code == 500

    with session_scope(app) as s:
        inv = s.execute(select(FarmInvitation).where(FarmInvitation.token == token)).scalar_one()
        assert inv.status == "PENDING"
        assert s.execute(select(User).where(User.email == "new.hand@example.com")).scalar_one_or_none() is None


def test_non_string_password_on_accept(client, farm):
    login(client, "owner@example.com")
    new_token = _invite(client, farm)["invitation"]["token"]
    existing_token = _invite(client, farm, email="outsider@example.com")["invitation"]["token"]
    client.post("/api/auth/logout")

    r = client.post(f"/api/invitations/{new_token}", json={"name": "Nadia Hand", "password": 123456})
    assert r.status_code == 400
    assert [(d["field"], d["code"]) for d in r.json["details"]] == [("password", "INVALID_TYPE")]

    r = client.post(f"/api/invitations/{existing_token}", json={"password": ["password123"]})
    assert r.status_code == 401
    assert r.json["code"] == "INVALID_CREDENTIALS"


def test_public_view_tells_new_from_existing_accounts(client, farm):
    login(client, "owner@example.com")
    new_token = _invite(client, farm)["invitation"]["token"]
    existing_token = _invite(client, farm, email="outsider@example.com")["invitation"]["token"]
    client.post("/api/auth/logout")

    data = client.get(f"/api/invitations/{new_token}").json["data"]
    assert data["userExists"] is False
    assert data["inviterName"] == "Olive Owner"

    data = client.get(f"/api/invitations/{existing_token}").json["data"]
    assert data["userExists"] is True
    assert data["inviterName"] == "Olive Owner"
