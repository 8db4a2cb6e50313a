from app.farmbook.db import session_scope
from app.farmbook.modules.farms.models import FarmMember
from conftest import login


def _members_url(farm, member_key=None):
    base = f"/api/farms/{farm['farm_id']}/members"
    return f"{base}/{farm[member_key]}" if member_key else base


def test_list_members(client, farm):
    login(client, "worker@example.com")
    r = client.get(_members_url(farm))
    assert r.status_code == 200
    roles = sorted(m["role"] for m in r.json["data"])
    assert roles == ["ASSOCIATE", "OWNER", "WORKER"]


def test_worker_cannot_change_roles(client, farm):
    login(client, "worker@example.com")
    r = client.patch(_members_url(farm, "associate_member_id"), json={"role": "WORKER"})
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"


def test_associate_cannot_add_members(client, farm):
    login(client, "associate@example.com")
    r = client.post(_members_url(farm), json={"email": "outsider@example.com", "role": "WORKER"})
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"


def test_owner_adds_existing_user(client, farm):
    login(client, "owner@example.com")
    r = client.post(_members_url(farm), json={"email": "Outsider@Example.com", "role": "WORKER"})
    assert r.status_code == 201
    assert r.json["data"]["userId"] == farm["outsider_id"]
    assert r.json["data"]["status"] == "ACTIVE"

    r = client.post(_members_url(farm), json={"email": "outsider@example.com", "role": "WORKER"})
    assert r.status_code == 400
    assert r.json["code"] == "ALREADY_MEMBER"


def test_add_unknown_user_is_404(client, farm):
    login(client, "owner@example.com")
    r = client.post(_members_url(farm), json={"email": "ghost@example.com", "role": "WORKER"})
    assert r.status_code == 404
    assert r.json["code"] == "USER_NOT_FOUND"


def test_invalid_role_is_rejected(client, farm):
    login(client, "owner@example.com")
    r = client.patch(_members_url(farm, "worker_member_id"), json={"role": "ADMIN"})
    assert r.status_code == 400
    assert r.json["code"] == "VALIDATION_ERROR"
    assert r.json["details"][0]["field"] == "role"


def test_owner_promotes_worker(client, farm):
    login(client, "owner@example.com")
    r = client.patch(_members_url(farm, "worker_member_id"), json={"role": "ASSOCIATE"})
    assert r.status_code == 200
    assert r.json["data"]["role"] == "ASSOCIATE"


def test_last_owner_cannot_demote_self(client, farm):
    login(client, "owner@example.com")
    r = client.patch(_members_url(farm, "owner_member_id"), json={"role": "WORKER"})
    assert r.status_code == 400
    assert r.json["code"] == "LAST_OWNER"


def test_last_owner_cannot_be_deactivated(client, farm):
    login(client, "owner@example.com")
    r = client.patch(_members_url(farm, "owner_member_id"), json={"status": "INACTIVE"})
    assert r.status_code == 400
    assert r.json["code"] == "LAST_OWNER"


def test_last_owner_cannot_leave(app, client, farm):
    login(client, "owner@example.com")
    r = client.delete(_members_url(farm, "owner_member_id"))
    assert r.status_code == 400
    assert r.json["code"] == "LAST_OWNER"

    with session_scope(app) as s:
        assert s.get(FarmMember, farm["owner_member_id"]) is not None


def test_second_owner_allows_demotion(client, farm):
    login(client, "owner@example.com")
    r = client.patch(_members_url(farm, "associate_member_id"), json={"role": "OWNER"})
    assert r.status_code == 200

    r = client.patch(_members_url(farm, "owner_member_id"), json={"role": "ASSOCIATE"})
    assert r.status_code == 200
    assert r.json["data"]["role"] == "ASSOCIATE"


def test_inactive_owner_does_not_count(client, farm):
    login(client, "owner@example.com")
    client.patch(_members_url(farm, "associate_member_id"), json={"role": "OWNER"})
    client.patch(_members_url(farm, "associate_member_id"), json={"status": "INACTIVE"})

    r = client.patch(_members_url(farm, "owner_member_id"), json={"role": "WORKER"})
    assert r.status_code == 400
    assert r.json["code"] == "LAST_OWNER"


def test_worker_can_leave(client, farm):
    login(client, "worker@example.com")
    r = client.delete(_members_url(farm, "worker_member_id"))
    assert r.status_code == 200

    r = client.get(f"/api/farms/{farm['farm_id']}/animals")
    assert r.status_code == 403


def test_worker_cannot_remove_others(client, farm):
    login(client, "worker@example.com")
    r = client.delete(_members_url(farm, "associate_member_id"))
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"


def test_associate_can_leave_but_not_remove_unknown_members(client, farm):
    login(client, "associate@example.com")
    r = client.delete(f"/api/farms/{farm['farm_id']}/members/99999")
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"

    r = client.delete(_members_url(farm, "associate_member_id"))
    assert r.status_code == 200


def test_member_of_other_farm_is_404(client, farm):
    login(client, "owner@example.com")
    r = client.get(f"/api/farms/{farm['farm_id']}/members/99999")
    assert r.status_code == 404
    assert r.json["code"] == "MEMBER_NOT_FOUND"
