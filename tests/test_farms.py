import csv
import io

from conftest import create_animal, login


def test_create_farm_makes_creator_owner(client, farm):
    login(client, "outsider@example.com")
    r = client.post("/api/farms", json={"name": "  Hill Farm ", "currency": "eur"})
    assert r.status_code == 201
    data = r.json["data"]
    assert data["name"] == "Hill Farm"
    assert data["currency"] == "EUR"
    assert data["role"] == "OWNER"
    assert data["permissions"]["manageMembers"] is True

    # The new farm becomes the session's active farm.
    r = client.get("/api/auth/session")
    assert r.json["data"]["farm"]["id"] == data["id"]

    r = client.get(f"/api/farms/{data['id']}/cashbox")
    assert [m["description"] for m in r.json["data"]["recentMovements"]] == ["Initial cashbox setup"]

    r = client.get("/api/farms")
    assert [f["name"] for f in r.json["data"]] == ["Hill Farm"]


def test_create_farm_validation(client, farm):
    login(client, "owner@example.com")
    r = client.post("/api/farms", json={"name": "", "currency": "EURO"})
    assert r.status_code == 400
    assert {d["field"] for d in r.json["details"]} == {"name", "currency"}


def test_only_owner_updates_farm(client, farm):
    login(client, "associate@example.com")
    r = client.put(f"/api/farms/{farm['farm_id']}", json={"name": "Renamed"})
    assert r.status_code == 403
    assert r.json["code"] == "OWNER_ONLY"

    login(client, "owner@example.com")
    r = client.put(f"/api/farms/{farm['farm_id']}", json={"name": "Renamed"})
    assert r.status_code == 200
    assert r.json["data"]["name"] == "Renamed"


def test_deleted_farm_disappears(client, farm):
    login(client, "owner@example.com")
    assert client.delete(f"/api/farms/{farm['farm_id']}").status_code == 200
    r = client.get(f"/api/farms/{farm['farm_id']}")
    assert r.status_code == 404
    assert r.json["code"] == "FARM_NOT_FOUND"
    assert client.get("/api/farms").json["data"] == []


def test_dashboard(client, farm):
    login(client, "worker@example.com")
    cow = create_animal(client, farm["farm_id"])
    create_animal(client, farm["farm_id"], tagNumber="LOT-9", type="LOT", lotCount=10, sex=None)
    client.post(
        f"/api/farms/{farm['farm_id']}/events",
        json={"targetId": cow["id"], "targetType": "ANIMAL", "eventType": "TREATMENT", "eventDate": "2024-05-01", "cost": 20},
    )

    r = client.get(f"/api/farms/{farm['farm_id']}/dashboard")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["animals"]["total"] == 2
    assert data["animals"]["ACTIVE"] == 2
    assert data["cashbox"]["balance"] == -20.0
    assert data["cashbox"]["expensesByCategory"]["VET"] == 20.0
    assert set(data["reminders"]) == {"urgent", "upcoming"}


def test_export_requires_capability(client, farm):
    login(client, "worker@example.com")
    r = client.get(f"/api/farms/{farm['farm_id']}/export", query_string={"type": "animals"})
    assert r.status_code == 403


def test_export_animals_csv(client, farm):
    login(client, "associate@example.com")
    create_animal(client, farm["farm_id"], notes="Has a limp, watch her")
    r = client.get(f"/api/farms/{farm['farm_id']}/export", query_string={"type": "animals"})
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "attachment" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0][0] == "Tag"
    assert rows[1][0] == "BOV-001"
    assert rows[1][8] == "Has a limp, watch her"


def test_export_financial_csv(client, farm):
    login(client, "owner@example.com")
    client.post(f"/api/farms/{farm['farm_id']}/cashbox/deposit", json={"amount": 75, "description": "Eggs"})
    r = client.get(f"/api/farms/{farm['farm_id']}/export", query_string={"type": "financial"})
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert [row[3] for row in rows[1:]] == ["0.00", "75.00"]


def test_export_unknown_type(client, farm):
    login(client, "owner@example.com")
    r = client.get(f"/api/farms/{farm['farm_id']}/export", query_string={"type": "everything"})
    assert r.status_code == 400


def test_current_farm_follows_session(client, farm):
    login(client, "outsider@example.com")
    r = client.get("/api/farms/current")
    assert r.status_code == 400
    assert r.json["code"] == "NO_ACTIVE_FARM"

    login(client, "worker@example.com")
    r = client.get("/api/farms/current")
    assert r.status_code == 200
    assert r.json["data"]["id"] == farm["farm_id"]
    assert r.json["data"]["role"] == "WORKER"
