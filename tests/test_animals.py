from datetime import date, timedelta

from conftest import create_animal, login


def _url(farm, suffix=""):
    return f"/api/farms/{farm['farm_id']}/animals{suffix}"


def test_create_and_fetch_individual(client, farm):
    login(client, "worker@example.com")
    cow = create_animal(client, farm["farm_id"], birthDate="2022-04-01", notes="Calm")
    assert cow["status"] == "ACTIVE"
    assert cow["lotCount"] is None

    r = client.get(_url(farm, f"/{cow['id']}"))
    assert r.status_code == 200
    assert r.json["data"]["tagNumber"] == "BOV-001"
    assert r.json["data"]["birthDate"] == "2022-04-01"


def test_duplicate_tag_is_conflict(client, farm):
    login(client, "owner@example.com")
    create_animal(client, farm["farm_id"])
    r = client.post(_url(farm), json={"tagNumber": "BOV-001", "type": "INDIVIDUAL", "species": "Cattle"})
    assert r.status_code == 409
    assert r.json["code"] == "DUPLICATE_RESOURCE"


def test_deleted_tag_still_reserved(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    assert client.delete(_url(farm, f"/{cow['id']}")).status_code == 200
    assert client.get(_url(farm, f"/{cow['id']}")).status_code == 404

    r = client.post(_url(farm), json={"tagNumber": "BOV-001", "type": "INDIVIDUAL", "species": "Cattle"})
    assert r.status_code == 409


def test_lot_rules(client, farm):
    login(client, "owner@example.com")
    r = client.post(_url(farm), json={"tagNumber": "LOT-1", "type": "LOT", "species": "Sheep"})
    assert r.status_code == 400
    assert r.json["details"][0]["code"] == "LOT_COUNT_REQUIRED"

    r = client.post(_url(farm), json={"tagNumber": "LOT-1", "type": "LOT", "species": "Sheep", "lotCount": 12, "sex": "MALE"})
    assert r.status_code == 400
    assert r.json["details"][0]["code"] == "LOT_NO_SEX"

    r = client.post(_url(farm), json={"tagNumber": "EWE-1", "type": "INDIVIDUAL", "species": "Sheep", "lotCount": 3})
    assert r.status_code == 400
    assert r.json["details"][0]["code"] == "INDIVIDUAL_NO_LOT_COUNT"

    lot = create_animal(client, farm["farm_id"], tagNumber="LOT-1", type="LOT", species="Sheep", lotCount=12, sex=None)
    assert lot["lotCount"] == 12
    assert lot["sex"] is None


def test_tag_format_and_future_birth(client, farm):
    login(client, "owner@example.com")
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = client.post(_url(farm), json={"tagNumber": "bad tag!", "species": "Cattle", "birthDate": tomorrow})
    assert r.status_code == 400
    codes = {d["field"]: d["code"] for d in r.json["details"]}
    assert codes == {"tagNumber": "INVALID_FORMAT", "birthDate": "FUTURE_BIRTH_DATE"}


def test_type_locked_once_events_exist(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    client.post(
        f"/api/farms/{farm['farm_id']}/events",
        json={"targetId": cow["id"], "targetType": "ANIMAL", "eventType": "NOTE", "eventDate": "2024-01-01"},
    )
    r = client.put(_url(farm, f"/{cow['id']}"), json={"type": "LOT", "lotCount": 4, "sex": None})
    assert r.status_code == 400
    assert r.json["details"][0]["code"] == "TYPE_LOCKED"


def test_update_and_filters(client, farm):
    login(client, "associate@example.com")
    cow = create_animal(client, farm["farm_id"])
    create_animal(client, farm["farm_id"], tagNumber="GOAT-7", species="Goat", sex="MALE")

    r = client.put(_url(farm, f"/{cow['id']}"), json={"status": "SOLD"})
    assert r.status_code == 200
    assert r.json["data"]["status"] == "SOLD"

    r = client.get(_url(farm), query_string={"species": "Goat"})
    assert [a["tagNumber"] for a in r.json["data"]] == ["GOAT-7"]
    r = client.get(_url(farm), query_string={"status": "SOLD"})
    assert [a["tagNumber"] for a in r.json["data"]] == ["BOV-001"]
    r = client.get(_url(farm), query_string={"tag": "bov"})
    assert [a["tagNumber"] for a in r.json["data"]] == ["BOV-001"]


def test_associate_cannot_delete(client, farm):
    login(client, "associate@example.com")
    cow = create_animal(client, farm["farm_id"])
    r = client.delete(_url(farm, f"/{cow['id']}"))
    assert r.status_code == 403


def test_animals_are_farm_scoped(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    r = client.post("/api/farms", json={"name": "Hill Farm"})
    other_id = r.json["data"]["id"]

    r = client.get(f"/api/farms/{other_id}/animals/{cow['id']}")
    assert r.status_code == 404
    assert r.json["code"] == "ANIMAL_NOT_FOUND"
