from datetime import timedelta

from sqlalchemy import func, select

from app.farmbook.db import session_scope
from app.farmbook.modules.cashbox.models import CashboxMovement
from app.farmbook.modules.events.models import Event
from app.farmbook.modules.events.service import expense_category_for
from app.farmbook.utils import utcnow
from conftest import create_animal, login


def _events_url(farm):
    return f"/api/farms/{farm['farm_id']}/events"


def _event(target, **overrides):
    payload = {
        "targetId": target["id"],
        "targetType": "ANIMAL",
        "eventType": "VACCINATION",
        "eventDate": "2024-03-01T09:00:00Z",
    }
    payload.update(overrides)
    return payload


def _expenses(app, farm_id):
    with session_scope(app) as s:
        return list(
            s.execute(
                select(CashboxMovement).where(CashboxMovement.farm_id == farm_id, CashboxMovement.type == "EXPENSE_CASH")
            ).scalars()
        )


def _event_count(app, farm_id):
    with session_scope(app) as s:
        return s.execute(select(func.count(Event.id)).where(Event.farm_id == farm_id)).scalar_one()


def test_expense_category_mapping():
    assert expense_category_for("VACCINATION") == "VET"
    assert expense_category_for("TREATMENT") == "VET"
    assert expense_category_for("WEIGHT") == "EQUIPMENT"
    assert expense_category_for("SALE") == "OTHER"
    assert expense_category_for("VACCINATION", "FEED") == "FEED"
    assert expense_category_for("VACCINATION", "BOGUS") == "VET"


def test_costed_vaccination_books_vet_expense(app, client, farm):
    login(client, "worker@example.com")
    cow = create_animal(client, farm["farm_id"])

    r = client.post(_events_url(farm), json=_event(cow, cost=50, note="Brucellosis booster"))
    assert r.status_code == 201, r.json
    event = r.json["data"]
    assert event["cost"] == 50.0
    assert event["targetTag"] == "BOV-001"
    assert event["expense"]["category"] == "VET"
    assert event["expense"]["amount"] == 50.0
    assert event["expense"]["relatedEventId"] == event["id"]

    [movement] = _expenses(app, farm["farm_id"])
    assert movement.category == "VET"
    assert movement.related_event_id == event["id"]
    assert movement.description == "Vaccination: Brucellosis booster (BOV-001)"


def test_zero_or_missing_cost_books_nothing(app, client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])

    r = client.post(_events_url(farm), json=_event(cow, cost=0))
    assert r.status_code == 201
    assert r.json["data"]["expense"] is None
    r = client.post(_events_url(farm), json=_event(cow, eventType="NOTE"))
    assert r.status_code == 201
    assert r.json["data"]["expense"] is None

    assert _expenses(app, farm["farm_id"]) == []


def test_weight_event_is_equipment_expense(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    r = client.post(_events_url(farm), json=_event(cow, eventType="WEIGHT", cost="12.5", payload={"kg": 412}))
    assert r.status_code == 201
    assert r.json["data"]["expense"]["category"] == "EQUIPMENT"
    assert r.json["data"]["payload"] == {"kg": 412}


def test_explicit_category_wins(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    r = client.post(_events_url(farm), json=_event(cow, cost=30, category="TRANSPORT"))
    assert r.status_code == 201
    assert r.json["data"]["expense"]["category"] == "TRANSPORT"


def test_target_type_mismatch_writes_nothing(app, client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])

    r = client.post(_events_url(farm), json=_event(cow, targetType="LOT", cost=50))
    assert r.status_code == 400
    assert r.json["code"] == "TARGET_TYPE_MISMATCH"
    assert _event_count(app, farm["farm_id"]) == 0
    assert _expenses(app, farm["farm_id"]) == []


def test_lot_target(client, farm):
    login(client, "owner@example.com")
    lot = create_animal(client, farm["farm_id"], tagNumber="LOT-A", type="LOT", lotCount=25, sex=None)
    r = client.post(_events_url(farm), json=_event(lot, targetType="LOT", eventType="FEED", cost=80))
    assert r.status_code == 201, r.json
    assert r.json["data"]["expense"]["category"] == "OTHER"


def test_unknown_target_is_404(client, farm):
    login(client, "owner@example.com")
    r = client.post(_events_url(farm), json=_event({"id": 99999}))
    assert r.status_code == 404
    assert r.json["code"] == "TARGET_NOT_FOUND"


def test_cashbox_failure_does_not_fail_event(app, client, farm, monkeypatch):
    import app.farmbook.modules.events.service as events_service

    def broken(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    monkeypatch.setattr(events_service, "add_cash_expense", broken)

    r = client.post(_events_url(farm), json=_event(cow, cost=50))
    assert r.status_code == 201
    assert r.json["data"]["expense"] is None
    assert _event_count(app, farm["farm_id"]) == 1
    assert _expenses(app, farm["farm_id"]) == []


def test_event_validation(client, farm):
    login(client, "owner@example.com")
    r = client.post(_events_url(farm), json={"targetType": "HERD", "eventType": "PARTY", "cost": -1})
    assert r.status_code == 400
    fields = {d["field"] for d in r.json["details"]}
    assert fields == {"targetId", "targetType", "eventType", "eventDate", "cost"}


def test_list_filters_by_type(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    client.post(_events_url(farm), json=_event(cow))
    client.post(_events_url(farm), json=_event(cow, eventType="WEIGHT"))

    r = client.get(_events_url(farm), query_string={"eventType": "WEIGHT"})
    assert [e["eventType"] for e in r.json["data"]] == ["WEIGHT"]

    r = client.get(_events_url(farm), query_string={"eventType": "NOPE"})
    assert r.status_code == 400


def test_upcoming_splits_urgent(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    now = utcnow()
    soon = (now + timedelta(days=3)).isoformat()
    later = (now + timedelta(days=20)).isoformat()
    client.post(_events_url(farm), json=_event(cow, nextDueDate=soon))
    client.post(_events_url(farm), json=_event(cow, eventType="TREATMENT", nextDueDate=later))

    r = client.get(f"{_events_url(farm)}/upcoming")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["total"] == 2
    assert [e["eventType"] for e in data["urgent"]] == ["VACCINATION"]
    assert [e["eventType"] for e in data["upcoming"]] == ["TREATMENT"]

    r = client.get(f"{_events_url(farm)}/upcoming", query_string={"days": 0})
    assert r.status_code == 400


def test_stats_counts_by_type(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    client.post(_events_url(farm), json=_event(cow, eventDate="2024-03-02"))
    client.post(_events_url(farm), json=_event(cow, eventDate="2024-03-10"))
    client.post(_events_url(farm), json=_event(cow, eventType="WEIGHT", eventDate="2024-04-01"))

    r = client.get(f"{_events_url(farm)}/stats", query_string={"startDate": "2024-03-01", "endDate": "2024-04-01"})
    assert r.status_code == 200
    assert r.json["data"]["totalEvents"] == 2
    assert r.json["data"]["byType"]["VACCINATION"] == 2
    assert r.json["data"]["byType"]["WEIGHT"] == 0


def test_timeline_newest_first(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    client.post(_events_url(farm), json=_event(cow, eventDate="2024-01-01"))
    client.post(_events_url(farm), json=_event(cow, eventType="WEIGHT", eventDate="2024-02-01"))

    r = client.get(f"{_events_url(farm)}/timeline/{cow['id']}")
    assert r.status_code == 200
    assert r.json["data"]["target"]["tagNumber"] == "BOV-001"
    assert [e["eventType"] for e in r.json["data"]["events"]] == ["WEIGHT", "VACCINATION"]


def test_update_and_delete_permissions(client, farm):
    login(client, "associate@example.com")
    cow = create_animal(client, farm["farm_id"])
    event_id = client.post(_events_url(farm), json=_event(cow)).json["data"]["id"]

    r = client.put(f"{_events_url(farm)}/{event_id}", json={"note": "second dose"})
    assert r.status_code == 200
    assert r.json["data"]["note"] == "second dose"

    r = client.delete(f"{_events_url(farm)}/{event_id}")
    assert r.status_code == 403

    login(client, "owner@example.com")
    r = client.delete(f"{_events_url(farm)}/{event_id}")
    assert r.status_code == 200
    r = client.get(f"{_events_url(farm)}/{event_id}")
    assert r.status_code == 404
    assert r.json["code"] == "EVENT_NOT_FOUND"


def test_oversized_cost_is_a_validation_error(app, client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    for cost in ("1e30", 1e30):
        r = client.post(_events_url(farm), json=_event(cow, cost=cost))
        assert r.status_code == 400, cost
        assert r.json["details"][0]["field"] == "cost"
        assert r.json["details"][0]["code"] == "TOO_LARGE"
    assert _event_count(app, farm["farm_id"]) == 0


def test_deleted_animal_drops_out_of_reminders(client, farm):
    login(client, "owner@example.com")
    cow = create_animal(client, farm["farm_id"])
    soon = (utcnow() + timedelta(days=3)).isoformat()
    client.post(_events_url(farm), json=_event(cow, nextDueDate=soon))

    dashboard_url = f"/api/farms/{farm['farm_id']}/dashboard"
    assert client.get(dashboard_url).json["data"]["reminders"]["urgent"] == 1

    assert client.delete(f"/api/farms/{farm['farm_id']}/animals/{cow['id']}").status_code == 200

    data = client.get(f"{_events_url(farm)}/upcoming").json["data"]
    assert data["total"] == 0
    assert client.get(_events_url(farm)).json["data"] == []
    reminders = client.get(dashboard_url).json["data"]["reminders"]
    assert reminders == {"urgent": 0, "upcoming": 0}
