from __future__ import annotations

from flask import Blueprint, request

from app.farmbook.api import json_body, ok
from app.farmbook.db import db_session
from app.farmbook.errors import ValidationError, field_error, raise_for_errors
from app.farmbook.modules.animals.models import Animal
from app.farmbook.modules.animals.service import get_animal
from app.farmbook.modules.cashbox.service import serialize_movement
from app.farmbook.modules.events.service import (
    append_expense_for_event,
    create_event,
    delete_event,
    event_stats,
    get_event,
    list_events,
    parse_event_filters,
    serialize_event,
    timeline,
    upcoming_events,
    update_event,
    validate_event_payload,
)
from app.farmbook.rbac import CREATE, DELETE, READ, UPDATE, current_user, require_farm_access
from app.farmbook.utils import parse_datetime, parse_int

bp = Blueprint("events", __name__)


@bp.get("/<int:farm_id>/events")
@require_farm_access(READ)
def events_list(farm_id: int):
    s = db_session()
    filters = parse_event_filters(request.args)
    return ok([serialize_event(e, a) for e, a in list_events(s, farm_id, filters)])


@bp.post("/<int:farm_id>/events")
@require_farm_access(CREATE)
def events_create(farm_id: int):
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_event_payload(payload))

    event, target = create_event(s, farm_id, payload, u)
    s.commit()

    expense = append_expense_for_event(s, event, target, u, payload.get("category"))

    data = serialize_event(event, target)
    data["expense"] = serialize_movement(expense) if expense is not None else None
    return ok(data, message="Event created.", status=201)


@bp.get("/<int:farm_id>/events/upcoming")
@require_farm_access(READ)
def events_upcoming(farm_id: int):
    s = db_session()
    days = parse_int(request.args.get("days"), 30)
    if days is None or days < 1 or days > 365:
        raise ValidationError(details=[field_error("days", "Days must be between 1 and 365.", "OUT_OF_RANGE")])
    return ok(upcoming_events(s, farm_id, days))


@bp.get("/<int:farm_id>/events/stats")
@require_farm_access(READ)
def events_stats(farm_id: int):
    s = db_session()
    try:
        start = parse_datetime(request.args.get("startDate"))
        end = parse_datetime(request.args.get("endDate"))
    except ValueError:
        raise ValidationError(details=[field_error("startDate", "Dates must be ISO formatted.", "INVALID_DATE")])
    return ok(event_stats(s, farm_id, start, end))


@bp.get("/<int:farm_id>/events/timeline/<int:target_id>")
@require_farm_access(READ)
def events_timeline(farm_id: int, target_id: int):
    s = db_session()
    target = get_animal(s, farm_id, target_id)
    data = {
        "target": {"id": target.id, "tagNumber": target.tag_number, "type": target.type},
        "events": [serialize_event(e, a) for e, a in timeline(s, farm_id, target_id)],
    }
    return ok(data)


@bp.get("/<int:farm_id>/events/<int:event_id>")
@require_farm_access(READ)
def event_detail(farm_id: int, event_id: int):
    s = db_session()
    event = get_event(s, farm_id, event_id)
    return ok(serialize_event(event, s.get(Animal, event.target_id)))


@bp.put("/<int:farm_id>/events/<int:event_id>")
@require_farm_access(UPDATE)
def event_update(farm_id: int, event_id: int):
    s = db_session()
    u = current_user()
    event = get_event(s, farm_id, event_id)
    payload = json_body()
    raise_for_errors(validate_event_payload(payload, partial=True))

    event, target = update_event(s, event, payload, u)
    s.commit()
    return ok(serialize_event(event, target), message="Event updated.")


@bp.delete("/<int:farm_id>/events/<int:event_id>")
@require_farm_access(DELETE)
def event_delete(farm_id: int, event_id: int):
    s = db_session()
    u = current_user()
    event = get_event(s, farm_id, event_id)
    delete_event(s, event, u)
    s.commit()
    return ok(message="Event deleted.")
