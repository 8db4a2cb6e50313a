from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.farmbook.audit import record_event
from app.farmbook.errors import NotFoundError, ValidationError, field_error
from app.farmbook.modules.animals.service import INDIVIDUAL, LOT
from app.farmbook.modules.cashbox.service import CATEGORIES, MAX_AMOUNT, add_cash_expense
from app.farmbook.utils import clean_str, iso, money, parse_amount, parse_datetime, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.farmbook.models import User
    from app.farmbook.modules.animals.models import Animal
    from app.farmbook.modules.cashbox.models import CashboxMovement
    from app.farmbook.modules.events.models import Event

logger = logging.getLogger(__name__)

EVENT_TYPES = ("BIRTH", "VACCINATION", "TREATMENT", "WEIGHT", "SALE", "DEATH", "NOTE", "FEED")
TARGET_TYPES = ("ANIMAL", "LOT")

# animal.type -> event.target_type
TARGET_TYPE_FOR_KIND = {INDIVIDUAL: "ANIMAL", LOT: "LOT"}

EXPENSE_CATEGORY_BY_EVENT_TYPE = {
    "VACCINATION": "VET",
    "TREATMENT": "VET",
    "BIRTH": "VET",
    "DEATH": "VET",
    "WEIGHT": "EQUIPMENT",
}
DEFAULT_EXPENSE_CATEGORY = "OTHER"

MAX_NOTE_LENGTH = 1000
URGENT_DAYS = 7
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _check_datetime(payload: dict, key: str, errors: list[dict], *, required: bool = False) -> None:
    raw = payload.get(key)
    if raw in (None, ""):
        if required:
            errors.append(field_error(key, "This field is required.", "REQUIRED"))
        return
    try:
        parse_datetime(raw)
    except (TypeError, ValueError):
        errors.append(field_error(key, "Must be an ISO date or timestamp.", "INVALID_DATE"))


def validate_event_payload(payload: dict, *, partial: bool = False) -> list[dict]:
    """Validate event create (or partial update) payload. Returns a list of field errors."""
    errors: list[dict] = []

    if not partial or "targetId" in payload:
        if parse_int(payload.get("targetId")) is None:
            errors.append(field_error("targetId", "Target is required.", "REQUIRED"))
    if not partial or "targetType" in payload:
        if payload.get("targetType") not in TARGET_TYPES:
            errors.append(
                field_error("targetType", f"Target type must be one of: {', '.join(TARGET_TYPES)}", "INVALID_TYPE")
            )
    if not partial or "eventType" in payload:
        if payload.get("eventType") not in EVENT_TYPES:
            errors.append(
                field_error("eventType", f"Event type must be one of: {', '.join(EVENT_TYPES)}", "INVALID_TYPE")
            )
    if not partial or "eventDate" in payload:
        _check_datetime(payload, "eventDate", errors, required=True)
    _check_datetime(payload, "nextDueDate", errors)

    note = payload.get("note")
    if note is not None and len(str(note)) > MAX_NOTE_LENGTH:
        errors.append(field_error("note", f"Note must be at most {MAX_NOTE_LENGTH} characters.", "TOO_LONG"))

    if payload.get("cost") not in (None, ""):
        cost = parse_amount(payload.get("cost"))
        if cost is None:
            errors.append(field_error("cost", "Cost must be a number.", "INVALID_AMOUNT"))
        elif cost < 0:
            errors.append(field_error("cost", "Cost cannot be negative.", "NEGATIVE"))
        elif cost > MAX_AMOUNT:
            errors.append(field_error("cost", "Cost must not exceed 1,000,000.", "TOO_LARGE"))

    category = payload.get("category")
    if category is not None and category not in CATEGORIES:
        errors.append(field_error("category", f"Category must be one of: {', '.join(CATEGORIES)}", "INVALID_CATEGORY"))

    event_payload = payload.get("payload")
    if event_payload is not None and not isinstance(event_payload, dict):
        errors.append(field_error("payload", "Payload must be a JSON object.", "INVALID_PAYLOAD"))

    return errors


def resolve_target(s: "Session", farm_id: int, target_id: int, target_type: str) -> "Animal":
    """
    The animal or lot an event points at, scoped to the farm.
    A targetType that disagrees with the row's kind is a client error.
    """
    from app.farmbook.modules.animals.models import Animal

    target = s.get(Animal, target_id)
    if target is None or target.farm_id != farm_id or target.deleted_at is not None:
        raise NotFoundError("Target animal or lot not found.", code="TARGET_NOT_FOUND")
    expected = TARGET_TYPE_FOR_KIND.get(target.type)
    if target_type != expected:
        raise ValidationError(
            f"Target type {target_type} does not match {target.tag_number} ({expected}).",
            code="TARGET_TYPE_MISMATCH",
            details=[field_error("targetType", f"Expected {expected}.", "TARGET_TYPE_MISMATCH")],
        )
    return target


def expense_category_for(event_type: str, explicit: str | None = None) -> str:
    if explicit in CATEGORIES:
        return explicit  # type: ignore[return-value]
    return EXPENSE_CATEGORY_BY_EVENT_TYPE.get(event_type, DEFAULT_EXPENSE_CATEGORY)


def expense_description(event: "Event", target: "Animal") -> str:
    label = event.event_type.replace("_", " ").capitalize()
    note = (event.note or "").strip()
    if note:
        return f"{label}: {note} ({target.tag_number})"[:255]
    return f"{label} ({target.tag_number})"


def serialize_event(event: "Event", target: "Animal | None" = None) -> dict:
    return {
        "id": event.id,
        "farmId": event.farm_id,
        "targetType": event.target_type,
        "targetId": event.target_id,
        "targetTag": target.tag_number if target is not None else None,
        "eventType": event.event_type,
        "eventDate": iso(event.event_date),
        "payload": event.payload,
        "note": event.note,
        "cost": money(event.cost) if event.cost is not None else None,
        "nextDueDate": iso(event.next_due_date),
        "attachmentUrl": event.attachment_url,
        "createdAt": iso(event.created_at),
        "updatedAt": iso(event.updated_at),
    }


def get_event(s: "Session", farm_id: int, event_id: int) -> "Event":
    from app.farmbook.modules.events.models import Event

    event = s.get(Event, event_id)
    if event is None or event.farm_id != farm_id or event.deleted_at is not None:
        raise NotFoundError("Event not found.", code="EVENT_NOT_FOUND")
    return event


def create_event(s: "Session", farm_id: int, payload: dict, user: "User") -> tuple["Event", "Animal"]:
    """Resolve and type-check the target, then add the event. Nothing is written on a mismatch."""
    from app.farmbook.modules.events.models import Event

    target = resolve_target(s, farm_id, parse_int(payload.get("targetId")), payload["targetType"])  # type: ignore[arg-type]

    now = utcnow()
    cost = parse_amount(payload.get("cost"))
    event = Event(
        farm_id=farm_id,
        target_type=payload["targetType"],
        target_id=target.id,
        event_type=payload["eventType"],
        event_date=parse_datetime(payload.get("eventDate")),
        payload=payload.get("payload"),
        note=clean_str(payload.get("note")),
        cost=cost,
        next_due_date=parse_datetime(payload.get("nextDueDate")),
        attachment_url=clean_str(payload.get("attachmentUrl")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(event)
    s.flush()

    record_event(
        s,
        actor=user,
        action="event.create",
        entity_type="Event",
        entity_id=str(event.id),
        farm_id=farm_id,
        metadata={"event_type": event.event_type, "target_id": target.id, "cost": money(cost) if cost else None},
    )
    return event, target


def append_expense_for_event(
    s: "Session", event: "Event", target: "Animal", user: "User", category: str | None = None
) -> "CashboxMovement | None":
    """
    Best-effort cashbox expense for a costed event.

    Runs after the event has been committed and commits on its own. A failure is
    rolled back and logged; the event stays as it is and None is returned.
    """
    if event.cost is None or event.cost <= Decimal("0"):
        return None
    event_id, farm_id = event.id, event.farm_id
    try:
        movement = add_cash_expense(
            s,
            farm_id,
            amount=event.cost,
            description=expense_description(event, target),
            category=expense_category_for(event.event_type, category),
            user=user,
            related_event_id=event_id,
        )
        s.commit()
    except Exception:
        s.rollback()
        logger.exception("Cashbox expense for event failed (event_id=%s farm_id=%s)", event_id, farm_id)
        return None
    return movement


def update_event(s: "Session", event: "Event", payload: dict, user: "User") -> tuple["Event", "Animal"]:
    target_id = parse_int(payload.get("targetId")) if "targetId" in payload else event.target_id
    target_type = payload.get("targetType", event.target_type)
    target = resolve_target(s, event.farm_id, target_id, target_type)  # type: ignore[arg-type]

    changes = {}

    def _set(attr: str, value) -> None:
        old = getattr(event, attr)
        if old != value:
            changes[attr] = {"old": old, "new": value}
            setattr(event, attr, value)

    _set("target_id", target.id)
    _set("target_type", target_type)
    if "eventType" in payload:
        _set("event_type", payload["eventType"])
    if "eventDate" in payload:
        _set("event_date", parse_datetime(payload.get("eventDate")))
    if "nextDueDate" in payload:
        _set("next_due_date", parse_datetime(payload.get("nextDueDate")))
    if "note" in payload:
        _set("note", clean_str(payload.get("note")))
    if "cost" in payload:
        _set("cost", parse_amount(payload.get("cost")))
    if "attachmentUrl" in payload:
        _set("attachment_url", clean_str(payload.get("attachmentUrl")))
    if "payload" in payload:
        _set("payload", payload.get("payload"))

    event.updated_at = utcnow()
    event.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="event.edit",
        entity_type="Event",
        entity_id=str(event.id),
        farm_id=event.farm_id,
        metadata={"changes": changes},
    )
    return event, target


def delete_event(s: "Session", event: "Event", user: "User") -> None:
    now = utcnow()
    event.deleted_at = now
    event.updated_at = now
    event.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="event.delete",
        entity_type="Event",
        entity_id=str(event.id),
        farm_id=event.farm_id,
        metadata={"event_type": event.event_type, "target_id": event.target_id},
    )


# ---------- Queries ----------


def _live_events(farm_id: int):
    from app.farmbook.modules.animals.models import Animal
    from app.farmbook.modules.events.models import Event

    return (
        select(Event, Animal)
        .join(Animal, Animal.id == Event.target_id)
        .where(Event.farm_id == farm_id, Event.deleted_at.is_(None), Animal.deleted_at.is_(None))
    )


def count_live_events(s: "Session", farm_id: int, *criteria) -> int:
    """Count events that are not deleted and whose target animal is not deleted either."""
    from app.farmbook.modules.animals.models import Animal
    from app.farmbook.modules.events.models import Event

    q = (
        select(func.count(Event.id))
        .select_from(Event)
        .join(Animal, Animal.id == Event.target_id)
        .where(Event.farm_id == farm_id, Event.deleted_at.is_(None), Animal.deleted_at.is_(None), *criteria)
    )
    return int(s.execute(q).scalar_one())


def parse_event_filters(args) -> dict:
    """Query-string filters for the event list; malformed values raise ValidationError."""
    errors: list[dict] = []
    filters: dict = {}

    if args.get("targetId"):
        filters["target_id"] = parse_int(args.get("targetId"))
        if filters["target_id"] is None:
            errors.append(field_error("targetId", "Must be an integer.", "INVALID_NUMBER"))

    raw_types = [t.strip() for t in (args.get("eventType") or "").split(",") if t.strip()]
    bad = [t for t in raw_types if t not in EVENT_TYPES]
    if bad:
        errors.append(field_error("eventType", f"Unknown event type: {', '.join(bad)}", "INVALID_TYPE"))
    filters["event_types"] = raw_types

    for key, name in (
        ("startDate", "start"),
        ("endDate", "end"),
        ("nextDueBefore", "next_due_before"),
        ("nextDueAfter", "next_due_after"),
    ):
        raw = args.get(key)
        if not raw:
            continue
        try:
            filters[name] = parse_datetime(raw)
        except ValueError:
            errors.append(field_error(key, "Must be an ISO date or timestamp.", "INVALID_DATE"))

    filters["limit"] = min(max(parse_int(args.get("limit"), DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    filters["offset"] = max(parse_int(args.get("offset"), 0), 0)

    if errors:
        raise ValidationError("Invalid filters.", details=errors)
    return filters


def list_events(s: "Session", farm_id: int, filters: dict) -> list[tuple["Event", "Animal"]]:
    from app.farmbook.modules.events.models import Event

    q = _live_events(farm_id)
    if filters.get("target_id") is not None:
        q = q.where(Event.target_id == filters["target_id"])
    if filters.get("event_types"):
        q = q.where(Event.event_type.in_(filters["event_types"]))
    if filters.get("start"):
        q = q.where(Event.event_date >= filters["start"])
    if filters.get("end"):
        q = q.where(Event.event_date <= filters["end"])
    if filters.get("next_due_before"):
        q = q.where(Event.next_due_date <= filters["next_due_before"])
    if filters.get("next_due_after"):
        q = q.where(Event.next_due_date >= filters["next_due_after"])
    q = q.order_by(Event.event_date.desc(), Event.id.desc())
    q = q.limit(filters.get("limit", DEFAULT_PAGE_SIZE)).offset(filters.get("offset", 0))
    return [(e, a) for e, a in s.execute(q).all()]


def upcoming_events(s: "Session", farm_id: int, days: int = 30, now: datetime | None = None) -> dict:
    """Events with a next-due date inside the window, split at URGENT_DAYS."""
    from app.farmbook.modules.events.models import Event

    now = now or utcnow()
    horizon = now + timedelta(days=days)
    urgent_cutoff = now + timedelta(days=URGENT_DAYS)
    q = (
        _live_events(farm_id)
        .where(Event.next_due_date.is_not(None), Event.next_due_date >= now, Event.next_due_date <= horizon)
        .order_by(Event.next_due_date.asc())
    )
    urgent, upcoming = [], []
    for event, target in s.execute(q).all():
        row = serialize_event(event, target)
        row["daysUntilDue"] = (event.next_due_date - now).days
        (urgent if event.next_due_date <= urgent_cutoff else upcoming).append(row)
    return {"days": days, "urgent": urgent, "upcoming": upcoming, "total": len(urgent) + len(upcoming)}


def month_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or utcnow()
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = (start + timedelta(days=32)).replace(day=1)
    return start, end


def event_stats(s: "Session", farm_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Counts by event type in [start, end). Defaults to the current month."""
    from app.farmbook.modules.animals.models import Animal
    from app.farmbook.modules.events.models import Event

    default_start, default_end = month_bounds()
    start = start or default_start
    end = end or default_end
    rows = s.execute(
        select(Event.event_type, func.count(Event.id))
        .select_from(Event)
        .join(Animal, Animal.id == Event.target_id)
        .where(
            Event.farm_id == farm_id,
            Event.deleted_at.is_(None),
            Animal.deleted_at.is_(None),
            Event.event_date >= start,
            Event.event_date < end,
        )
        .group_by(Event.event_type)
    ).all()
    by_type = {t: 0 for t in EVENT_TYPES}
    for event_type, count in rows:
        by_type[event_type] = int(count)
    return {
        "period": {"start": iso(start), "end": iso(end)},
        "totalEvents": sum(by_type.values()),
        "byType": by_type,
    }


def timeline(s: "Session", farm_id: int, target_id: int) -> list[tuple["Event", "Animal"]]:
    from app.farmbook.modules.events.models import Event

    q = _live_events(farm_id).where(Event.target_id == target_id).order_by(Event.event_date.desc(), Event.id.desc())
    return [(e, a) for e, a in s.execute(q).all()]
