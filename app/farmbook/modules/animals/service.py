from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.farmbook.audit import record_event
from app.farmbook.errors import ConflictError, NotFoundError, field_error
from app.farmbook.utils import clean_str, iso, parse_date, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.farmbook.models import User
    from app.farmbook.modules.animals.models import Animal


INDIVIDUAL = "INDIVIDUAL"
LOT = "LOT"
ANIMAL_TYPES = (INDIVIDUAL, LOT)
SEXES = ("MALE", "FEMALE")
ANIMAL_STATUSES = ("ACTIVE", "SOLD", "DEAD")

TAG_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_TAG_LENGTH = 20
MAX_SPECIES_LENGTH = 100

# payload key -> model attribute
_FIELDS = {
    "tagNumber": "tag_number",
    "type": "type",
    "species": "species",
    "sex": "sex",
    "birthDate": "birth_date",
    "estimatedAge": "estimated_age",
    "lotCount": "lot_count",
    "status": "status",
    "photoUrl": "photo_url",
    "notes": "notes",
}


def _effective(payload: dict, animal: "Animal | None", key: str):
    if key in payload:
        return payload.get(key)
    if animal is None:
        return None
    value = getattr(animal, _FIELDS[key])
    return iso(value) if isinstance(value, date) else value


def validate_animal_payload(payload: dict, animal: "Animal | None" = None, s: "Session | None" = None) -> list[dict]:
    """
    Validate an animal create payload, or an update merged over `animal`.
    Returns a list of field errors.
    """
    errors = []

    tag = clean_str(_effective(payload, animal, "tagNumber")) or ""
    if not tag:
        errors.append(field_error("tagNumber", "Tag number is required.", "REQUIRED"))
    elif len(tag) > MAX_TAG_LENGTH:
        errors.append(field_error("tagNumber", f"Tag number must be at most {MAX_TAG_LENGTH} characters.", "TOO_LONG"))
    elif not TAG_RE.match(tag):
        errors.append(
            field_error("tagNumber", "Tag number may only contain letters, digits, '-' and '_'.", "INVALID_FORMAT")
        )

    animal_type = _effective(payload, animal, "type") or INDIVIDUAL
    if animal_type not in ANIMAL_TYPES:
        errors.append(field_error("type", f"Type must be one of: {', '.join(ANIMAL_TYPES)}", "INVALID_TYPE"))

    species = clean_str(_effective(payload, animal, "species")) or ""
    if not species:
        errors.append(field_error("species", "Species is required.", "REQUIRED"))
    elif len(species) > MAX_SPECIES_LENGTH:
        errors.append(field_error("species", f"Species must be at most {MAX_SPECIES_LENGTH} characters.", "TOO_LONG"))

    status = _effective(payload, animal, "status")
    if status is not None and status not in ANIMAL_STATUSES:
        errors.append(field_error("status", f"Status must be one of: {', '.join(ANIMAL_STATUSES)}", "INVALID_STATUS"))

    sex = _effective(payload, animal, "sex")
    if sex is not None:
        if sex not in SEXES:
            errors.append(field_error("sex", f"Sex must be one of: {', '.join(SEXES)}", "INVALID_SEX"))
        elif animal_type == LOT:
            errors.append(field_error("sex", "A lot cannot have a sex.", "LOT_NO_SEX"))

    raw_lot_count = _effective(payload, animal, "lotCount")
    lot_count = parse_int(raw_lot_count)
    if animal_type == LOT:
        if lot_count is None:
            errors.append(field_error("lotCount", "Lot count is required for a lot.", "LOT_COUNT_REQUIRED"))
        elif lot_count < 1:
            errors.append(field_error("lotCount", "Lot count must be at least 1.", "TOO_SMALL"))
    elif raw_lot_count not in (None, ""):
        errors.append(
            field_error("lotCount", "An individual animal cannot have a lot count.", "INDIVIDUAL_NO_LOT_COUNT")
        )

    raw_birth = _effective(payload, animal, "birthDate")
    if raw_birth:
        try:
            birth_date = parse_date(raw_birth)
        except ValueError:
            errors.append(field_error("birthDate", "Birth date must be an ISO date.", "INVALID_DATE"))
        else:
            if birth_date and birth_date > date.today():
                errors.append(field_error("birthDate", "Birth date cannot be in the future.", "FUTURE_BIRTH_DATE"))

    raw_age = _effective(payload, animal, "estimatedAge")
    if raw_age not in (None, ""):
        age = parse_int(raw_age)
        if age is None or age < 0:
            errors.append(field_error("estimatedAge", "Estimated age must be a non-negative integer.", "INVALID_AGE"))

    type_changed = animal is not None and "type" in payload and payload.get("type") != animal.type
    if type_changed and s is not None and has_events(s, animal):
        errors.append(field_error("type", "The type cannot change once events are recorded.", "TYPE_LOCKED"))

    return errors


def has_events(s: "Session", animal: "Animal") -> bool:
    from app.farmbook.modules.events.models import Event

    stmt = select(Event.id).where(Event.farm_id == animal.farm_id, Event.target_id == animal.id).limit(1)
    return s.execute(stmt).first() is not None


def serialize_animal(animal: "Animal") -> dict:
    return {
        "id": animal.id,
        "farmId": animal.farm_id,
        "tagNumber": animal.tag_number,
        "type": animal.type,
        "species": animal.species,
        "sex": animal.sex,
        "birthDate": iso(animal.birth_date),
        "estimatedAge": animal.estimated_age,
        "lotCount": animal.lot_count,
        "status": animal.status,
        "photoUrl": animal.photo_url,
        "notes": animal.notes,
        "createdAt": iso(animal.created_at),
        "updatedAt": iso(animal.updated_at),
    }


def get_animal(s: "Session", farm_id: int, animal_id: int) -> "Animal":
    from app.farmbook.modules.animals.models import Animal

    animal = s.get(Animal, animal_id)
    if animal is None or animal.farm_id != farm_id or animal.deleted_at is not None:
        raise NotFoundError("Animal not found.", code="ANIMAL_NOT_FOUND")
    return animal


def list_animals(s: "Session", farm_id: int, filters: dict) -> list["Animal"]:
    from app.farmbook.modules.animals.models import Animal

    q = select(Animal).where(Animal.farm_id == farm_id, Animal.deleted_at.is_(None))
    if filters.get("species"):
        q = q.where(Animal.species == filters["species"])
    if filters.get("type"):
        q = q.where(Animal.type == filters["type"])
    if filters.get("status"):
        q = q.where(Animal.status == filters["status"])
    if filters.get("sex"):
        q = q.where(Animal.sex == filters["sex"])
    if filters.get("tag"):
        q = q.where(Animal.tag_number.ilike(f"%{filters['tag']}%"))
    return list(s.execute(q.order_by(Animal.created_at.desc(), Animal.id.desc())).scalars())


def _ensure_unique_tag(s: "Session", farm_id: int, tag: str, exclude_id: int | None = None) -> None:
    from app.farmbook.modules.animals.models import Animal

    q = select(Animal.id).where(Animal.farm_id == farm_id, Animal.tag_number == tag)
    if exclude_id is not None:
        q = q.where(Animal.id != exclude_id)
    if s.execute(q).first() is not None:
        raise ConflictError(f"Tag number {tag} is already used on this farm.")


def _apply(animal: "Animal", payload: dict) -> dict:
    changes = {}
    for key, attr in _FIELDS.items():
        if key not in payload:
            continue
        raw = payload.get(key)
        if attr == "birth_date":
            value = parse_date(raw)
        elif attr in ("estimated_age", "lot_count"):
            value = parse_int(raw)
        else:
            value = clean_str(raw)
        if attr == "status" and value is None:
            continue
        old = getattr(animal, attr)
        if old != value:
            changes[attr] = {"old": old, "new": value}
            setattr(animal, attr, value)
    if animal.type == INDIVIDUAL:
        animal.lot_count = None
    else:
        animal.sex = None
    return changes


def create_animal(s: "Session", farm_id: int, payload: dict, user: "User") -> "Animal":
    from app.farmbook.modules.animals.models import Animal

    tag = clean_str(payload.get("tagNumber")) or ""
    _ensure_unique_tag(s, farm_id, tag)

    now = utcnow()
    animal = Animal(
        farm_id=farm_id,
        type=INDIVIDUAL,
        status="ACTIVE",
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    _apply(animal, payload)
    s.add(animal)
    s.flush()

    record_event(
        s,
        actor=user,
        action="animal.create",
        entity_type="Animal",
        entity_id=str(animal.id),
        farm_id=farm_id,
        metadata={"tag_number": animal.tag_number, "type": animal.type, "species": animal.species},
    )
    return animal


def update_animal(s: "Session", animal: "Animal", payload: dict, user: "User") -> "Animal":
    if "tagNumber" in payload:
        tag = clean_str(payload.get("tagNumber")) or ""
        if tag != animal.tag_number:
            _ensure_unique_tag(s, animal.farm_id, tag, exclude_id=animal.id)

    changes = _apply(animal, payload)
    animal.updated_at = utcnow()
    animal.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="animal.edit",
        entity_type="Animal",
        entity_id=str(animal.id),
        farm_id=animal.farm_id,
        metadata={"tag_number": animal.tag_number, "changes": changes},
    )
    return animal


def delete_animal(s: "Session", animal: "Animal", user: "User") -> None:
    now = utcnow()
    animal.deleted_at = now
    animal.updated_at = now
    animal.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="animal.delete",
        entity_type="Animal",
        entity_id=str(animal.id),
        farm_id=animal.farm_id,
        metadata={"tag_number": animal.tag_number},
    )
