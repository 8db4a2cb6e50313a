from __future__ import annotations

from flask import Blueprint, request

from app.farmbook.api import json_body, ok
from app.farmbook.db import db_session
from app.farmbook.errors import raise_for_errors
from app.farmbook.modules.animals.service import (
    create_animal,
    delete_animal,
    get_animal,
    list_animals,
    serialize_animal,
    update_animal,
    validate_animal_payload,
)
from app.farmbook.rbac import CREATE, DELETE, READ, UPDATE, current_user, require_farm_access

bp = Blueprint("animals", __name__)


@bp.get("/<int:farm_id>/animals")
@require_farm_access(READ)
def animals_list(farm_id: int):
    s = db_session()
    filters = {k: (request.args.get(k) or "").strip() for k in ("species", "type", "status", "sex", "tag")}
    return ok([serialize_animal(a) for a in list_animals(s, farm_id, filters)])


@bp.post("/<int:farm_id>/animals")
@require_farm_access(CREATE)
def animals_create(farm_id: int):
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_animal_payload(payload))

    animal = create_animal(s, farm_id, payload, u)
    s.commit()
    return ok(serialize_animal(animal), message="Animal created.", status=201)


@bp.get("/<int:farm_id>/animals/<int:animal_id>")
@require_farm_access(READ)
def animal_detail(farm_id: int, animal_id: int):
    s = db_session()
    return ok(serialize_animal(get_animal(s, farm_id, animal_id)))


@bp.put("/<int:farm_id>/animals/<int:animal_id>")
@require_farm_access(UPDATE)
def animal_update(farm_id: int, animal_id: int):
    s = db_session()
    u = current_user()
    animal = get_animal(s, farm_id, animal_id)
    payload = json_body()
    raise_for_errors(validate_animal_payload(payload, animal, s))

    update_animal(s, animal, payload, u)
    s.commit()
    return ok(serialize_animal(animal), message="Animal updated.")


@bp.delete("/<int:farm_id>/animals/<int:animal_id>")
@require_farm_access(DELETE)
def animal_delete(farm_id: int, animal_id: int):
    s = db_session()
    u = current_user()
    animal = get_animal(s, farm_id, animal_id)
    delete_animal(s, animal, u)
    s.commit()
    return ok(message="Animal deleted.")
