from __future__ import annotations

from flask import Blueprint, g

from app.farmbook.api import json_body, ok
from app.farmbook.db import db_session
from app.farmbook.errors import BusinessLogicError, raise_for_errors
from app.farmbook.modules.farms.service import (
    add_member,
    create_farm,
    delete_farm,
    find_member,
    get_farm,
    get_member,
    list_members,
    list_user_farms,
    remove_member,
    serialize_farm,
    serialize_member,
    update_farm,
    update_member,
    validate_farm_payload,
    validate_member_payload,
)
from app.farmbook.rbac import MANAGE_MEMBERS, READ, current_user, require_auth, require_farm_access
from app.farmbook.session import create_session

bp = Blueprint("farms", __name__)


# ---------- Farms ----------
@bp.get("")
@require_auth
def farms_list():
    s = db_session()
    u = current_user()
    return ok([serialize_farm(farm, member) for farm, member in list_user_farms(s, u.id)])


@bp.post("")
@require_auth
def farms_create():
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_farm_payload(payload))

    farm, member = create_farm(s, payload, u)
    s.commit()

    # New farm becomes the active one.
    create_session(u.id, farm.id, member.role)
    return ok(serialize_farm(farm, member), message="Farm created.", status=201)


@bp.get("/current")
@require_auth
def farm_current():
    s = db_session()
    u = current_user()
    farm = getattr(g, "current_farm", None)
    if farm is None:
        raise BusinessLogicError("No active farm selected.", code="NO_ACTIVE_FARM")
    return ok(serialize_farm(farm, find_member(s, farm.id, u.id)))


@bp.get("/<int:farm_id>")
@require_farm_access(READ)
def farm_detail(farm_id: int):
    s = db_session()
    farm = get_farm(s, farm_id)
    return ok(serialize_farm(farm, g.farm_member))


@bp.put("/<int:farm_id>")
@require_farm_access(MANAGE_MEMBERS)
def farm_update(farm_id: int):
    s = db_session()
    u = current_user()
    farm = get_farm(s, farm_id)
    payload = json_body()
    raise_for_errors(validate_farm_payload(payload, partial=True))

    update_farm(s, farm, payload, u)
    s.commit()
    return ok(serialize_farm(farm, g.farm_member), message="Farm updated.")


@bp.delete("/<int:farm_id>")
@require_farm_access(MANAGE_MEMBERS)
def farm_delete(farm_id: int):
    s = db_session()
    u = current_user()
    farm = get_farm(s, farm_id)
    delete_farm(s, farm, u)
    s.commit()
    return ok(message="Farm deleted.")


# ---------- Members ----------
@bp.get("/<int:farm_id>/members")
@require_farm_access(READ)
def members_list(farm_id: int):
    s = db_session()
    return ok([serialize_member(m) for m in list_members(s, farm_id)])


@bp.post("/<int:farm_id>/members")
@require_farm_access(MANAGE_MEMBERS)
def members_add(farm_id: int):
    s = db_session()
    u = current_user()
    farm = get_farm(s, farm_id)
    payload = json_body()
    raise_for_errors(validate_member_payload(payload, require_email=True))

    member = add_member(s, farm, payload, u)
    s.commit()
    return ok(serialize_member(member), message="Member added.", status=201)


@bp.get("/<int:farm_id>/members/<int:member_id>")
@require_farm_access(READ)
def member_detail(farm_id: int, member_id: int):
    s = db_session()
    return ok(serialize_member(get_member(s, farm_id, member_id)))


@bp.patch("/<int:farm_id>/members/<int:member_id>")
@require_farm_access(MANAGE_MEMBERS)
def member_update(farm_id: int, member_id: int):
    s = db_session()
    u = current_user()
    member = get_member(s, farm_id, member_id)
    payload = json_body()
    raise_for_errors(validate_member_payload(payload))

    update_member(s, member, payload, u)
    s.commit()
    return ok(serialize_member(member), message="Member updated.")


@bp.delete("/<int:farm_id>/members/<int:member_id>")
@require_farm_access(MANAGE_MEMBERS, or_self="member_id")
def member_remove(farm_id: int, member_id: int):
    s = db_session()
    u = current_user()
    member = get_member(s, farm_id, member_id)
    remove_member(s, member, u)
    s.commit()
    return ok(message="Member removed.")
