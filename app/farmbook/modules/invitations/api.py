from __future__ import annotations

from flask import Blueprint, current_app, g

from app.farmbook.api import json_body, ok
from app.farmbook.db import db_session
from app.farmbook.errors import BusinessLogicError, raise_for_errors
from app.farmbook.modules.farms.service import get_farm, serialize_farm, serialize_member
from app.farmbook.modules.invitations.service import (
    accept_invitation,
    create_invitation,
    expire_if_due,
    get_invitation_by_token,
    invitation_link,
    invitation_preview,
    list_invitations,
    serialize_invitation,
    validate_invitation_payload,
)
from app.farmbook.rbac import MANAGE_MEMBERS, current_user, require_farm_access
from app.farmbook.session import create_session

bp = Blueprint("invitations", __name__)


@bp.get("/farms/<int:farm_id>/invitations")
@require_farm_access(MANAGE_MEMBERS)
def invitations_list(farm_id: int):
    s = db_session()
    return ok([serialize_invitation(inv, include_token=True) for inv in list_invitations(s, farm_id)])


@bp.post("/farms/<int:farm_id>/invitations")
@require_farm_access(MANAGE_MEMBERS)
def invitations_create(farm_id: int):
    s = db_session()
    u = current_user()
    farm = get_farm(s, farm_id)
    payload = json_body()
    raise_for_errors(validate_invitation_payload(payload))

    inv = create_invitation(s, farm, payload, u, ttl_days=current_app.config["INVITATION_TTL_DAYS"])
    s.commit()

    data = {
        "invitation": serialize_invitation(inv, include_token=True),
        "invitationLink": invitation_link(current_app.config["APP_BASE_URL"], inv.token),
    }
    return ok(data, message="Invitation sent.", status=201)


@bp.get("/invitations/<token>")
def invitation_detail(token: str):
    s = db_session()
    inv = get_invitation_by_token(s, token)
    if expire_if_due(s, inv):
        s.commit()
    return ok(invitation_preview(s, inv))


@bp.post("/invitations/<token>")
def invitation_accept(token: str):
    s = db_session()
    inv = get_invitation_by_token(s, token)
    if expire_if_due(s, inv):
        # The expiry sticks even though the request fails.
        s.commit()
        raise BusinessLogicError("This invitation has expired.", code="INVITATION_EXPIRED")

    payload = json_body()
    user, member = accept_invitation(s, inv, payload, getattr(g, "current_user", None))
    s.commit()

    create_session(user.id, member.farm_id, member.role)
    data = {
        "farm": serialize_farm(get_farm(s, member.farm_id), member),
        "member": serialize_member(member),
    }
    return ok(data, message="Invitation accepted.")
