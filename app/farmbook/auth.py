from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from app.farmbook.api import json_body, ok
from app.farmbook.audit import record_event
from app.farmbook.db import db_session
from app.farmbook.errors import AuthenticationError, AuthorizationError, BusinessLogicError, field_error, raise_for_errors
from app.farmbook.models import User
from app.farmbook.rbac import get_active_membership, get_permissions, require_auth
from app.farmbook.session import create_session, delete_session, update_session, verify_session
from app.farmbook.utils import clean_str, iso, parse_int, utcnow

bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2


def load_current_user() -> None:
    """
    Refreshes the session cookie and loads g.current_user / g.current_farm / g.current_role.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.current_farm = None
    g.current_role = None

    if update_session(request) is None:
        return
    claims = verify_session()

    try:
        s = db_session()
        user = s.get(User, claims.user_id)
        if not user or not user.is_active:
            delete_session()
            return
        g.current_user = user
        if claims.farm_id is not None:
            member = get_active_membership(s, user.id, claims.farm_id)
            if member is not None:
                g.current_farm = member.farm
                g.current_role = member.role
    except SQLAlchemyError as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        delete_session()
        g.current_user = None


def serialize_user(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name, "createdAt": iso(user.created_at)}


def _session_payload(user: User, farm, role: str | None) -> dict:
    from app.farmbook.modules.farms.service import serialize_farm

    return {
        "user": serialize_user(user),
        "farm": serialize_farm(farm) if farm is not None else None,
        "role": role,
        "permissions": get_permissions(role).to_dict(),
    }


def validate_registration_payload(payload: dict) -> list[dict]:
    errors = []
    email = clean_str(payload.get("email")) or ""
    if not email or "@" not in email:
        errors.append(field_error("email", "A valid email is required.", "INVALID_EMAIL"))
    password = payload.get("password")
    if password is not None and not isinstance(password, str):
        errors.append(field_error("password", "Password must be a string.", "INVALID_TYPE"))
    elif len(password or "") < MIN_PASSWORD_LENGTH:
        errors.append(field_error("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", "TOO_SHORT"))
    if len(clean_str(payload.get("name")) or "") < MIN_NAME_LENGTH:
        errors.append(field_error("name", f"Name must be at least {MIN_NAME_LENGTH} characters.", "TOO_SHORT"))
    return errors


@bp.post("/register")
def register():
    s = db_session()
    payload = json_body()
    raise_for_errors(validate_registration_payload(payload))

    email = clean_str(payload.get("email")).lower()  # type: ignore[union-attr]
    if s.execute(select(User.id).where(User.email == email)).first() is not None:
        raise BusinessLogicError("An account with this email already exists.", code="EMAIL_TAKEN")

    now = utcnow()
    user = User(
        email=email,
        name=clean_str(payload.get("name")),
        password_hash=generate_password_hash(payload["password"]),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()

    create_session(user.id)
    return ok(_session_payload(user, None, None), message="Account created.", status=201)


@bp.post("/login")
def login():
    from app.farmbook.modules.farms.service import first_active_membership

    s = db_session()
    payload = json_body()
    email = (clean_str(payload.get("email")) or "").lower()
    password = payload.get("password")
    if not isinstance(password, str):
        password = ""

    try:
        user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            raise AuthenticationError("Invalid email or password.", code="INVALID_CREDENTIALS")

        member = first_active_membership(s, user.id)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Login crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise

    if member is not None:
        create_session(user.id, member.farm_id, member.role)
        return ok(_session_payload(user, member.farm, member.role), message="Logged in.")
    create_session(user.id)
    return ok(_session_payload(user, None, None), message="Logged in.")


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    delete_session()
    return ok(message="Logged out.")


@bp.get("/session")
@require_auth
def session_get():
    return ok(_session_payload(g.current_user, g.current_farm, g.current_role))


@bp.post("/session/farm")
@require_auth
def session_switch_farm():
    s = db_session()
    payload = json_body()
    farm_id = parse_int(payload.get("farmId"))
    if farm_id is None:
        raise_for_errors([field_error("farmId", "Farm is required.", "REQUIRED")])
    member = get_active_membership(s, g.current_user.id, farm_id)
    if member is None:
        raise AuthorizationError("You are not a member of this farm.")

    create_session(g.current_user.id, member.farm_id, member.role)
    return ok(_session_payload(g.current_user, member.farm, member.role), message="Farm switched.")
