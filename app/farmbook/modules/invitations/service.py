from __future__ import annotations

import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from app.farmbook.audit import record_event
from app.farmbook.errors import AuthenticationError, BusinessLogicError, NotFoundError, field_error, raise_for_errors
from app.farmbook.rbac import ACTIVE, ROLES
from app.farmbook.utils import clean_str, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.farmbook.models import User
    from app.farmbook.modules.farms.models import Farm, FarmMember
    from app.farmbook.modules.invitations.models import FarmInvitation


PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
EXPIRED = "EXPIRED"
INVITATION_STATUSES = (PENDING, ACCEPTED, EXPIRED)

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6


def validate_invitation_payload(payload: dict) -> list[dict]:
    errors = []
    email = clean_str(payload.get("email")) or ""
    if not email or "@" not in email:
        errors.append(field_error("email", "A valid email is required.", "INVALID_EMAIL"))
    role = payload.get("role")
    if role not in ROLES:
        errors.append(field_error("role", f"Role must be one of: {', '.join(ROLES)}", "INVALID_ROLE"))
    return errors


def is_past_expiry(inv: "FarmInvitation") -> bool:
    return inv.expires_at <= utcnow()


def effective_status(inv: "FarmInvitation") -> str:
    """Status as a reader should see it: an overdue PENDING invitation reads as EXPIRED."""
    if inv.status == PENDING and is_past_expiry(inv):
        return EXPIRED
    return inv.status


def invitation_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/invitations/{token}"


def serialize_invitation(inv: "FarmInvitation", *, include_token: bool = False) -> dict:
    d = {
        "id": inv.id,
        "farmId": inv.farm_id,
        "farmName": inv.farm.name if inv.farm else None,
        "email": inv.email,
        "role": inv.role,
        "status": effective_status(inv),
        "expiresAt": iso(inv.expires_at),
        "acceptedAt": iso(inv.accepted_at),
        "createdAt": iso(inv.created_at),
    }
    if include_token:
        d["token"] = inv.token
    return d


def invitation_preview(s: "Session", inv: "FarmInvitation") -> dict:
    """Public view of an invitation, with what the accept screen needs to pick a form."""
    from app.farmbook.models import User

    d = serialize_invitation(inv)
    existing = s.execute(select(User.id).where(User.email == inv.email)).first()
    inviter = s.get(User, inv.invited_by_user_id) if inv.invited_by_user_id else None
    d["userExists"] = existing is not None
    d["inviterName"] = inviter.name if inviter else None
    return d


def list_invitations(s: "Session", farm_id: int) -> list["FarmInvitation"]:
    from app.farmbook.modules.invitations.models import FarmInvitation

    stmt = select(FarmInvitation).where(FarmInvitation.farm_id == farm_id).order_by(FarmInvitation.created_at.desc())
    return list(s.execute(stmt).scalars())


def get_invitation_by_token(s: "Session", token: str) -> "FarmInvitation":
    from app.farmbook.modules.invitations.models import FarmInvitation

    inv = s.execute(select(FarmInvitation).where(FarmInvitation.token == token)).scalar_one_or_none()
    if inv is None:
        raise NotFoundError("Invitation not found.", code="INVITATION_NOT_FOUND")
    return inv


def create_invitation(s: "Session", farm: "Farm", payload: dict, actor: "User", *, ttl_days: int = 7) -> "FarmInvitation":
    from app.farmbook.models import User
    from app.farmbook.modules.farms.models import FarmMember
    from app.farmbook.modules.invitations.models import FarmInvitation

    email = (clean_str(payload.get("email")) or "").lower()

    existing_member = s.execute(
        select(FarmMember)
        .join(User, User.id == FarmMember.user_id)
        .where(FarmMember.farm_id == farm.id, User.email == email, FarmMember.status == ACTIVE)
    ).scalar_one_or_none()
    if existing_member is not None:
        raise BusinessLogicError("This user is already a member of the farm.", code="ALREADY_MEMBER")

    pending = s.execute(
        select(FarmInvitation).where(
            FarmInvitation.farm_id == farm.id,
            FarmInvitation.email == email,
            FarmInvitation.status == PENDING,
        )
    ).scalars()
    for inv in pending:
        if not is_past_expiry(inv):
            raise BusinessLogicError("An invitation is already pending for this email.", code="INVITATION_PENDING")
        inv.status = EXPIRED

    now = utcnow()
    inv = FarmInvitation(
        farm_id=farm.id,
        email=email,
        role=payload["role"],
        token=secrets.token_urlsafe(32),
        status=PENDING,
        expires_at=now + timedelta(days=ttl_days),
        created_at=now,
        invited_by_user_id=actor.id,
    )
    s.add(inv)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="invitation.create",
        entity_type="FarmInvitation",
        entity_id=str(inv.id),
        farm_id=farm.id,
        metadata={"email": email, "role": inv.role},
    )
    return inv


def expire_if_due(s: "Session", inv: "FarmInvitation") -> bool:
    """PENDING -> EXPIRED once the expiry has passed. Returns True when it transitioned."""
    if inv.status != PENDING or not is_past_expiry(inv):
        return False
    inv.status = EXPIRED
    record_event(
        s,
        actor=None,
        action="invitation.expire",
        entity_type="FarmInvitation",
        entity_id=str(inv.id),
        farm_id=inv.farm_id,
        metadata={"email": inv.email},
    )
    return True


def _resolve_invited_user(s: "Session", inv: "FarmInvitation", payload: dict, session_user: "User | None") -> "User":
    from app.farmbook.models import User

    if session_user is not None:
        if session_user.email.lower() != inv.email.lower():
            raise BusinessLogicError(
                "This invitation was sent to a different email address.", code="INVITATION_EMAIL_MISMATCH"
            )
        return session_user

    user = s.execute(select(User).where(User.email == inv.email)).scalar_one_or_none()
    raw_password = payload.get("password")
    password = raw_password if isinstance(raw_password, str) else None
    if user is not None:
        # Existing account: the caller proves ownership with its password.
        if not user.is_active or not password or not check_password_hash(user.password_hash, password):
            raise AuthenticationError("Invalid email or password.", code="INVALID_CREDENTIALS")
        return user

    name = clean_str(payload.get("name")) or ""
    errors = []
    if len(name) < MIN_NAME_LENGTH:
        errors.append(field_error("name", f"Name must be at least {MIN_NAME_LENGTH} characters.", "TOO_SHORT"))
    if raw_password is not None and password is None:
        errors.append(field_error("password", "Password must be a string.", "INVALID_TYPE"))
    elif password is None:
        errors.append(field_error("password", "A password is required.", "REQUIRED"))
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(
            field_error("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", "TOO_SHORT")
        )
    raise_for_errors(errors)

    now = utcnow()
    user = User(
        email=inv.email,
        name=name,
        password_hash=generate_password_hash(password),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    return user


def accept_invitation(
    s: "Session", inv: "FarmInvitation", payload: dict, session_user: "User | None"
) -> tuple["User", "FarmMember"]:
    """
    Turn a PENDING invitation into a membership.
    Callers run expire_if_due (and commit) first; every write here lands in one transaction.
    """
    from app.farmbook.modules.farms.models import FarmMember

    if inv.status != PENDING:
        raise BusinessLogicError("This invitation is no longer valid.", code="INVITATION_INVALID")
    if inv.farm is None or inv.farm.deleted_at is not None:
        raise NotFoundError("Farm not found.", code="FARM_NOT_FOUND")

    user = _resolve_invited_user(s, inv, payload, session_user)

    now = utcnow()
    member = s.execute(
        select(FarmMember).where(FarmMember.farm_id == inv.farm_id, FarmMember.user_id == user.id)
    ).scalar_one_or_none()
    if member is not None and member.status == ACTIVE:
        raise BusinessLogicError("This user is already a member of the farm.", code="ALREADY_MEMBER")
    if member is not None:
        member.role = inv.role
        member.status = ACTIVE
        member.updated_at = now
    else:
        member = FarmMember(farm_id=inv.farm_id, user_id=user.id, role=inv.role, status=ACTIVE, joined_at=now, updated_at=now)
        s.add(member)
    s.flush()

    inv.status = ACCEPTED
    inv.accepted_at = now

    record_event(
        s,
        actor=user,
        action="invitation.accept",
        entity_type="FarmInvitation",
        entity_id=str(inv.id),
        farm_id=inv.farm_id,
        metadata={"email": inv.email, "role": inv.role, "member_id": member.id},
    )
    return user, member
