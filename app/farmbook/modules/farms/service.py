from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.farmbook.audit import record_event
from app.farmbook.errors import BusinessLogicError, NotFoundError, field_error
from app.farmbook.rbac import ACTIVE, MEMBER_STATUSES, OWNER, ROLES, get_permissions
from app.farmbook.utils import clean_str, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.farmbook.models import User
    from app.farmbook.modules.farms.models import Farm, FarmMember


DEFAULT_CURRENCY = "TND"
DEFAULT_TIMEZONE = "Africa/Tunis"


def validate_farm_payload(payload: dict, *, partial: bool = False) -> list[dict]:
    """Validate farm create/update payload. Returns a list of field errors."""
    errors = []
    if not partial or "name" in payload:
        name = clean_str(payload.get("name")) or ""
        if not name:
            errors.append(field_error("name", "Farm name is required.", "REQUIRED"))
        elif len(name) > 100:
            errors.append(field_error("name", "Farm name must be at most 100 characters.", "TOO_LONG"))
    currency = payload.get("currency")
    if currency is not None:
        currency = clean_str(currency) or ""
        if len(currency) != 3 or not currency.isalpha():
            errors.append(field_error("currency", "Currency must be a 3-letter code.", "INVALID_CURRENCY"))
    timezone_name = payload.get("timezone")
    if timezone_name is not None and not clean_str(timezone_name):
        errors.append(field_error("timezone", "Timezone must not be empty.", "REQUIRED"))
    return errors


def serialize_farm(farm: "Farm", member: "FarmMember | None" = None) -> dict:
    d = {
        "id": farm.id,
        "name": farm.name,
        "currency": farm.currency,
        "timezone": farm.timezone,
        "createdAt": iso(farm.created_at),
        "updatedAt": iso(farm.updated_at),
    }
    if member is not None:
        d["role"] = member.role
        d["permissions"] = get_permissions(member.role).to_dict()
    return d


def serialize_member(member: "FarmMember") -> dict:
    return {
        "id": member.id,
        "farmId": member.farm_id,
        "userId": member.user_id,
        "email": member.user.email if member.user else None,
        "name": member.user.name if member.user else None,
        "role": member.role,
        "status": member.status,
        "joinedAt": iso(member.joined_at),
    }


def get_farm(s: "Session", farm_id: int) -> "Farm":
    from app.farmbook.modules.farms.models import Farm

    farm = s.get(Farm, farm_id)
    if farm is None or farm.deleted_at is not None:
        raise NotFoundError("Farm not found.", code="FARM_NOT_FOUND")
    return farm


def list_user_farms(s: "Session", user_id: int) -> list[tuple["Farm", "FarmMember"]]:
    """Live farms where the user holds an ACTIVE membership, oldest membership first."""
    from app.farmbook.modules.farms.models import Farm, FarmMember

    stmt = (
        select(Farm, FarmMember)
        .join(FarmMember, FarmMember.farm_id == Farm.id)
        .where(FarmMember.user_id == user_id, FarmMember.status == ACTIVE, Farm.deleted_at.is_(None))
        .order_by(FarmMember.joined_at.asc(), FarmMember.id.asc())
    )
    return [(farm, member) for farm, member in s.execute(stmt).all()]


def first_active_membership(s: "Session", user_id: int) -> "FarmMember | None":
    rows = list_user_farms(s, user_id)
    return rows[0][1] if rows else None


def create_farm(s: "Session", payload: dict, user: "User") -> tuple["Farm", "FarmMember"]:
    """Create a farm, make the creator its OWNER, and open its cashbox."""
    from app.farmbook.modules.cashbox.service import open_cashbox
    from app.farmbook.modules.farms.models import Farm, FarmMember

    now = utcnow()
    farm = Farm(
        name=clean_str(payload.get("name")) or "",
        currency=(clean_str(payload.get("currency")) or DEFAULT_CURRENCY).upper(),
        timezone=clean_str(payload.get("timezone")) or DEFAULT_TIMEZONE,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(farm)
    s.flush()

    member = FarmMember(farm_id=farm.id, user_id=user.id, role=OWNER, status=ACTIVE, joined_at=now, updated_at=now)
    s.add(member)
    s.flush()

    open_cashbox(s, farm, user)

    record_event(
        s,
        actor=user,
        action="farm.create",
        entity_type="Farm",
        entity_id=str(farm.id),
        farm_id=farm.id,
        metadata={"name": farm.name, "currency": farm.currency},
    )
    return farm, member


def update_farm(s: "Session", farm: "Farm", payload: dict, user: "User") -> "Farm":
    changes = {}

    if "name" in payload:
        new_name = clean_str(payload.get("name")) or ""
        if new_name != farm.name:
            changes["name"] = {"old": farm.name, "new": new_name}
            farm.name = new_name

    if payload.get("currency") is not None:
        new_currency = (clean_str(payload.get("currency")) or "").upper()
        if new_currency != farm.currency:
            changes["currency"] = {"old": farm.currency, "new": new_currency}
            farm.currency = new_currency

    if payload.get("timezone") is not None:
        new_tz = clean_str(payload.get("timezone")) or DEFAULT_TIMEZONE
        if new_tz != farm.timezone:
            changes["timezone"] = {"old": farm.timezone, "new": new_tz}
            farm.timezone = new_tz

    farm.updated_at = utcnow()
    farm.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="farm.edit",
        entity_type="Farm",
        entity_id=str(farm.id),
        farm_id=farm.id,
        metadata={"changes": changes},
    )
    return farm


def delete_farm(s: "Session", farm: "Farm", user: "User") -> None:
    """Soft delete: the farm disappears from listings and access checks."""
    now = utcnow()
    farm.deleted_at = now
    farm.updated_at = now
    farm.updated_by_user_id = user.id
    record_event(s, actor=user, action="farm.delete", entity_type="Farm", entity_id=str(farm.id), farm_id=farm.id)


# ---------- Members ----------


def validate_member_payload(payload: dict, *, require_email: bool = False) -> list[dict]:
    errors = []
    if require_email:
        email = clean_str(payload.get("email")) or ""
        if not email or "@" not in email:
            errors.append(field_error("email", "A valid email is required.", "INVALID_EMAIL"))
        if not payload.get("role"):
            errors.append(field_error("role", "Role is required.", "REQUIRED"))
    role = payload.get("role")
    if role is not None and role not in ROLES:
        errors.append(field_error("role", f"Role must be one of: {', '.join(ROLES)}", "INVALID_ROLE"))
    status = payload.get("status")
    if status is not None and status not in MEMBER_STATUSES:
        errors.append(field_error("status", f"Status must be one of: {', '.join(MEMBER_STATUSES)}", "INVALID_STATUS"))
    return errors


def list_members(s: "Session", farm_id: int) -> list["FarmMember"]:
    from app.farmbook.modules.farms.models import FarmMember

    stmt = select(FarmMember).where(FarmMember.farm_id == farm_id).order_by(FarmMember.joined_at.asc(), FarmMember.id.asc())
    return list(s.execute(stmt).scalars())


def get_member(s: "Session", farm_id: int, member_id: int) -> "FarmMember":
    from app.farmbook.modules.farms.models import FarmMember

    member = s.get(FarmMember, member_id)
    if member is None or member.farm_id != farm_id:
        raise NotFoundError("Member not found.", code="MEMBER_NOT_FOUND")
    return member


def find_member(s: "Session", farm_id: int, user_id: int) -> "FarmMember | None":
    from app.farmbook.modules.farms.models import FarmMember

    stmt = select(FarmMember).where(FarmMember.farm_id == farm_id, FarmMember.user_id == user_id)
    return s.execute(stmt).scalar_one_or_none()


def count_active_owners(s: "Session", farm_id: int) -> int:
    from app.farmbook.modules.farms.models import FarmMember

    stmt = select(func.count(FarmMember.id)).where(
        FarmMember.farm_id == farm_id,
        FarmMember.role == OWNER,
        FarmMember.status == ACTIVE,
    )
    return int(s.execute(stmt).scalar_one())


def _guard_last_owner(s: "Session", member: "FarmMember", *, new_role: str | None, new_status: str | None, removing: bool) -> None:
    """Reject any change that would leave the farm without an ACTIVE OWNER."""
    if member.role != OWNER or member.status != ACTIVE:
        return
    loses_ownership = removing or (new_role is not None and new_role != OWNER) or (
        new_status is not None and new_status != ACTIVE
    )
    if not loses_ownership:
        return
    if count_active_owners(s, member.farm_id) <= 1:
        raise BusinessLogicError("A farm must keep at least one active owner.", code="LAST_OWNER")


def add_member(s: "Session", farm: "Farm", payload: dict, actor: "User") -> "FarmMember":
    """Attach an existing user account to the farm."""
    from app.farmbook.models import User
    from app.farmbook.modules.farms.models import FarmMember

    email = (clean_str(payload.get("email")) or "").lower()
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        raise NotFoundError("No account exists for this email.", code="USER_NOT_FOUND")
    if find_member(s, farm.id, user.id) is not None:
        raise BusinessLogicError("This user is already a member of the farm.", code="ALREADY_MEMBER")

    now = utcnow()
    member = FarmMember(farm_id=farm.id, user_id=user.id, role=payload["role"], status=ACTIVE, joined_at=now, updated_at=now)
    s.add(member)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="member.add",
        entity_type="FarmMember",
        entity_id=str(member.id),
        farm_id=farm.id,
        metadata={"email": email, "role": member.role},
    )
    return member


def update_member(s: "Session", member: "FarmMember", payload: dict, actor: "User") -> "FarmMember":
    new_role = payload.get("role")
    new_status = payload.get("status")
    _guard_last_owner(s, member, new_role=new_role, new_status=new_status, removing=False)

    changes = {}
    if new_role is not None and new_role != member.role:
        changes["role"] = {"old": member.role, "new": new_role}
        member.role = new_role
    if new_status is not None and new_status != member.status:
        changes["status"] = {"old": member.status, "new": new_status}
        member.status = new_status
    member.updated_at = utcnow()

    record_event(
        s,
        actor=actor,
        action="member.edit",
        entity_type="FarmMember",
        entity_id=str(member.id),
        farm_id=member.farm_id,
        metadata={"user_id": member.user_id, "changes": changes},
    )
    return member


def remove_member(s: "Session", member: "FarmMember", actor: "User") -> None:
    _guard_last_owner(s, member, new_role=None, new_status=None, removing=True)
    record_event(
        s,
        actor=actor,
        action="member.remove",
        entity_type="FarmMember",
        entity_id=str(member.id),
        farm_id=member.farm_id,
        metadata={"user_id": member.user_id, "role": member.role, "self": member.user_id == actor.id},
    )
    s.delete(member)
    s.flush()
