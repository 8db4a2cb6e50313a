"""
Farm-scoped role based access control.

One capability table drives every check; routes go through `require_farm_access`
rather than testing roles themselves.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import g
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.farmbook.db import db_session
from app.farmbook.errors import AuthenticationError, AuthorizationError, NotFoundError
from app.farmbook.models import User

logger = logging.getLogger(__name__)

OWNER = "OWNER"
ASSOCIATE = "ASSOCIATE"
WORKER = "WORKER"
ROLES = (OWNER, ASSOCIATE, WORKER)

ACTIVE = "ACTIVE"
INACTIVE = "INACTIVE"
MEMBER_STATUSES = (ACTIVE, INACTIVE)

READ = "READ"
CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"
ACTIONS = (READ, CREATE, UPDATE, DELETE)

MANAGE_MEMBERS = "manage_members"
EXPORT = "export"


@dataclass(frozen=True)
class Permissions:
    read: bool = False
    create: bool = False
    update: bool = False
    delete: bool = False
    manage_members: bool = False
    export: bool = False

    def allows(self, capability: str) -> bool:
        return bool(getattr(self, capability, False))

    def to_dict(self) -> dict[str, bool]:
        return {
            "read": self.read,
            "create": self.create,
            "update": self.update,
            "delete": self.delete,
            "manageMembers": self.manage_members,
            "export": self.export,
        }


NO_PERMISSIONS = Permissions()

CAPABILITIES: dict[str, Permissions] = {
    OWNER: Permissions(read=True, create=True, update=True, delete=True, manage_members=True, export=True),
    ASSOCIATE: Permissions(read=True, create=True, update=True, delete=False, manage_members=False, export=True),
    WORKER: Permissions(read=True, create=True, update=False, delete=False, manage_members=False, export=False),
}

# READ/CREATE/UPDATE/DELETE -> capability attribute
_ACTION_CAPABILITY = {
    READ: "read",
    CREATE: "create",
    UPDATE: "update",
    DELETE: "delete",
}


def get_permissions(role: str | None) -> Permissions:
    """Capability record for a role; unknown roles get nothing."""
    if not isinstance(role, str):
        return NO_PERMISSIONS
    return CAPABILITIES.get(role, NO_PERMISSIONS)


def get_active_membership(s: Session, user_id: int, farm_id: int):
    from app.farmbook.modules.farms.models import Farm, FarmMember

    stmt = (
        select(FarmMember)
        .join(Farm, Farm.id == FarmMember.farm_id)
        .where(
            FarmMember.user_id == user_id,
            FarmMember.farm_id == farm_id,
            FarmMember.status == ACTIVE,
            Farm.deleted_at.is_(None),
        )
    )
    return s.execute(stmt).scalar_one_or_none()


def check_farm_capability(s: Session, user_id: int | None, farm_id: int | None, capability: str) -> bool:
    if not user_id or not farm_id:
        return False
    try:
        member = get_active_membership(s, user_id, farm_id)
    except Exception:
        logger.exception("Membership lookup failed (user_id=%s farm_id=%s)", user_id, farm_id)
        return False
    if member is None:
        return False
    return get_permissions(member.role).allows(capability)


def check_farm_access(s: Session, user_id: int | None, farm_id: int | None, action: str) -> bool:
    """
    Can this user perform READ/CREATE/UPDATE/DELETE on the farm?
    Requires an ACTIVE membership; every failure path answers False.
    """
    capability = _ACTION_CAPABILITY.get(action)
    if capability is None:
        return False
    return check_farm_capability(s, user_id, farm_id, capability)


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise AuthenticationError()
    return u


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_user()
        return fn(*args, **kwargs)

    return wrapped


def _is_own_membership(s: Session, user_id: int, farm_id: int, member_id) -> bool:
    from app.farmbook.modules.farms.models import FarmMember

    target = s.get(FarmMember, member_id) if member_id else None
    return target is not None and target.farm_id == farm_id and target.user_id == user_id


def require_farm_access(
    requirement: str, *, or_self: str | None = None
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Gate a `<farm_id>` route on an action (READ, CREATE, ...) or a capability
    (manage_members, export). Sets g.farm_member for the handler.

    `or_self` names a route argument holding a FarmMember id; a caller acting
    on their own membership passes without the capability.
    """
    capability = _ACTION_CAPABILITY.get(requirement, requirement)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            farm_id = kwargs.get("farm_id")
            s = db_session()
            member = get_active_membership(s, user.id, farm_id) if farm_id else None
            if member is None:
                from app.farmbook.modules.farms.models import Farm

                farm = s.get(Farm, farm_id) if farm_id else None
                if farm is None or farm.deleted_at is not None:
                    raise NotFoundError("Farm not found.", code="FARM_NOT_FOUND")
                raise AuthorizationError("You are not a member of this farm.")
            allowed = get_permissions(member.role).allows(capability)
            if not allowed and or_self:
                allowed = _is_own_membership(s, user.id, farm_id, kwargs.get(or_self))
            if not allowed:
                g.missing_permission = capability
                if capability == MANAGE_MEMBERS:
                    raise AuthorizationError("Only farm owners can perform this action.", code="OWNER_ONLY")
                raise AuthorizationError()
            g.farm_member = member
            return fn(*args, **kwargs)

        return wrapped

    return decorator
