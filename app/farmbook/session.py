"""
JWT-in-cookie sessions.

The signing secret is handed to `SessionManager` once, when the app is built;
request code reaches the manager through `current_app.extensions`.
Cookie writes are deferred to `apply_session_cookie`, which runs after the
handler, so handlers never touch the response object directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from flask import Flask, Request, Response, current_app, g, request

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
_DELETE = object()


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    farm_id: int | None
    role: str | None
    expires_at: datetime


class SessionManager:
    def __init__(self, secret: str, *, ttl: timedelta, cookie_name: str = "session", secure: bool = False) -> None:
        if not secret:
            raise ValueError("Session secret must not be empty.")
        self._secret = secret
        self.ttl = ttl
        self.cookie_name = cookie_name
        self.secure = secure

    def encode(self, user_id: int, farm_id: int | None = None, role: str | None = None) -> str:
        now = datetime.now(tz=timezone.utc)
        payload: dict[str, object] = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        if farm_id is not None:
            payload["farm_id"] = int(farm_id)
        if role:
            payload["role"] = role
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str | None) -> SessionClaims | None:
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
        except jwt.ExpiredSignatureError:
            logger.debug("Session token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug("Session token rejected: %s", e)
            return None
        try:
            user_id = int(payload["sub"])
            farm_id = int(payload["farm_id"]) if payload.get("farm_id") is not None else None
        except (TypeError, ValueError):
            return None
        return SessionClaims(
            user_id=user_id,
            farm_id=farm_id,
            role=payload.get("role") or None,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


def init_sessions(app: Flask, manager: SessionManager) -> None:
    app.extensions["farmbook_sessions"] = manager
    app.after_request(apply_session_cookie)


def _manager() -> SessionManager:
    return current_app.extensions["farmbook_sessions"]


def create_session(user_id: int, farm_id: int | None = None, role: str | None = None) -> str:
    """Issue a fresh token and queue it as the response cookie."""
    mgr = _manager()
    token = mgr.encode(user_id, farm_id, role)
    g.session_cookie = token
    g.session_claims = mgr.decode(token)
    return token


def verify_session() -> SessionClaims | None:
    """Claims for the current request, or None when unauthenticated. Never raises."""
    if "session_claims" in g:
        return g.session_claims
    try:
        claims = _manager().decode(request.cookies.get(_manager().cookie_name))
    except Exception:
        logger.exception("Session verification failed")
        claims = None
    g.session_claims = claims
    return claims


def update_session(req: Request) -> str | None:
    """
    Slide the expiry of a valid session cookie forward.
    An invalid or missing cookie leaves the request untouched and unauthenticated.
    """
    mgr = _manager()
    claims = mgr.decode(req.cookies.get(mgr.cookie_name))
    g.session_claims = claims
    if claims is None:
        return None
    token = mgr.encode(claims.user_id, claims.farm_id, claims.role)
    g.session_cookie = token
    return token


def delete_session() -> None:
    g.session_cookie = _DELETE
    g.session_claims = None


def apply_session_cookie(response: Response) -> Response:
    pending = g.pop("session_cookie", None)
    if pending is None:
        return response
    mgr = _manager()
    if pending is _DELETE:
        response.delete_cookie(mgr.cookie_name, path="/", httponly=True, samesite="Lax", secure=mgr.secure)
        return response
    response.set_cookie(
        mgr.cookie_name,
        pending,
        max_age=int(mgr.ttl.total_seconds()),
        path="/",
        httponly=True,
        samesite="Lax",
        secure=mgr.secure,
    )
    return response
