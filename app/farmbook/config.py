import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    session_cookie_name: str
    session_ttl_days: int
    invitation_ttl_days: int

    app_base_url: str
    log_level: str

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    return int(raw)


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development").lower(),
        database_url=_getenv("DATABASE_URL", "sqlite:///farmbook.db"),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        session_cookie_name=_getenv("SESSION_COOKIE_NAME", "session"),
        session_ttl_days=_getenv_int("SESSION_TTL_DAYS", 7),
        invitation_ttl_days=_getenv_int("INVITATION_TTL_DAYS", 7),
        app_base_url=_getenv("APP_BASE_URL", "http://localhost:5000").rstrip("/"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config(settings: Settings | None = None) -> dict:
    s = settings or load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "APP_BASE_URL": s.app_base_url,
        "INVITATION_TTL_DAYS": s.invitation_ttl_days,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": s.is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
