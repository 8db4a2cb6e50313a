"""
Bring a farmbook database up to date before the web process starts.

Steps:
- upgrade the schema to the latest alembic revision
- seed the first owner account and their farm (skipped when the owner already exists)

Run it on its own with `python scripts/release.py [--no-seed]`; scripts/start.py
calls `run_release()` before handing over to gunicorn.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set; farmbook will not migrate an implicit database.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("ENV is production but DATABASE_URL points at SQLite. Use the Postgres URL.")
    return url


def alembic_config(url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # ConfigParser interpolation: a literal % in a password must be doubled.
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def upgrade_schema(url: str) -> None:
    from alembic import command

    print("[farmbook] alembic upgrade head", flush=True)
    command.upgrade(alembic_config(url), "head")


def seed_owner(url: str) -> None:
    from scripts import init_db

    print("[farmbook] seeding owner and first farm", flush=True)
    init_db.seed_only(database_url=url)


def run_release(*, seed: bool = True) -> None:
    url = database_url()
    upgrade_schema(url)
    if seed:
        seed_owner(url)
    print("[farmbook] database ready", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate (and optionally seed) the farmbook database.")
    parser.add_argument("--no-seed", action="store_true", help="only run migrations")
    args = parser.parse_args()
    run_release(seed=not args.no_seed)


if __name__ == "__main__":
    main()
