import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts._db_utils import script_session  # noqa: E402
from app.farmbook.models import Base, User  # noqa: E402
from app.farmbook.modules.cashbox.models import CashboxMovement  # noqa: E402
from app.farmbook.modules.farms.models import Farm, FarmMember  # noqa: E402
from app.farmbook.utils import utcnow  # noqa: E402


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> None:
    """
    Seed an owner account with one farm in an idempotent way.
    Does NOT overwrite an existing owner's password.
    """
    owner_email = (os.environ.get("OWNER_EMAIL") or "owner@farmbook.local").strip().lower()
    owner_password = os.environ.get("OWNER_PASSWORD") or "change-me"
    farm_name = (os.environ.get("SEED_FARM_NAME") or "Demo Farm").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///farmbook.db").strip()

    with script_session(db_url) as s:
        if create_tables:
            Base.metadata.create_all(bind=s.get_bind())

        now = utcnow()
        user = s.query(User).filter(User.email == owner_email).one_or_none()
        if not user:
            user = User(
                email=owner_email,
                name="Farm Owner",
                password_hash=generate_password_hash(owner_password),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
            s.flush()

        owns_a_farm = (
            s.query(FarmMember).filter(FarmMember.user_id == user.id, FarmMember.role == "OWNER").first() is not None
        )
        if not owns_a_farm:
            farm = Farm(name=farm_name, created_at=now, updated_at=now, created_by_user_id=user.id, updated_by_user_id=user.id)
            s.add(farm)
            s.flush()
            s.add(FarmMember(farm_id=farm.id, user_id=user.id, role="OWNER", status="ACTIVE", joined_at=now, updated_at=now))
            s.add(
                CashboxMovement(
                    farm_id=farm.id,
                    type="DEPOSIT",
                    amount=0,
                    description="Initial cashbox setup",
                    created_at=now,
                    created_by_user_id=user.id,
                )
            )

    print("Initialized database (seed_only).")
    print(f"Owner email: {owner_email}")
    print("Owner password: (from OWNER_PASSWORD)")


def main() -> None:
    seed_only(database_url=None, create_tables=True)


if __name__ == "__main__":
    main()
