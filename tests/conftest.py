import pytest
from werkzeug.security import generate_password_hash

from app.farmbook import create_app
from app.farmbook.db import session_scope
from app.farmbook.models import Base, User
from app.farmbook.modules.cashbox.models import CashboxMovement
from app.farmbook.modules.farms.models import Farm, FarmMember

PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("APP_BASE_URL", "http://farmbook.test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _user(s, email: str, name: str) -> User:
    u = User(email=email, name=name, password_hash=generate_password_hash(PASSWORD), is_active=True)
    s.add(u)
    s.flush()
    return u


@pytest.fixture()
def farm(app) -> dict:
    """
    One farm with an OWNER, an ASSOCIATE and a WORKER, plus an outsider account.
    Everyone's password is PASSWORD.
    """
    with session_scope(app) as s:
        owner = _user(s, "owner@example.com", "Olive Owner")
        associate = _user(s, "associate@example.com", "Ari Associate")
        worker = _user(s, "worker@example.com", "Wren Worker")
        outsider = _user(s, "outsider@example.com", "Otto Outsider")

        f = Farm(name="Green Acres", created_by_user_id=owner.id, updated_by_user_id=owner.id)
        s.add(f)
        s.flush()
        owner_m = FarmMember(farm_id=f.id, user_id=owner.id, role="OWNER", status="ACTIVE")
        associate_m = FarmMember(farm_id=f.id, user_id=associate.id, role="ASSOCIATE", status="ACTIVE")
        worker_m = FarmMember(farm_id=f.id, user_id=worker.id, role="WORKER", status="ACTIVE")
        s.add_all([owner_m, associate_m, worker_m])
        s.add(CashboxMovement(farm_id=f.id, type="DEPOSIT", amount=0, description="Initial cashbox setup"))
        s.flush()

        return {
            "farm_id": f.id,
            "owner_id": owner.id,
            "associate_id": associate.id,
            "worker_id": worker.id,
            "outsider_id": outsider.id,
            "owner_member_id": owner_m.id,
            "associate_member_id": associate_m.id,
            "worker_member_id": worker_m.id,
        }


def login(client, email: str, password: str = PASSWORD):
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    return r


def create_animal(client, farm_id: int, **overrides) -> dict:
    payload = {"tagNumber": "BOV-001", "type": "INDIVIDUAL", "species": "Cattle", "sex": "FEMALE"}
    payload.update(overrides)
    r = client.post(f"/api/farms/{farm_id}/animals", json=payload)
    assert r.status_code == 201, r.json
    return r.json["data"]
