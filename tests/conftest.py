import os

# 保险：就算 .env 不在也能跑；必须在导入 toolkeeper 之前设置
os.environ.setdefault("secret_key", "test_secret")
os.environ.setdefault("access_token_expire_minutes", "120")
os.environ.setdefault("database_url", "sqlite://")
os.environ.setdefault("seed_demo_data", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from toolkeeper.db import get_session
from toolkeeper.main import app
from toolkeeper.models import Role, StorageLocation, Tool, User
from toolkeeper.security import hash_password

PASSWORDS = {
    "admin": "admin123",
    "keeper": "store123",
    "worker1": "worker123",
    "worker2": "worker456",
}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def users(session) -> dict[str, int]:
    """admin / keeper / worker1 / worker2 -> user id."""
    rows = {
        "admin": User(username="admin", full_name="Anna Admin", role=Role.ADMIN.value,
                      password_hash=hash_password(PASSWORDS["admin"])),
        "keeper": User(username="keeper", full_name="Kirill Keeper", role=Role.STOREKEEPER.value,
                       password_hash=hash_password(PASSWORDS["keeper"])),
        "worker1": User(username="worker1", full_name="Pavel Petrov", role=Role.WORKER.value,
                        password_hash=hash_password(PASSWORDS["worker1"])),
        "worker2": User(username="worker2", full_name="Semyon Sidorov", role=Role.WORKER.value,
                        password_hash=hash_password(PASSWORDS["worker2"])),
    }
    session.add_all(rows.values())
    session.commit()
    return {name: u.id for name, u in rows.items()}


@pytest.fixture()
def location_id(session) -> int:
    location = StorageLocation(type="Warehouse", name="Main warehouse", address="Building A")
    session.add(location)
    session.commit()
    return location.id


@pytest.fixture()
def make_tool(session, location_id):
    def _make(article: str = "HAM-001", name: str = "Hammer") -> int:
        tool = Tool(article=article, name=name, storage_location_id=location_id)
        session.add(tool)
        session.commit()
        return tool.id

    return _make


def login(client, username: str) -> dict[str, str]:
    r = client.post("/auth/login", data={"username": username, "password": PASSWORDS[username]})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture()
def keeper_h(client, users):
    return login(client, "keeper")


@pytest.fixture()
def admin_h(client, users):
    return login(client, "admin")


@pytest.fixture()
def worker_h(client, users):
    return login(client, "worker1")
