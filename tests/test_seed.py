from sqlalchemy import func
from sqlmodel import select

from toolkeeper.db import utcnow
from toolkeeper.models import Tool, User
from toolkeeper.seed import seed_demo_data
from toolkeeper.services import ledger


def test_seed_fills_empty_database_once(session):
    assert seed_demo_data(session) is True
    assert seed_demo_data(session) is False

    assert session.exec(select(func.count()).select_from(User)).one() == 4
    assert session.exec(select(func.count()).select_from(Tool)).one() == 5

    stats = ledger.stats_snapshot(session, utcnow())
    assert stats.active_issues == 2
    assert stats.overdue_issues == 0
    assert stats.total_transactions == 9


def test_seeded_users_can_log_in(client, engine):
    from sqlmodel import Session

    with Session(engine) as s:
        seed_demo_data(s)

    r = client.post("/auth/login", data={"username": "storekeeper", "password": "store123"})
    assert r.status_code == 200
    assert r.json()["role"] == "Storekeeper"
