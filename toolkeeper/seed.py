import logging
from datetime import timedelta

from sqlalchemy import func
from sqlmodel import Session, select

from toolkeeper.db import utcnow
from toolkeeper.models import Role, StorageLocation, Tool, ToolTransaction, TransactionType, User
from toolkeeper.security import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("admin", "admin123", "System Administrator", Role.ADMIN),
    ("storekeeper", "store123", "Ivanov (storekeeper)", Role.STOREKEEPER),
    ("worker1", "worker123", "Petrov (worker)", Role.WORKER),
    ("worker2", "worker456", "Sidorov (worker)", Role.WORKER),
]

DEMO_LOCATIONS = [
    ("Warehouse", "Main warehouse", "Building A, floor 1"),
    ("Workshop", "Assembly shop", "Building B, floor 2"),
    ("Cabinet", "Tool cabinet #1", "Building C, room 101"),
]

# (article, name, description, location index)
DEMO_TOOLS = [
    ("HAM-001", "Bench hammer", "500 g, wooden handle", 0),
    ("SCR-002", "Phillips screwdriver", "Set of 6", 0),
    ("WRN-003", "Spanner", "Spanner set 8-19 mm", 1),
    ("DRL-004", "Electric drill", "650 W", 2),
    ("SAW-005", "Hacksaw", "300 mm, spare blades", 0),
]


def seed_demo_data(session: Session) -> bool:
    """空库时写入演示数据；已有用户则什么都不做，返回 False。"""
    if session.exec(select(func.count()).select_from(User)).one() > 0:
        logger.info("demo data skipped: users already present")
        return False

    now = utcnow()

    users = {}
    for username, password, full_name, role in DEMO_USERS:
        user = User(
            username=username,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role.value,
        )
        session.add(user)
        users[username] = user

    locations = [StorageLocation(type=t, name=n, address=a) for t, n, a in DEMO_LOCATIONS]
    session.add_all(locations)
    session.flush()

    tools = []
    for article, name, description, loc_idx in DEMO_TOOLS:
        tool = Tool(
            article=article,
            name=name,
            description=description,
            storage_location_id=locations[loc_idx].id,
        )
        session.add(tool)
        tools.append(tool)
    session.flush()

    def tx(tool: Tool, **kwargs) -> ToolTransaction:
        row = ToolTransaction(tool_id=tool.id, tool_article=tool.article, tool_name=tool.name, **kwargs)
        session.add(row)
        return row

    admin, keeper = users["admin"], users["storekeeper"]
    w1, w2 = users["worker1"], users["worker2"]

    for i, tool in enumerate(tools):
        tx(
            tool,
            user_id=admin.id,
            transaction_type=TransactionType.RECEIPT.value,
            transaction_date=now - timedelta(days=30 - i),
            quantity=5,
            notes="Initial purchase",
        )

    tx(
        tools[0],
        user_id=keeper.id,
        assigned_to_user_id=w1.id,
        transaction_type=TransactionType.ISSUE.value,
        transaction_date=now - timedelta(days=7),
        expected_return_date=now + timedelta(days=7),
        notes="For work at site #1",
    )
    tx(
        tools[2],
        user_id=keeper.id,
        assigned_to_user_id=w2.id,
        transaction_type=TransactionType.ISSUE.value,
        transaction_date=now - timedelta(days=3),
        expected_return_date=now + timedelta(days=10),
        notes="Installation work",
    )

    # 一条已归还的发放 + 对应的归还流水
    closed = tx(
        tools[3],
        user_id=keeper.id,
        assigned_to_user_id=w1.id,
        transaction_type=TransactionType.ISSUE.value,
        transaction_date=now - timedelta(days=5),
        expected_return_date=now - timedelta(days=2),
        returned_date=now - timedelta(days=1),
        return_notes="Good shape",
        condition="good",
        notes="Repair work",
    )
    session.flush()
    tx(
        tools[3],
        user_id=keeper.id,
        assigned_to_user_id=w1.id,
        transaction_type=TransactionType.RETURN.value,
        transaction_date=now - timedelta(days=1),
        notes="Return. Condition: good. Notes: Good shape",
        return_notes="Good shape",
        condition="good",
        related_transaction_id=closed.id,
    )

    session.commit()
    logger.info(
        "demo data created: %d users, %d locations, %d tools",
        len(users), len(locations), len(tools),
    )
    return True
