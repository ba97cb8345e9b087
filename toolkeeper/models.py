from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from toolkeeper.db import utcnow


class Role(str, Enum):
    ADMIN = "Admin"
    STOREKEEPER = "Storekeeper"
    WORKER = "Worker"


class TransactionType(str, Enum):
    RECEIPT = "Receipt"
    ISSUE = "Issue"
    RETURN = "Return"
    WRITE_OFF = "WriteOff"


# 可以发放/收回工具的角色
HANDLER_ROLES = (Role.ADMIN.value, Role.STOREKEEPER.value)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, max_length=50)
    password_hash: str
    full_name: str = Field(max_length=100)
    email: Optional[str] = Field(default=None, max_length=100)
    role: str = Field(index=True, max_length=20)
    created_at: datetime = Field(default_factory=utcnow)


class StorageLocation(SQLModel, table=True):
    __tablename__ = "storage_location"

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(max_length=50)
    name: str = Field(max_length=100)
    address: Optional[str] = Field(default=None, max_length=200)


class Tool(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    article: str = Field(index=True, max_length=50)
    name: str = Field(index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    storage_location_id: int = Field(foreign_key="storage_location.id", index=True)


class ToolTransaction(SQLModel, table=True):
    __tablename__ = "tool_transaction"
    __table_args__ = (
        # 同一 (工具, 领用人) 同时只能有一条未归还的发放记录
        Index(
            "uq_open_issue_per_holder",
            "tool_id",
            "assigned_to_user_id",
            unique=True,
            sqlite_where=text("transaction_type = 'Issue' AND returned_date IS NULL"),
            postgresql_where=text("transaction_type = 'Issue' AND returned_date IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # 弱引用：工具被彻底报废删除后流水仍保留，靠下面的快照自描述
    tool_id: int = Field(index=True)
    tool_article: str = Field(default="", max_length=50)
    tool_name: str = Field(default="", max_length=100)

    user_id: int = Field(foreign_key="user.id", index=True)
    assigned_to_user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)

    transaction_type: str = Field(index=True, max_length=50)
    transaction_date: datetime = Field(default_factory=utcnow, index=True)
    expected_return_date: Optional[datetime] = None
    returned_date: Optional[datetime] = None

    quantity: int = Field(default=1)
    notes: str = Field(default="", max_length=1000)
    return_notes: str = Field(default="", max_length=1000)
    condition: str = Field(default="", max_length=50)

    related_transaction_id: Optional[int] = Field(default=None, foreign_key="tool_transaction.id")
