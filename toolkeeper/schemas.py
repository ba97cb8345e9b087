from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from toolkeeper.db import to_utc_naive
from toolkeeper.models import Role


def _iso_utc(v: datetime) -> str:
    if v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    return v.isoformat()


# 库里是 UTC-naive，输出时补上 +00:00，前端才不会当成本地时间
UtcDatetime = Annotated[datetime, PlainSerializer(_iso_utc, return_type=str, when_used="json")]


class CamelModel(BaseModel):
    # 出入参都用 camelCase，入参也兼容 snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- auth / users ----------

class Token(BaseModel):
    # OAuth2 password flow 约定 snake_case，Swagger 也按 access_token 取值
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str
    role: str
    full_name: str


class UserRegister(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100)


class UserCreate(UserRegister):
    role: Role


class UserUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    role: Optional[Role] = None
    password: Optional[str] = Field(None, min_length=1)


class UserRead(CamelModel):
    id: int
    username: str
    full_name: str
    email: Optional[str] = None
    role: str
    created_at: UtcDatetime


class ChoiceOption(CamelModel):
    id: str
    name: str


# ---------- storage locations ----------

class StorageLocationCreate(CamelModel):
    type: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=200)


class StorageLocationUpdate(CamelModel):
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=200)


class StorageLocationRead(CamelModel):
    id: int
    type: str
    name: str
    address: Optional[str] = None
    tools_count: int = 0


class ToolBrief(CamelModel):
    id: int
    article: str
    name: str


class StorageLocationDetail(StorageLocationRead):
    tools: list[ToolBrief] = []


# ---------- tools ----------

class ToolCreate(CamelModel):
    article: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    storage_location_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None


class ToolUpdate(CamelModel):
    article: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    storage_location_id: Optional[int] = Field(None, ge=1)


class ToolRead(CamelModel):
    id: int
    article: str
    name: str
    description: Optional[str] = None
    storage_location_id: int
    storage_location_name: Optional[str] = None
    storage_location_type: Optional[str] = None


class ToolListResponse(CamelModel):
    items: list[ToolRead]
    total: int
    limit: int
    offset: int
    q: str | None = None


class WriteOffRequest(CamelModel):
    user_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)
    reason: str = Field("other", max_length=100)
    notes: Optional[str] = None
    write_off_completely: bool = True


class WriteOffResult(CamelModel):
    transaction_id: int


# ---------- operations ----------

class ReturnCondition(str, Enum):
    GOOD = "good"
    WORN = "worn"
    BROKEN = "broken"
    LOST = "lost"


class IssueRequest(CamelModel):
    tool_id: int = Field(..., ge=1)
    worker_id: int = Field(..., ge=1)
    issued_by_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None
    expected_return_date: Optional[datetime] = None

    @field_validator("expected_return_date")
    @classmethod
    def _normalize_expected(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)


class IssueResult(CamelModel):
    transaction_id: int
    tool_name: str
    worker_name: str
    issued_by_name: str


class ReturnRequest(CamelModel):
    tool_id: int = Field(..., ge=1)
    worker_id: int = Field(..., ge=1)
    returned_by_id: int = Field(..., ge=1)
    condition: ReturnCondition = ReturnCondition.GOOD
    notes: Optional[str] = None


class ReturnResult(CamelModel):
    transaction_id: int
    returned_date: UtcDatetime


class ReceiveRequest(CamelModel):
    # tool_id 给了就是补货（复用已有工具），否则新建工具
    tool_id: Optional[int] = Field(None, ge=1)
    article: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    storage_location_id: Optional[int] = Field(None, ge=1)
    received_by_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None


class ReceiveResult(CamelModel):
    transaction_id: int
    tool_id: int


class PersonRef(CamelModel):
    id: int
    full_name: str


class ToolRef(CamelModel):
    id: int
    article: str
    name: str


class ActiveIssue(CamelModel):
    transaction_id: int
    tool: Optional[ToolRef] = None
    worker: Optional[PersonRef] = None
    issued_by: Optional[PersonRef] = None
    transaction_date: UtcDatetime
    expected_return_date: Optional[UtcDatetime] = None
    quantity: int
    notes: str = ""
    days_issued: int
    is_overdue: bool = False


class OperationsStats(CamelModel):
    total_transactions: int
    issues_today: int
    returns_today: int
    active_issues: int
    overdue_issues: int


class UserActiveTool(CamelModel):
    transaction_id: int
    tool_id: int
    tool_name: str
    article: str
    issue_date: UtcDatetime
    expected_return_date: Optional[UtcDatetime] = None
    quantity: int
    is_overdue: bool


class TransactionFeedItem(CamelModel):
    id: int
    transaction_type: str
    transaction_date: UtcDatetime
    quantity: int
    notes: str = ""
    condition: str = ""
    expected_return_date: Optional[UtcDatetime] = None
    returned_date: Optional[UtcDatetime] = None
    related_transaction_id: Optional[int] = None
    tool: ToolRef
    user: Optional[PersonRef] = None
    assigned_to_user: Optional[PersonRef] = None
