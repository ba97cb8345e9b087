from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from toolkeeper.models import Tool, ToolTransaction, TransactionType, User
from toolkeeper.schemas import (
    ActiveIssue,
    OperationsStats,
    PersonRef,
    ToolRef,
    TransactionFeedItem,
    UserActiveTool,
)

ISSUE = TransactionType.ISSUE.value
RETURN = TransactionType.RETURN.value


def _open_issue_filter():
    return (
        ToolTransaction.transaction_type == ISSUE,
        ToolTransaction.returned_date.is_(None),
    )


def find_open_issue(session: Session, tool_id: int, worker_id: int) -> Optional[ToolTransaction]:
    """某工人手里该工具最近一条未归还的发放记录。

    时间相同按 id 取最大的（最后插入的那条）。
    """
    stmt = (
        select(ToolTransaction)
        .where(
            ToolTransaction.tool_id == tool_id,
            ToolTransaction.assigned_to_user_id == worker_id,
            *_open_issue_filter(),
        )
        .order_by(ToolTransaction.transaction_date.desc(), ToolTransaction.id.desc())
    )
    return session.exec(stmt).first()


def is_overdue(tx: ToolTransaction, now: datetime) -> bool:
    if tx.returned_date is not None:
        return False
    if tx.expected_return_date is None:
        return False
    # 严格小于：到期那一刻还不算逾期
    return tx.expected_return_date < now


def days_held(tx: ToolTransaction, now: datetime) -> int:
    return (now - tx.transaction_date).days


def can_remove_tool(session: Session, tool_id: int) -> bool:
    stmt = (
        select(func.count())
        .select_from(ToolTransaction)
        .where(ToolTransaction.tool_id == tool_id, *_open_issue_filter())
    )
    return session.exec(stmt).one() == 0


def open_issue_count_for_user(session: Session, user_id: int) -> int:
    stmt = (
        select(func.count())
        .select_from(ToolTransaction)
        .where(ToolTransaction.assigned_to_user_id == user_id, *_open_issue_filter())
    )
    return session.exec(stmt).one()


def current_holders(session: Session, tool_ids: list[int]) -> dict[int, list[str]]:
    """每个工具当前在谁手里（姓名列表）。"""
    if not tool_ids:
        return {}
    stmt = (
        select(ToolTransaction.tool_id, User.full_name)
        .join(User, User.id == ToolTransaction.assigned_to_user_id)
        .where(ToolTransaction.tool_id.in_(tool_ids), *_open_issue_filter())
        .order_by(ToolTransaction.id)
    )
    holders: dict[int, list[str]] = {}
    for tool_id, full_name in session.exec(stmt).all():
        holders.setdefault(tool_id, []).append(full_name)
    return holders


# ---------- 展示用的关联 ----------

def _users_by_id(session: Session, ids: set[int]) -> dict[int, User]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    return {u.id: u for u in session.exec(select(User).where(User.id.in_(ids))).all()}


def _tools_by_id(session: Session, ids: set[int]) -> dict[int, Tool]:
    if not ids:
        return {}
    return {t.id: t for t in session.exec(select(Tool).where(Tool.id.in_(ids))).all()}


def _person(users: dict[int, User], user_id: Optional[int]) -> Optional[PersonRef]:
    user = users.get(user_id) if user_id is not None else None
    if user is None:
        return None
    return PersonRef(id=user.id, full_name=user.full_name)


def _tool_ref(tools: dict[int, Tool], tx: ToolTransaction) -> ToolRef:
    tool = tools.get(tx.tool_id)
    if tool is not None:
        return ToolRef(id=tool.id, article=tool.article, name=tool.name)
    # 工具已被删除：用写流水时的快照
    return ToolRef(id=tx.tool_id, article=tx.tool_article, name=tx.tool_name)


def _load_refs(session: Session, rows: list[ToolTransaction]):
    users = _users_by_id(
        session,
        {r.user_id for r in rows} | {r.assigned_to_user_id for r in rows},
    )
    tools = _tools_by_id(session, {r.tool_id for r in rows})
    return users, tools


def _open_issues(session: Session, assigned_to: Optional[int] = None) -> list[ToolTransaction]:
    stmt = select(ToolTransaction).where(*_open_issue_filter())
    if assigned_to is not None:
        stmt = stmt.where(ToolTransaction.assigned_to_user_id == assigned_to)
    stmt = stmt.order_by(ToolTransaction.transaction_date.asc(), ToolTransaction.id.asc())
    return list(session.exec(stmt).all())


# ---------- projections ----------

def active_issues(session: Session, now: datetime) -> list[ActiveIssue]:
    rows = _open_issues(session)
    users, tools = _load_refs(session, rows)
    return [
        ActiveIssue(
            transaction_id=r.id,
            tool=_tool_ref(tools, r),
            worker=_person(users, r.assigned_to_user_id),
            issued_by=_person(users, r.user_id),
            transaction_date=r.transaction_date,
            expected_return_date=r.expected_return_date,
            quantity=r.quantity,
            notes=r.notes,
            days_issued=days_held(r, now),
            is_overdue=is_overdue(r, now),
        )
        for r in rows
    ]


def user_active_tools(session: Session, user_id: int, now: datetime) -> list[UserActiveTool]:
    rows = _open_issues(session, assigned_to=user_id)
    tools = _tools_by_id(session, {r.tool_id for r in rows})
    result = []
    for r in rows:
        ref = _tool_ref(tools, r)
        result.append(
            UserActiveTool(
                transaction_id=r.id,
                tool_id=r.tool_id,
                tool_name=ref.name,
                article=ref.article,
                issue_date=r.transaction_date,
                expected_return_date=r.expected_return_date,
                quantity=r.quantity,
                is_overdue=is_overdue(r, now),
            )
        )
    return result


def stats_snapshot(session: Session, now: datetime) -> OperationsStats:
    day_start = datetime(now.year, now.month, now.day)
    day_end = day_start + timedelta(days=1)

    def count(*conds) -> int:
        stmt = select(func.count()).select_from(ToolTransaction)
        if conds:
            stmt = stmt.where(*conds)
        return session.exec(stmt).one()

    total = count()
    issues_today = count(
        ToolTransaction.transaction_type == ISSUE,
        ToolTransaction.transaction_date >= day_start,
        ToolTransaction.transaction_date < day_end,
    )
    returns_today = count(
        ToolTransaction.transaction_type == RETURN,
        ToolTransaction.transaction_date >= day_start,
        ToolTransaction.transaction_date < day_end,
    )

    # 逾期数不单独存，扫一遍未归还记录现算
    open_rows = _open_issues(session)
    overdue = sum(1 for r in open_rows if is_overdue(r, now))

    return OperationsStats(
        total_transactions=total,
        issues_today=issues_today,
        returns_today=returns_today,
        active_issues=len(open_rows),
        overdue_issues=overdue,
    )


def _feed(session: Session, rows: list[ToolTransaction]) -> list[TransactionFeedItem]:
    users, tools = _load_refs(session, rows)
    return [
        TransactionFeedItem(
            id=r.id,
            transaction_type=r.transaction_type,
            transaction_date=r.transaction_date,
            quantity=r.quantity,
            notes=r.notes,
            condition=r.condition,
            expected_return_date=r.expected_return_date,
            returned_date=r.returned_date,
            related_transaction_id=r.related_transaction_id,
            tool=_tool_ref(tools, r),
            user=_person(users, r.user_id),
            assigned_to_user=_person(users, r.assigned_to_user_id),
        )
        for r in rows
    ]


def recent_transactions(session: Session, limit: int = 10) -> list[TransactionFeedItem]:
    stmt = (
        select(ToolTransaction)
        .order_by(ToolTransaction.transaction_date.desc(), ToolTransaction.id.desc())
        .limit(limit)
    )
    return _feed(session, list(session.exec(stmt).all()))


def tool_history(session: Session, tool_id: int) -> list[TransactionFeedItem]:
    stmt = (
        select(ToolTransaction)
        .where(ToolTransaction.tool_id == tool_id)
        .order_by(ToolTransaction.transaction_date.desc(), ToolTransaction.id.desc())
    )
    return _feed(session, list(session.exec(stmt).all()))
