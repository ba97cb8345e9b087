import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from toolkeeper.db import utcnow
from toolkeeper.errors import ConflictOrPreconditionFailed, NotFound, ValidationFailed
from toolkeeper.models import (
    HANDLER_ROLES,
    Role,
    StorageLocation,
    Tool,
    ToolTransaction,
    TransactionType,
    User,
)
from toolkeeper.schemas import (
    IssueRequest,
    IssueResult,
    ReceiveRequest,
    ReceiveResult,
    ReturnRequest,
    ReturnResult,
    WriteOffRequest,
    WriteOffResult,
)
from toolkeeper.services.ledger import can_remove_tool, find_open_issue

logger = logging.getLogger(__name__)


def _clean(note: Optional[str]) -> str:
    return (note or "").strip()


def build_return_note(condition: str, notes: Optional[str]) -> str:
    return f"Return. Condition: {condition}. Notes: {_clean(notes)}"


def build_write_off_note(reason: str, notes: Optional[str]) -> str:
    return f"Reason: {reason}. {_clean(notes)}".strip()


def _snapshot(tx: ToolTransaction, tool: Tool) -> ToolTransaction:
    tx.tool_article = tool.article
    tx.tool_name = tool.name
    return tx


def issue_tool(session: Session, data: IssueRequest, now: Optional[datetime] = None) -> IssueResult:
    now = now or utcnow()

    tool = session.get(Tool, data.tool_id)
    if not tool:
        raise ValidationFailed("TOOL_NOT_FOUND", f"工具 {data.tool_id} 不存在")

    worker = session.get(User, data.worker_id)
    if not worker or worker.role != Role.WORKER.value:
        raise ValidationFailed("INVALID_WORKER", "领用人不存在或不是工人")

    issuer = session.get(User, data.issued_by_id)
    if not issuer or issuer.role not in HANDLER_ROLES:
        raise ValidationFailed("ISSUER_NOT_ALLOWED", "只有库管员或管理员可以发放工具")

    if find_open_issue(session, tool.id, worker.id) is not None:
        raise ConflictOrPreconditionFailed("OPEN_ISSUE_EXISTS", "该工人已领用此工具且尚未归还")

    tx = _snapshot(
        ToolTransaction(
            tool_id=tool.id,
            user_id=issuer.id,
            assigned_to_user_id=worker.id,
            transaction_type=TransactionType.ISSUE.value,
            transaction_date=now,
            expected_return_date=data.expected_return_date,
            quantity=data.quantity,
            notes=_clean(data.notes),
        ),
        tool,
    )
    session.add(tx)

    # 并发下两次发放都通过了上面的检查：部分唯一索引兜底
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictOrPreconditionFailed("OPEN_ISSUE_EXISTS", "该工人已领用此工具且尚未归还")
    session.refresh(tx)

    logger.info("issue #%s: tool=%s worker=%s by=%s", tx.id, tool.id, worker.id, issuer.id)
    return IssueResult(
        transaction_id=tx.id,
        tool_name=tool.name,
        worker_name=worker.full_name,
        issued_by_name=issuer.full_name,
    )


def return_tool(session: Session, data: ReturnRequest, now: Optional[datetime] = None) -> ReturnResult:
    now = now or utcnow()

    issue = find_open_issue(session, data.tool_id, data.worker_id)
    if issue is None:
        raise ConflictOrPreconditionFailed("NO_OPEN_ISSUE", "没有找到待归还的发放记录")

    receiver = session.get(User, data.returned_by_id)
    if not receiver or receiver.role not in HANDLER_ROLES:
        raise ValidationFailed("RETURNER_NOT_ALLOWED", "只有库管员或管理员可以接收归还")

    condition = data.condition.value
    notes = _clean(data.notes)

    # 条件更新：returned_date 仍为空才关闭，0 行说明被并发请求抢先了
    result = session.execute(
        update(ToolTransaction)
        .where(ToolTransaction.id == issue.id, ToolTransaction.returned_date.is_(None))
        .values(returned_date=now, return_notes=notes, condition=condition)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        raise ConflictOrPreconditionFailed("NO_OPEN_ISSUE", "没有找到待归还的发放记录")

    ret = ToolTransaction(
        tool_id=issue.tool_id,
        tool_article=issue.tool_article,
        tool_name=issue.tool_name,
        user_id=receiver.id,
        assigned_to_user_id=issue.assigned_to_user_id,
        transaction_type=TransactionType.RETURN.value,
        transaction_date=now,
        quantity=issue.quantity,
        notes=build_return_note(condition, notes),
        return_notes=notes,
        condition=condition,
        related_transaction_id=issue.id,
    )
    session.add(ret)
    session.commit()
    session.refresh(ret)

    logger.info("return #%s closes issue #%s (condition=%s)", ret.id, issue.id, condition)
    return ReturnResult(transaction_id=ret.id, returned_date=now)


def write_off_tool(
    session: Session,
    tool_id: int,
    data: WriteOffRequest,
    now: Optional[datetime] = None,
) -> WriteOffResult:
    now = now or utcnow()

    tool = session.get(Tool, tool_id)
    if not tool:
        raise NotFound("TOOL_NOT_FOUND", f"工具 {tool_id} 不存在")

    user = session.get(User, data.user_id)
    if not user:
        raise NotFound("USER_NOT_FOUND", f"用户 {data.user_id} 不存在")

    if data.write_off_completely and not can_remove_tool(session, tool.id):
        raise ConflictOrPreconditionFailed("TOOL_IN_USE", "工具仍在工人手中，不能整件报废")

    tx = _snapshot(
        ToolTransaction(
            tool_id=tool.id,
            user_id=user.id,
            transaction_type=TransactionType.WRITE_OFF.value,
            transaction_date=now,
            quantity=data.quantity,
            notes=build_write_off_note(data.reason, data.notes),
        ),
        tool,
    )
    session.add(tx)
    if data.write_off_completely:
        # 流水保留，工具本身删除
        session.delete(tool)
    session.commit()
    session.refresh(tx)

    logger.info(
        "write-off #%s: tool=%s qty=%s removed=%s",
        tx.id, tool_id, data.quantity, data.write_off_completely,
    )
    return WriteOffResult(transaction_id=tx.id)


def receive_tool(session: Session, data: ReceiveRequest, now: Optional[datetime] = None) -> ReceiveResult:
    now = now or utcnow()

    receiver = session.get(User, data.received_by_id)
    if not receiver:
        raise NotFound("USER_NOT_FOUND", f"用户 {data.received_by_id} 不存在")

    if data.tool_id is not None:
        tool = session.get(Tool, data.tool_id)
        if not tool:
            raise NotFound("TOOL_NOT_FOUND", f"工具 {data.tool_id} 不存在")
    else:
        if not data.article or not data.name:
            raise ValidationFailed("MISSING_FIELDS", "新建工具需要 article 和 name")
        if data.storage_location_id is None or not session.get(StorageLocation, data.storage_location_id):
            raise ValidationFailed("LOCATION_NOT_FOUND", f"库位 {data.storage_location_id} 不存在")
        tool = Tool(
            article=data.article,
            name=data.name,
            description=data.description,
            storage_location_id=data.storage_location_id,
        )
        session.add(tool)
        session.flush()  # 生成 tool.id

    tx = _snapshot(
        ToolTransaction(
            tool_id=tool.id,
            user_id=receiver.id,
            transaction_type=TransactionType.RECEIPT.value,
            transaction_date=now,
            quantity=data.quantity,
            notes=_clean(data.notes),
        ),
        tool,
    )
    session.add(tx)
    session.commit()
    session.refresh(tx)

    logger.info("receipt #%s: tool=%s qty=%s by=%s", tx.id, tool.id, data.quantity, receiver.id)
    return ReceiveResult(transaction_id=tx.id, tool_id=tool.id)
