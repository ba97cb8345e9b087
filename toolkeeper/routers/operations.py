from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from toolkeeper.db import get_session, utcnow
from toolkeeper.deps import require_handler, require_user
from toolkeeper.models import User
from toolkeeper.schemas import (
    ActiveIssue,
    IssueRequest,
    IssueResult,
    OperationsStats,
    ReceiveRequest,
    ReceiveResult,
    ReturnRequest,
    ReturnResult,
    TransactionFeedItem,
    UserActiveTool,
)
from toolkeeper.services import ledger
from toolkeeper.services.operations import issue_tool, receive_tool, return_tool

router = APIRouter(prefix="/operations", tags=["operations"])


@router.post("/issue", response_model=IssueResult)
def issue(
        data: IssueRequest,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    return issue_tool(session, data)


@router.post("/return", response_model=ReturnResult)
def return_(
        data: ReturnRequest,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    return return_tool(session, data)


@router.post("/receive", response_model=ReceiveResult, status_code=201)
def receive(
        data: ReceiveRequest,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    return receive_tool(session, data)


@router.get("/active", response_model=list[ActiveIssue])
def active(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return ledger.active_issues(session, utcnow())


@router.get("/stats", response_model=OperationsStats)
def stats(
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return ledger.stats_snapshot(session, utcnow())


@router.get("/transactions/recent", response_model=list[TransactionFeedItem])
def recent(
        limit: int = Query(10, ge=1, le=200),
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return ledger.recent_transactions(session, limit)


@router.get("/user/{user_id}/active", response_model=list[UserActiveTool])
def user_active(
        user_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return ledger.user_active_tools(session, user_id, utcnow())


@router.get("/tool/{tool_id}/history", response_model=list[TransactionFeedItem])
def history(
        tool_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    return ledger.tool_history(session, tool_id)
