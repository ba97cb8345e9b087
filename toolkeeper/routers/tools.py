import io
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Response
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.table import Table, TableStyleInfo
from sqlalchemy import func, or_
from sqlmodel import Session, select

from toolkeeper.db import get_session, utcnow
from toolkeeper.deps import require_handler, require_user
from toolkeeper.errors import ConflictOrPreconditionFailed, NotFound, ValidationFailed, abort
from toolkeeper.models import StorageLocation, Tool, User
from toolkeeper.schemas import (
    ReceiveRequest,
    ToolCreate,
    ToolListResponse,
    ToolRead,
    ToolUpdate,
    WriteOffRequest,
    WriteOffResult,
)
from toolkeeper.services.ledger import can_remove_tool, current_holders
from toolkeeper.services.operations import receive_tool, write_off_tool

router = APIRouter(prefix="/tools", tags=["tools"])


def _to_read(tool: Tool, location: StorageLocation | None) -> ToolRead:
    return ToolRead(
        id=tool.id,
        article=tool.article,
        name=tool.name,
        description=tool.description,
        storage_location_id=tool.storage_location_id,
        storage_location_name=location.name if location else None,
        storage_location_type=location.type if location else None,
    )


def _get_tool(session: Session, tool_id: int) -> Tool:
    tool = session.get(Tool, tool_id)
    if not tool:
        raise NotFound("TOOL_NOT_FOUND", f"工具 {tool_id} 不存在")
    return tool


@router.post("", response_model=ToolRead, status_code=201)
def create_tool(
        data: ToolCreate,
        session: Session = Depends(get_session),
        user: User = Depends(require_handler),
):
    # 新建工具和入库流水一起提交
    result = receive_tool(
        session,
        ReceiveRequest(
            article=data.article,
            name=data.name,
            description=data.description,
            storage_location_id=data.storage_location_id,
            received_by_id=user.id,
            quantity=data.quantity,
            notes=data.notes or "新建入库",
        ),
    )
    tool = session.get(Tool, result.tool_id)
    return _to_read(tool, session.get(StorageLocation, tool.storage_location_id))


@router.get("", response_model=ToolListResponse)
def list_tools(
        q: str | None = None,
        storage_location_id: int | None = Query(None, ge=1, alias="storageLocationId"),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        sort: str = Query(
            "id_desc",
            description="排序：id_desc/id_asc/name_asc/name_desc/article_asc/article_desc",
        ),
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    conds = []
    if q:
        conds.append(or_(Tool.name.contains(q), Tool.article.contains(q)))
    if storage_location_id is not None:
        conds.append(Tool.storage_location_id == storage_location_id)

    count_stmt = select(func.count()).select_from(Tool)
    if conds:
        count_stmt = count_stmt.where(*conds)
    total = session.exec(count_stmt).one()

    order_map = {
        "id_desc": Tool.id.desc(),
        "id_asc": Tool.id.asc(),
        "name_asc": Tool.name.asc(),
        "name_desc": Tool.name.desc(),
        "article_asc": Tool.article.asc(),
        "article_desc": Tool.article.desc(),
    }
    if sort not in order_map:
        abort(400, "BAD_REQUEST", f"sort 不支持：{sort}")

    items_stmt = select(Tool, StorageLocation).join(
        StorageLocation, StorageLocation.id == Tool.storage_location_id, isouter=True
    )
    if conds:
        items_stmt = items_stmt.where(*conds)
    rows = session.exec(items_stmt.order_by(order_map[sort]).offset(offset).limit(limit)).all()

    return {
        "items": [_to_read(tool, location) for tool, location in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "q": q,
    }


@router.get("/export.xlsx")
def export_tools_xlsx(
    q: str | None = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = (
        select(Tool, StorageLocation)
        .join(StorageLocation, StorageLocation.id == Tool.storage_location_id, isouter=True)
        .order_by(Tool.id.asc())
    )
    if q:
        stmt = stmt.where(or_(Tool.name.contains(q), Tool.article.contains(q)))
    rows = session.exec(stmt).all()

    holders = current_holders(session, [tool.id for tool, _ in rows])

    header_cn = ["编号", "型号", "名称", "库位", "库位类型", "领用人", "备注"]

    wb = Workbook()
    ws = wb.active
    ws.title = "工具台账"

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append(header_cn)
    ws.row_dimensions[1].height = 26
    for col in range(1, len(header_cn) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for tool, location in rows:
        ws.append([
            tool.id,
            tool.article,
            tool.name,
            location.name if location else "",
            location.type if location else "",
            ", ".join(holders.get(tool.id, [])),
            tool.description or "",
        ])

    data_end_row = 1 + len(rows)

    # ✅ 冻结首行
    ws.freeze_panes = "A2"

    col_widths = {"A": 8, "B": 14, "C": 28, "D": 24, "E": 14, "F": 28, "G": 40}
    for k, w in col_widths.items():
        ws.column_dimensions[k].width = w

    # 没有数据时也至少覆盖表头行，避免范围非法
    table = Table(displayName="ToolsLedger", ref=f"A1:G{max(1, data_end_row)}")
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showFirstColumn=False,
        showLastColumn=False,
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(table)

    ws.append([])
    ws.append(["导出时间 (UTC)", utcnow().strftime("%Y-%m-%d %H:%M:%S")])

    buf = io.BytesIO()
    wb.save(buf)

    filename = "tools.xlsx"
    headers = {
        "Content-Disposition": f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"
    }
    return Response(
        content=buf.getvalue(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )


@router.get("/{tool_id}", response_model=ToolRead)
def get_tool(
        tool_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    tool = _get_tool(session, tool_id)
    return _to_read(tool, session.get(StorageLocation, tool.storage_location_id))


@router.put("/{tool_id}", response_model=ToolRead)
@router.patch("/{tool_id}", response_model=ToolRead)
def update_tool(
        tool_id: int,
        data: ToolUpdate,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    tool = _get_tool(session, tool_id)

    if data.storage_location_id is not None:
        if not session.get(StorageLocation, data.storage_location_id):
            raise ValidationFailed(
                "LOCATION_NOT_FOUND", f"库位 {data.storage_location_id} 不存在"
            )
        tool.storage_location_id = data.storage_location_id

    if data.article:
        tool.article = data.article
    if data.name:
        tool.name = data.name
    # 允许把描述清空
    if data.description is not None:
        tool.description = data.description

    session.add(tool)
    session.commit()
    session.refresh(tool)
    return _to_read(tool, session.get(StorageLocation, tool.storage_location_id))


@router.delete("/{tool_id}", status_code=204)
def delete_tool(
        tool_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    tool = _get_tool(session, tool_id)
    if not can_remove_tool(session, tool.id):
        raise ConflictOrPreconditionFailed("TOOL_IN_USE", "工具仍在工人手中，不能删除")
    session.delete(tool)
    session.commit()
    return Response(status_code=204)


@router.post("/{tool_id}/writeoff", response_model=WriteOffResult)
def write_off(
        tool_id: int,
        data: WriteOffRequest,
        session: Session = Depends(get_session),
        _user: User = Depends(require_handler),
):
    return write_off_tool(session, tool_id, data)
