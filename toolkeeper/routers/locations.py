from fastapi import APIRouter, Depends, Response
from sqlalchemy import func
from sqlmodel import Session, select

from toolkeeper.db import get_session
from toolkeeper.deps import require_handler, require_user
from toolkeeper.errors import ConflictOrPreconditionFailed, NotFound
from toolkeeper.models import StorageLocation, Tool, User
from toolkeeper.schemas import (
    ChoiceOption,
    StorageLocationCreate,
    StorageLocationDetail,
    StorageLocationRead,
    StorageLocationUpdate,
    ToolBrief,
)

router = APIRouter(prefix="/storage-locations", tags=["storage-locations"])

# 建议值，服务端不强制
LOCATION_TYPES = ["Warehouse", "Workshop", "Cabinet", "Box", "Rack"]


def _get_location(session: Session, location_id: int) -> StorageLocation:
    location = session.get(StorageLocation, location_id)
    if not location:
        raise NotFound("LOCATION_NOT_FOUND", f"库位 {location_id} 不存在")
    return location


def _tools_count(session: Session, location_id: int) -> int:
    stmt = select(func.count()).select_from(Tool).where(Tool.storage_location_id == location_id)
    return session.exec(stmt).one()


@router.get("/types", response_model=list[ChoiceOption])
def list_location_types(_user: User = Depends(require_user)):
    return [ChoiceOption(id=t, name=t) for t in LOCATION_TYPES]


@router.get("", response_model=list[StorageLocationRead])
def list_locations(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    counts = dict(
        session.exec(
            select(Tool.storage_location_id, func.count()).group_by(Tool.storage_location_id)
        ).all()
    )
    locations = session.exec(select(StorageLocation).order_by(StorageLocation.id)).all()
    return [
        StorageLocationRead(
            id=loc.id,
            type=loc.type,
            name=loc.name,
            address=loc.address,
            tools_count=counts.get(loc.id, 0),
        )
        for loc in locations
    ]


@router.post("", response_model=StorageLocationRead, status_code=201)
def create_location(
    data: StorageLocationCreate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_handler),
):
    location = StorageLocation(type=data.type, name=data.name, address=data.address)
    session.add(location)
    session.commit()
    session.refresh(location)
    return StorageLocationRead(
        id=location.id, type=location.type, name=location.name, address=location.address
    )


@router.get("/{location_id}", response_model=StorageLocationDetail)
def get_location(
    location_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    location = _get_location(session, location_id)
    tools = session.exec(
        select(Tool).where(Tool.storage_location_id == location.id).order_by(Tool.id)
    ).all()
    return StorageLocationDetail(
        id=location.id,
        type=location.type,
        name=location.name,
        address=location.address,
        tools_count=len(tools),
        tools=[ToolBrief(id=t.id, article=t.article, name=t.name) for t in tools],
    )


@router.put("/{location_id}", response_model=StorageLocationRead)
def update_location(
    location_id: int,
    data: StorageLocationUpdate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_handler),
):
    location = _get_location(session, location_id)

    if data.type:
        location.type = data.type
    if data.name:
        location.name = data.name
    if data.address is not None:
        location.address = data.address

    session.add(location)
    session.commit()
    session.refresh(location)
    return StorageLocationRead(
        id=location.id,
        type=location.type,
        name=location.name,
        address=location.address,
        tools_count=_tools_count(session, location.id),
    )


@router.delete("/{location_id}", status_code=204)
def delete_location(
    location_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_handler),
):
    location = _get_location(session, location_id)

    count = _tools_count(session, location.id)
    if count:
        raise ConflictOrPreconditionFailed(
            "LOCATION_NOT_EMPTY", f"库位上还有 {count} 件工具，不能删除"
        )

    session.delete(location)
    session.commit()
    return Response(status_code=204)
