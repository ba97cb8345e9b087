from fastapi import APIRouter, Depends, Response
from sqlmodel import Session, select

from toolkeeper.db import get_session
from toolkeeper.deps import require_admin, require_user
from toolkeeper.errors import ConflictOrPreconditionFailed, NotFound, ValidationFailed
from toolkeeper.models import Role, User
from toolkeeper.routers.auth import create_user
from toolkeeper.schemas import ChoiceOption, UserCreate, UserRead, UserUpdate
from toolkeeper.security import hash_password
from toolkeeper.services.ledger import open_issue_count_for_user

router = APIRouter(prefix="/users", tags=["users"])

ROLE_NAMES = {
    Role.ADMIN: "Administrator",
    Role.STOREKEEPER: "Storekeeper",
    Role.WORKER: "Worker",
}


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("USER_NOT_FOUND", f"用户 {user_id} 不存在")
    return user


@router.get("/roles", response_model=list[ChoiceOption])
def list_roles(_user: User = Depends(require_user)):
    return [ChoiceOption(id=role.value, name=name) for role, name in ROLE_NAMES.items()]


@router.get("", response_model=list[UserRead])
def list_users(
    role: Role | None = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = select(User).order_by(User.id)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    return session.exec(stmt).all()


@router.post("", response_model=UserRead, status_code=201)
def create_user_by_admin(
    data: UserCreate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    return create_user(session, data, data.role.value)


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return _get_user(session, user_id)


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    data: UserUpdate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    user = _get_user(session, user_id)

    # 手里还有工具的工人不能改成别的角色，否则未归还记录挂在非工人名下
    if (
        data.role is not None
        and data.role != Role.WORKER
        and user.role == Role.WORKER.value
        and open_issue_count_for_user(session, user.id) > 0
    ):
        raise ConflictOrPreconditionFailed("USER_HOLDS_TOOLS", "该用户还有未归还的工具，不能修改角色")

    if data.full_name:
        user.full_name = data.full_name
    if data.email is not None:
        user.email = data.email or None
    if data.role is not None:
        user.role = data.role.value
    if data.password:
        user.password_hash = hash_password(data.password)

    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    user = _get_user(session, user_id)

    if user.id == admin.id:
        raise ValidationFailed("CANNOT_DELETE_SELF", "不能删除当前登录的账号")

    if open_issue_count_for_user(session, user.id) > 0:
        raise ConflictOrPreconditionFailed("USER_HOLDS_TOOLS", "该用户还有未归还的工具")

    session.delete(user)
    session.commit()
    return Response(status_code=204)
