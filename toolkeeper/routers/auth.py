from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from toolkeeper.db import get_session
from toolkeeper.deps import require_user
from toolkeeper.errors import _auth_401, abort
from toolkeeper.models import Role, User
from toolkeeper.schemas import Token, UserRead, UserRegister
from toolkeeper.security import create_access_token, hash_password, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])


def create_user(session: Session, data: UserRegister, role: str) -> User:
    # 1) 用户名重复（先查一遍，给友好提示）
    existing = session.exec(select(User).where(User.username == data.username)).first()
    if existing:
        abort(409, "USERNAME_EXISTS", "用户名已存在")

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        email=data.email,
        role=role,
    )
    session.add(user)

    # 2) 并发下 unique 冲突兜底
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, "USERNAME_EXISTS", "用户名已存在")

    session.refresh(user)
    return user


@router.post("/register", response_model=UserRead, status_code=201)
def register(data: UserRegister, session: Session = Depends(get_session)):
    # 自助注册只能是工人，其它角色由管理员在 /users 创建
    return create_user(session, data, Role.WORKER.value)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    user = session.exec(select(User).where(User.username == form_data.username)).first()
    if (not user) or (not verify_password(form_data.password, user.password_hash)):
        raise _auth_401("INVALID_CREDENTIALS", "用户名或密码错误")

    return Token(
        access_token=create_access_token(user.username, user.role),
        user_id=user.id,
        username=user.username,
        role=user.role,
        full_name=user.full_name,
    )


@router.get("/me", response_model=UserRead)
def me(user: User = Depends(require_user)):
    return user
