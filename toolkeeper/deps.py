from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from toolkeeper.db import get_session
from toolkeeper.errors import _auth_401
from toolkeeper.models import HANDLER_ROLES, Role, User
from toolkeeper.security import decode_token

# ✅ auto_error=False，让我们接管“没带token”的错误格式
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "未登录或登录已失效，请重新登录")

    try:
        username = decode_token(token)
    except Exception:
        raise _auth_401("INVALID_TOKEN", "Token 无效或已过期，请重新登录")

    # token 验过了，但用户在库里不存在（账号被删/数据被清空）
    user = session.exec(select(User).where(User.username == username)).first()
    if not user:
        raise _auth_401("USER_NOT_FOUND", "用户不存在或已被删除")

    return user


def require_roles(*roles: str):
    """权限检查：当前用户的角色必须在 roles 里。"""

    def checker(user: User = Depends(require_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "当前角色无权执行该操作"},
            )
        return user

    return checker


require_handler = require_roles(*HANDLER_ROLES)
require_admin = require_roles(Role.ADMIN.value)
