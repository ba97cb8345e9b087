import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlmodel import SQLModel, Session, create_engine

from toolkeeper.config import get_settings
from toolkeeper.errors import DomainError

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)


def utcnow() -> datetime:
    # 库里统一存 UTC-naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except (HTTPException, DomainError):
        # 业务/鉴权错误：在写库之前就抛出，回滚只是兜底
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("session rolled back after unexpected error", exc_info=True)
        raise
    finally:
        session.close()
