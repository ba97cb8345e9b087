import logging
from dataclasses import dataclass
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class DomainError(Exception):
    """业务错误：在写库之前抛出，由 handler 转成统一的 JSON。"""

    code: str
    message: str
    http_status: int = 400

    def __str__(self) -> str:
        return self.message


class NotFound(DomainError):
    def __init__(self, code: str, message: str):
        super().__init__(code=code, message=message, http_status=404)


class ValidationFailed(DomainError):
    def __init__(self, code: str, message: str):
        super().__init__(code=code, message=message, http_status=400)


class ConflictOrPreconditionFailed(DomainError):
    def __init__(self, code: str, message: str):
        super().__init__(code=code, message=message, http_status=409)


def abort(status_code: int, code: str, message: str) -> None:
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _auth_401(code: str, message: str) -> HTTPException:
    # ✅ 保留 WWW-Authenticate，符合 Bearer 规范
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "detail": {"code": "VALIDATION_ERROR", "message": "参数校验失败"},
            "errors": jsonable_errors(exc),
        },
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    correlation_id = uuid4().hex
    logger.exception(
        "unhandled error on %s %s (correlation_id=%s)",
        request.method,
        request.url.path,
        correlation_id,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": {
                "code": "INTERNAL_ERROR",
                "message": "服务器内部错误",
                "correlationId": correlation_id,
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx 里可能带异常对象，JSON 序列化不了
    return jsonable_encoder([{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()])


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
