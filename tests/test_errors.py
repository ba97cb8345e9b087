from fastapi import FastAPI
from fastapi.testclient import TestClient

from toolkeeper.errors import ConflictOrPreconditionFailed, NotFound, install_error_handlers


def _probe_app() -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/missing")
    def missing():
        raise NotFound("TOOL_NOT_FOUND", "no such tool")

    @app.get("/conflict")
    def conflict():
        raise ConflictOrPreconditionFailed("NO_OPEN_ISSUE", "nothing to return")

    @app.get("/boom")
    def boom():
        raise RuntimeError("password=hunter2 leaked from the driver")

    @app.get("/typed/{n}")
    def typed(n: int):
        return {"n": n}

    return app


def test_domain_errors_use_detail_envelope():
    client = TestClient(_probe_app())

    r = client.get("/missing")
    assert r.status_code == 404
    assert r.json() == {"detail": {"code": "TOOL_NOT_FOUND", "message": "no such tool"}}

    r = client.get("/conflict")
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "NO_OPEN_ISSUE"


def test_unexpected_error_is_opaque(caplog):
    client = TestClient(_probe_app(), raise_server_exceptions=False)

    r = client.get("/boom")
    assert r.status_code == 500
    detail = r.json()["detail"]
    assert detail["code"] == "INTERNAL_ERROR"
    assert "hunter2" not in r.text
    # correlation id 在日志里能对上
    assert detail["correlationId"] in caplog.text


def test_request_validation_envelope():
    client = TestClient(_probe_app())

    r = client.get("/typed/abc")
    assert r.status_code == 422
    body = r.json()
    assert body["detail"]["code"] == "VALIDATION_ERROR"
    assert body["errors"][0]["loc"] == ["path", "n"]
