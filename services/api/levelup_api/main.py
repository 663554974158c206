from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from levelup_api.core.config import Settings
from levelup_api.db import Base, SessionLocal, engine
from levelup_api.deps import get_catalog
from levelup_engine.errors import ProgressionError
from levelup_engine.logjson import log_json, set_log_json

ERROR_STATUS: dict[str, int] = {
    "invalid_payload": 422,
    "invalid_event_time": 422,
    "concurrency_conflict": 409,
    "storage_unavailable": 503,
    "timeout": 504,
}


def _tag_request_id(request: Request, resp):
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        resp.headers["X-Request-Id"] = str(request_id)
    return resp


def create_app(*, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    set_log_json(bool(settings.log_json))

    # Schema migrations are not managed here; tables are created on first start.
    Base.metadata.create_all(engine)

    app = FastAPI(
        title="LevelUp Progression API",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/docs",
    )

    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex}"
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:  # noqa: BLE001
            log_json(
                "http_request",
                level="error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=500,
                duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
            )
            raise

        response.headers["X-Request-Id"] = request_id
        log_json(
            "http_request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
        )
        return response

    @app.exception_handler(ProgressionError)
    async def _progression_error(request: Request, exc: ProgressionError):
        status = ERROR_STATUS.get(exc.kind, 400)
        log_json(
            "progress_error",
            level="warning" if status < 500 else "error",
            request_id=getattr(request.state, "request_id", None),
            path=request.url.path,
            status=status,
            error=exc.kind,
            message=exc.message,
        )
        resp = JSONResponse(status_code=status, content={"detail": exc.to_dict()})
        return _tag_request_id(request, resp)

    @app.exception_handler(HTTPException)
    async def _with_request_id_http_exception(request: Request, exc: HTTPException):
        return _tag_request_id(request, await http_exception_handler(request, exc))

    @app.exception_handler(RequestValidationError)
    async def _with_request_id_validation_error(request: Request, exc: RequestValidationError):
        return _tag_request_id(request, await request_validation_exception_handler(request, exc))

    @app.exception_handler(Exception)
    async def _with_request_id_unhandled(request: Request, exc: Exception):
        _ = exc
        resp = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        return _tag_request_id(request, resp)

    @app.get("/api/health")
    def health() -> dict[str, object]:
        catalog = get_catalog()
        return {
            "status": "ok",
            "achievements": len(catalog),
            "catalog_hash": catalog.catalog_hash(),
        }

    @app.get("/api/ready")
    def ready() -> dict[str, object]:
        db_ok = False
        db_err: str | None = None
        try:
            with SessionLocal() as session:
                session.execute(text("SELECT 1"))
            db_ok = True
        except Exception as exc:  # noqa: BLE001
            db_err = str(exc)[:400]
        return {"status": "ok" if db_ok else "fail", "db": {"ok": db_ok, "error": db_err}}

    from levelup_api.routers import auth, leaderboard, progress

    app.include_router(auth.router)
    app.include_router(progress.router)
    app.include_router(leaderboard.router)

    return app


app = create_app()
