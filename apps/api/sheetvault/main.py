from __future__ import annotations

import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sheetvault.core.db import db_health, get_engine, init_schema, reset_engine
from sheetvault.core.observability import emit
from sheetvault.core.storage import get_uploads_dir, storage_health
from sheetvault.modules.sheets.router import router as sheets_router
from sheetvault.modules.templates.router import router as templates_router
from sheetvault.modules.templates.service import seed_templates
from sheetvault.modules.users.router import router as users_router

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"

_last_error: Optional[str] = None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    engine = get_engine()
    init_schema(engine)
    seed_templates(engine)
    get_uploads_dir()
    emit("info", "app.startup", "sheetvault api started", None, __name__, version=APP_VERSION)
    try:
        yield
    finally:
        reset_engine()
        emit("info", "app.shutdown", "sheetvault api stopped", None, __name__)


app = FastAPI(title="SheetVault API", version=APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === OBSERVABILITY ===
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details


def _err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int):
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "details": details,
        },
        headers=headers,
    )


@app.middleware("http")
async def _request_id_mw(request: Request, call_next):
    global _last_error
    rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
    request.state.request_id = rid
    emit("info", "http.request.start", f"{request.method} {request.url.path}", rid, __name__)
    try:
        resp = await call_next(request)
    except Exception as e:
        _last_error = f"{type(e).__name__}: {e}"
        emit("error", "http.request.exception", str(e), rid, __name__)
        raise
    resp.headers["X-Request-Id"] = rid
    emit("info", "http.request.end", f"{request.method} {request.url.path} -> {getattr(resp,'status_code',None)}", rid, __name__)
    return resp


@app.exception_handler(StarletteHTTPException)
async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
    rid = getattr(request.state, "request_id", None)
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        d = exc.detail
        return _err_envelope(str(d["error"]), str(d.get("message", "")), rid, d.get("details"), exc.status_code)
    return _err_envelope("http_error", str(exc.detail), rid, {"status_code": exc.status_code}, exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_exc_handler(request: Request, exc: RequestValidationError):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("validation_error", "request validation failed", rid, jsonable_encoder(exc.errors()), 422)


@app.exception_handler(Exception)
async def _unhandled_exc_handler(request: Request, exc: Exception):
    global _last_error
    rid = getattr(request.state, "request_id", None)
    _last_error = f"{type(exc).__name__}: {exc}"
    emit("error", "http.request.unhandled", str(exc), rid, __name__, type=type(exc).__name__)
    return _err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)
# === END OBSERVABILITY ===


app.include_router(users_router, prefix="/api")
app.include_router(templates_router, prefix="/api")
app.include_router(sheets_router, prefix="/api")


@app.get("/health")
def health():
    db = db_health()
    storage = storage_health()
    ok = db.get("status") == "ok" and storage.get("status") == "ok"
    return {
        "status": "ok" if ok else "degraded",
        "version": APP_VERSION,
        "db": db,
        "storage": storage,
        "last_error_summary": _last_error,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("API_HOST", "127.0.0.1"), port=int(os.getenv("API_PORT", "7000")))
