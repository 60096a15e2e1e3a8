# app/main.py
import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import (
    health,
    users,
    tickets,
    comments,
    work_orders,
    resources,
    assets,
    reports,
)

from app.core.config import settings
from app.core.logging import setup_logging, RequestIdMiddleware, log_extra
from app.services.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
    ScheduleConflict,
    ScheduleWarning,
    ValidationError,
    WorkflowError,
)

setup_logging(settings.log_level, json_logs=settings.env == "prod")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ticket Fulfillment",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url=None,
    openapi_url="/api/openapi.json",
)

# ==== Middlewares ====
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# ==== Доменні помилки -> HTTP ====
STATUS_BY_ERROR: dict[type, int] = {
    NotFound: 404,
    Forbidden: 403,
    ValidationError: 422,
    InvalidTransition: 409,
    PreconditionFailed: 409,
    ScheduleConflict: 409,
    ScheduleWarning: 409,
}


def status_for(exc: WorkflowError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 400


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    code = status_for(exc)
    logger.info(
        "workflow_error",
        extra={**log_extra(request), "error": exc.code, "entity": exc.entity, "entity_id": exc.entity_id},
    )
    return JSONResponse(status_code=code, content=exc.to_dict())


# ==== API під /api ====
app.include_router(health.router,      prefix="/api",             tags=["health"])
app.include_router(users.router,       prefix="/api/users",       tags=["users"])
app.include_router(tickets.router,     prefix="/api/tickets",     tags=["tickets"])
app.include_router(comments.router,    prefix="/api/tickets",     tags=["comments"])
app.include_router(work_orders.router, prefix="/api/work-orders", tags=["work-orders"])
app.include_router(resources.router,   prefix="/api/resources",   tags=["resources"])
app.include_router(assets.router,      prefix="/api/assets",      tags=["ledger"])
app.include_router(reports.router,     prefix="/api/reports",     tags=["reports"])

# ==== Статика (SPA) ====
BASE_DIR = Path(__file__).resolve().parents[1]
_ui_env = os.getenv("UI_DIST_DIR")
_ui_conf = settings.ui_dist_dir
UI_DIST = Path(_ui_conf or _ui_env or (BASE_DIR / "front" / "dist"))

if UI_DIST.exists():
    app.mount("/", StaticFiles(directory=str(UI_DIST), html=True), name="ui")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa_fallback(full_path: str):
        index = UI_DIST / "index.html"
        if index.exists():
            return FileResponse(index)
        return JSONResponse({"detail": "UI build not found"}, status_code=404)
else:
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok", "ui": "not built", "build_at": str(UI_DIST)}
