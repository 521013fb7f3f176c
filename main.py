# type: ignore
# pyright: reportGeneralTypeIssues=false
# pyright: reportOptionalMemberAccess=false
"""
Game Jam Registration Service
=============================
Accepts team registrations for the game-development event: a team name,
1-4 members and a ZIP/RAR project archive posted as multipart/form-data.
The archive is streamed to disk, its entries are inspected for path
traversal, encryption and executable content, and the team is stored with
its members in a single transaction.

Registration stages:
    received ─► metadata_parsed ─► fields_validated ─► folder_allocated
             ─► archive_validated ─► persisted ─► finalized

Port: 8080
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from gamejam.controllers import registration_controller, system_controller
from gamejam.core.config import settings
from gamejam.core.dependencies import get_team_repo
from gamejam.core.logging import get_logger
from gamejam.middleware import MetricsMiddleware, RequestContextMiddleware
from gamejam.schemas import ApiResponse

logger = get_logger(settings.SERVICE_NAME)


# ── Startup helpers ───────────────────────────────────────────────────────
def _init_schema(attempts: int, delay: float) -> bool:
    """Create tables, retrying while the database is still coming up."""
    repo = get_team_repo()
    for attempt in range(1, attempts + 1):
        try:
            repo.ensure_schema()
            logger.info("Database schema ready")
            return True
        except SQLAlchemyError as exc:
            logger.warning("Schema init attempt %d/%d failed: %s", attempt, attempts, exc)
            if attempt < attempts:
                time.sleep(delay)
    logger.error("Database schema could not be created, registrations will fail until the DB is reachable")
    return False


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Prepare upload directories and schema at startup; dispose pool on shutdown."""
    settings.UPLOADS_ROOT.mkdir(parents=True, exist_ok=True)
    settings.UPLOAD_TMP_DIR.mkdir(parents=True, exist_ok=True)
    if settings.AUTO_CREATE_SCHEMA:
        _init_schema(settings.SCHEMA_INIT_ATTEMPTS, settings.SCHEMA_INIT_DELAY)
    logger.info("Service started uploads_root=%s", settings.UPLOADS_ROOT)
    yield
    get_team_repo().dispose()
    logger.info("Database connection pool disposed, shutting down")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Game Jam Registration Service",
    description="Team registration with streamed archive upload and content validation.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


# ── Global exception handler ─────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    body = ApiResponse(
        success=False,
        message="Internal server error",
        errors=["An internal server error occurred"],
    )
    return JSONResponse(status_code=500, content=body.to_content())


# ── Routers ───────────────────────────────────────────────────────────────
app.include_router(system_controller.router)
app.include_router(registration_controller.router)


# ── Entrypoint ────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT, log_level="info")
