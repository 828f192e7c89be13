# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from siteworks.audit import AuditTrailLogger
from siteworks.config import LOG_LEVEL, REPOSITORY_BACKEND
from siteworks.database import SessionLocal
from siteworks.dependencies import memory_audit_repository
from siteworks.exceptions import NotFoundError, StateConflictError, ValidationError
from siteworks.repository import PostgreSQLAuditEventRepository
from siteworks.routers import api, approvals, audit

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


async def purge_expired_audit_events() -> int:
    if REPOSITORY_BACKEND == "memory":
        return await AuditTrailLogger(memory_audit_repository).clear_old_events()
    db = SessionLocal()
    try:
        return await AuditTrailLogger(PostgreSQLAuditEventRepository(db)).clear_old_events()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await purge_expired_audit_events()
    except SQLAlchemyError:
        logger.exception("audit_purge_failed")
    yield


app = FastAPI(
    title="SiteWorks Task Workflow",
    redirect_slashes=False,
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    status_code = status.HTTP_409_CONFLICT if isinstance(exc, StateConflictError) else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "errors": exc.errors})


# Include routers
app.include_router(api.router)
app.include_router(approvals.router)
app.include_router(audit.router)
