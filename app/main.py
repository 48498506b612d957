"""
Main FastAPI application entry point.
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import engine, Base, SessionLocal
from app.core.exceptions import AuditPortalError
from app.core.logging_config import setup_logging
from app.api.v1.router import api_router
from app.middleware.request_logging import RequestLoggingMiddleware

# Import all models so they register with Base.metadata
from app.models import (  # noqa: F401
    Audit,
    SectionEvaluation,
    ValidationRecord,
    Visit,
    Finding,
    Report,
    ActivityLog,
    EvidenceDocument,
    InventoryIngestion,
)

setup_logging()
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Apply Alembic migrations when a deployment database is configured."""
    from alembic.config import Config
    from alembic import command

    logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations...")
    command.upgrade(Config("alembic.ini"), "head")
    logger.info("[MIGRATION] Alembic migrations completed (or already up-to-date)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown of the API."""
    logger.info(f"Starting up {settings.APP_NAME} API ({settings.APP_ENV})...")

    if os.getenv("DATABASE_URL"):
        try:
            run_migrations()
        except Exception as e:
            trace_id = str(uuid.uuid4())
            logger.warning(
                f"[MIGRATION] [{trace_id}] Alembic migration failed: {e}. "
                "Continuing with create_all; check the database if errors follow."
            )
            logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)
    else:
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except SQLAlchemyError as e:
        logger.error(f"Database connectivity test failed: {e}", exc_info=True)

    yield
    logger.info(f"Shutting down {settings.APP_NAME} API...")


app = FastAPI(
    title="Audit Portal API",
    description="Audit lifecycle and compliance scoring for IT service providers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(AuditPortalError)
async def audit_portal_error_handler(request: Request, exc: AuditPortalError):
    """Render domain errors with their mapped status and structured detail."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        f"[{trace_id}] {exc.error_kind} on {request.method} {request.url.path}: {exc.message}",
        exc_info=exc.status_code >= 500,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_kind,
            "detail": exc.detail,
            "message": exc.message,
            "trace_id": trace_id,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL / migrations"
        error_type = "DatabaseError"
    elif isinstance(exc, HTTPException):
        raise exc
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Liveness probe; use /api/v1/health for the database check."""
    return {"status": "ok"}
