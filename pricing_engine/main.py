import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from pricing_engine.api.v1.router import router as api_v1_router
from pricing_engine.core.config import settings as app_settings
from pricing_engine.core.database import AsyncSessionLocal
from pricing_engine.core.exceptions import (
    BackupNotFoundError,
    InvalidImportDocumentError,
    RuleConflictError,
    RuleNotFoundError,
    RuleSetBusyError,
    RuleValidationError,
    StoreError,
)
from pricing_engine.core.rate_limit import limiter
from pricing_engine.services.history_retention import start_history_retention_loop

# Configure logging
logging.basicConfig(level=getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application-level background tasks."""
    # Start the rule-history retention background loop
    retention_task = asyncio.create_task(
        start_history_retention_loop(AsyncSessionLocal)
    )
    logger.info("Background history retention task scheduled")
    yield
    # Shutdown: cancel the background task
    retention_task.cancel()
    try:
        await retention_task
    except asyncio.CancelledError:
        logger.info("Background history retention task stopped")


app = FastAPI(
    title="Deterministic Pricing Rule Engine",
    description="Versioned, auditable pricing rules with reproducible estimates",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(InvalidImportDocumentError)
async def invalid_import_document_handler(
    request: Request, exc: InvalidImportDocumentError
):
    logger.warning("Invalid import document: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "field": exc.field, "type": "invalid_import_document"},
    )


@app.exception_handler(RuleValidationError)
async def rule_validation_handler(request: Request, exc: RuleValidationError):
    logger.warning("Invalid pricing rule (%s): %s", exc.field, exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "field": exc.field, "type": "rule_validation_error"},
    )


@app.exception_handler(RuleConflictError)
async def rule_conflict_handler(request: Request, exc: RuleConflictError):
    logger.warning("Pricing rule conflict: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "rule_conflict"},
    )


@app.exception_handler(BackupNotFoundError)
async def backup_not_found_handler(request: Request, exc: BackupNotFoundError):
    logger.warning("Backup not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "backup_not_found"},
    )


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    logger.warning("Pricing rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "rule_not_found"},
    )


@app.exception_handler(RuleSetBusyError)
async def rule_set_busy_handler(request: Request, exc: RuleSetBusyError):
    logger.warning("Rule set busy: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "rule_set_busy"},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Pricing rule store error: %s", exc.detail)
    return JSONResponse(
        status_code=500,
        content={"detail": exc.detail, "type": "store_error"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_errors(exc),
            "type": "validation_error",
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Drop non-serializable ``ctx`` payloads (e.g. exception instances)."""
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
