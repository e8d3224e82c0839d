"""FastAPI application entrypoint for WorkflowGuard."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from workflowguard import __version__
from workflowguard.config import settings
from workflowguard.database import dispose_engine, init_db
from workflowguard.exceptions import InternalError, WorkflowGuardError

logger = logging.getLogger("workflowguard")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown lifecycle handler."""
    logging.basicConfig(level=settings.log_level)
    logger.info("WorkflowGuard %s starting (env=%s)", __version__, settings.environment)

    if settings.environment == "dev":
        await init_db()
        logger.info("Dev mode: tables created via init_db()")

    yield

    await dispose_engine()
    logger.info("WorkflowGuard shut down.")


app = FastAPI(
    title="WorkflowGuard",
    version=__version__,
    description="Version history, rollback and compliance reporting for HubSpot workflows.",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Include API routers
# ---------------------------------------------------------------------------
from workflowguard.api.workflows import router as workflows_router  # noqa: E402
from workflowguard.api.versions import router as versions_router  # noqa: E402

app.include_router(workflows_router)
app.include_router(versions_router)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
@app.get("/health", tags=["meta"])
async def health_check() -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "environment": settings.environment,
    }


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------
@app.exception_handler(WorkflowGuardError)
async def workflowguard_error_handler(request: Request, exc: WorkflowGuardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError("Internal server error")
    return JSONResponse(status_code=error.status_code, content={"detail": error.message})
