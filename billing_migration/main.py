"""
FastAPI application entry point for the Billing Migration API.

This module configures logging, builds the job repository and batch
orchestrator in the application lifespan, registers the API routers and the
request validation handler, and starts the ASGI server.

Request bodies that fail schema validation are answered with 400 and a
structured list of issues; no job is created for them.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing_migration import __version__
from billing_migration.api import api_router
from billing_migration.core.config import get_settings
from billing_migration.core.database import close_db
from billing_migration.core.dependencies import build_job_repository
from billing_migration.jobs.completion_notifier import send_job_completion_digest
from billing_migration.services.orchestrator import BatchOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Build the configured job repository (postgres initializes the pool
          and the job tables)
        - Build the batch orchestrator, with the Slack completion digest when
          SLACK_WEBHOOK_URL is set

    On shutdown:
        - Cancel running import batches
        - Close the database connection pool
    """
    settings = get_settings()

    # Startup
    logger.info("Billing Migration API starting (job store: %s)", settings.job_repository_backend)
    repository = await build_job_repository(settings)
    notifier = send_job_completion_digest if settings.slack_webhook_url else None

    app.state.job_repository = repository
    app.state.orchestrator = BatchOrchestrator(repository, settings=settings, notifier=notifier)

    yield

    # Shutdown
    logger.info("Billing Migration API shutting down")
    await app.state.orchestrator.shutdown()
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="Billing Migration API",
    version=__version__,
    description=(
        "Migration core for the War Chest legacy billing clients. "
        "Provides endpoints for client status classification, legacy vault "
        "token migration, transaction log reprocessing and client imports."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer schema violations with 400 and the list of issues."""
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    logger.warning("Rejected %s %s: %d validation issues", request.method, request.url.path, len(errors))
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request data", "errors": errors},
    )


# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Billing Migration API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "billing_migration.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
