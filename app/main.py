"""FastAPI application entry point for Easy Forms.

This module initializes the FastAPI application, sets up logging, creates
database tables, imports YAML form definitions, registers routers, and
handles global exception handling.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.logging_config import setup_logging, get_logger
from app.models.database import SessionLocal, init_db
from app.routes import forms, health, public
from app.services.form_loader import FormLoader

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Create database tables
    - Import form definitions from the forms directory

    Shutdown:
    - Log shutdown event

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    settings = get_settings()
    setup_logging()

    logger.info(
        f"Easy Forms starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}, "
        f"Version: {settings.git_commit_sha}"
    )

    init_db()

    db = SessionLocal()
    try:
        FormLoader().import_forms(db)
    finally:
        db.close()

    if not settings.google_client_id:
        logger.warning("GOOGLE_CLIENT_ID is not set; submissions cannot be verified")

    yield

    # Shutdown
    logger.info("Easy Forms shutting down")


# Initialize FastAPI application
app = FastAPI(
    title="Easy Forms",
    description="Multi-section questionnaires with identity-verified, deduplicated submissions",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic API information.

    Returns:
        dict: API information and status
    """
    settings = get_settings()
    return {
        "service": "Easy Forms",
        "version": "1.0.0",
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers (public first so /api/forms/public/... never reaches the admin guard)
app.include_router(health.router, tags=["Health"])
app.include_router(public.router, tags=["Public"])
app.include_router(forms.router, tags=["Forms"])


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking sensitive information.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
