"""Application factory for the marketplace payments API.

This module initializes the FastAPI application, configures logging, creates the database
tables on startup and exposes the Scalar API reference endpoint for interactive OpenAPI
documentation.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from marketplace.api.routes import router
from marketplace.core.db import get_engine, init_db
from marketplace.core.settings import get_settings
from marketplace.core.utils import get_logger


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure the service logger level and the optional log file."""
    settings = get_settings()
    logger = get_logger("marketplace")
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    if settings.log_file and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(file_handler)


setup_logging()
logger = get_logger("marketplace")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler creating the profiles, contracts and jobs tables."""
    _ = app  # Silence unused argument warning
    try:
        init_db(get_engine())
    except SQLAlchemyError:
        logger.exception("Failed to create database tables")
        raise
    logger.info("Database ready")
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Marketplace Payments API",
    description="""
    The Marketplace Payments API lets clients and contractors read their contracts and jobs, and lets
    clients pay for jobs. Every request is authenticated by the `profile_id` header.

    **Endpoints:**
    - `GET /contracts/{contract_id}`: Get a contract the caller is a party to.
    - `GET /contracts`: List the caller's non-terminated contracts.
    - `GET /jobs/unpaid`: List unpaid jobs on the caller's in-progress contracts.
    - `POST /jobs/{job_id}/pay`: Pay for a job as its client.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.include_router(router)


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> HTMLResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)
