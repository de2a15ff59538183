"""FastAPI application for LedgerSync server.

This module creates and configures the FastAPI application with:
- REST API for suppliers, products, rates, collections and payments
- Optimistic-locking conflict responses (HTTP 409)

Usage:
    uvicorn ledgersync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ledgersync.server.api.router import router as api_router
from ledgersync.server.database import Database
from ledgersync.server.guard import VersionConflictError
from ledgersync.server.schemas import ConflictData, ConflictEnvelope

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("LEDGERSYNC_DB_PATH", "ledgersync.db"))
LOG_PATH = Path(os.environ.get("LEDGERSYNC_LOG_PATH", "ledgersync-server.log"))

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for ledgersync
    root_logger = logging.getLogger("ledgersync")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


async def version_conflict_handler(request: Request, exc: VersionConflictError) -> JSONResponse:
    """Turn a stale-version update into the HTTP 409 conflict body."""
    body = ConflictEnvelope(
        data=ConflictData(
            client_version=exc.client_version,
            server_version=exc.server_version,
            current_data=exc.current_data,
        )
    )
    logger.info(
        "%s %s -> 409 (client version %d, server version %d)",
        request.method,
        request.url.path,
        exc.client_version,
        exc.server_version,
    )
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())


def create_app(db: Database) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("=" * 60)
        logger.info("LedgerSync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db.path)
        logger.info("=" * 60)

        yield

        logger.info("LedgerSync Server shutting down")

    application = FastAPI(
        title="LedgerSync Server",
        description="Ledger API with optimistic locking for offline clients",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db
    application.add_exception_handler(VersionConflictError, version_conflict_handler)  # type: ignore[arg-type]
    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    logger.info("  Logs:     %s", LOG_PATH.absolute())
    return create_app(db=Database(DB_PATH))
