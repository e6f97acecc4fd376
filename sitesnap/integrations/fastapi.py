# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap FastAPI Integration - Admin endpoints for website snapshots.

This module provides:
- Protected admin endpoints (export, validate, import, listings, health)
- One in-process lock so export and import never overlap (HTTP 409)
- Lifespan management with an optional daily export cleanup job
"""

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, AsyncIterator

import aiofiles
import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from ulid import ULID

from sitesnap.archive import run_blocking
from sitesnap.config import SnapshotConfig
from sitesnap.core import (
    SnapshotState,
    export_website,
    get_export_tables,
    get_import_tables,
    import_website,
    initialize_snapshot_state,
    validate_import_file,
)
from sitesnap.exceptions import ImportFailedError, SiteSnapError
from sitesnap.exports import list_exports, prune_old_exports

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the SITESNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("SITESNAP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="SITESNAP_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


async def _store_upload(request: Request, directory: Path) -> Path:
    """Stream the raw request body to <directory>/import-<ULID>.zip."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"import-{ULID()}.zip"

    async with aiofiles.open(path, "wb") as f:
        async for chunk in request.stream():
            if chunk:
                await f.write(chunk)

    logger.debug("upload_stored", path=str(path), size=path.stat().st_size)
    return path


def register_sitesnap_routes(
    app: FastAPI,
    config: SnapshotConfig,
    state: SnapshotState,
    prefix: str = "/admin/sitesnap",
) -> None:
    """
    Register sitesnap admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication. Export and import
    share one lock; a request arriving while either runs gets HTTP 409.

    Args:
        app: FastAPI application
        config: sitesnap configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/sitesnap)
    """
    lock = asyncio.Lock()
    app.state.sitesnap_lock = lock

    def ensure_idle() -> None:
        if lock.locked():
            raise HTTPException(
                status_code=409,
                detail="An export or import is already in progress",
            )

    @app.post(f"{prefix}/export", dependencies=[Depends(verify_api_key)])
    async def trigger_export() -> dict:
        """
        Export the database and public files into a new archive.
        """
        ensure_idle()
        async with lock:
            try:
                path = await export_website(config, state)
            except SiteSnapError as e:
                raise HTTPException(status_code=500, detail=f"Export failed: {e.message}")

        return {
            "path": str(path),
            "filename": path.name,
            "size": path.stat().st_size,
        }

    @app.get(f"{prefix}/exports", dependencies=[Depends(verify_api_key)])
    async def get_exports() -> list:
        """List export archives, newest first."""
        return list_exports(config)

    @app.get(f"{prefix}/exports/{{filename}}", dependencies=[Depends(verify_api_key)])
    async def download_export(filename: str) -> FileResponse:
        """
        Download one export archive.

        Only names from the export listing are served.
        """
        archive = next((e for e in list_exports(config) if e["filename"] == filename), None)
        if archive is None:
            raise HTTPException(status_code=404, detail="Export not found")
        return FileResponse(archive["path"], media_type="application/zip", filename=filename)

    @app.post(f"{prefix}/validate", dependencies=[Depends(verify_api_key)])
    async def validate_upload(request: Request) -> dict:
        """
        Validate an uploaded archive (raw application/zip body).

        The upload is discarded afterwards.
        """
        path = await _store_upload(request, config.export_dir)
        try:
            return asdict(await run_blocking(validate_import_file, path))
        finally:
            path.unlink(missing_ok=True)

    @app.post(f"{prefix}/import", dependencies=[Depends(verify_api_key)])
    async def import_upload(request: Request, confirm: bool = False) -> dict:
        """
        Replace the website with an uploaded archive.

        Args:
            confirm: Must be true; the import deletes every table and file
        """
        if not confirm:
            raise HTTPException(
                status_code=400,
                detail="Import must be confirmed with confirm=true",
            )
        ensure_idle()

        async with lock:
            path = await _store_upload(request, config.export_dir)
            try:
                validation = await run_blocking(validate_import_file, path)
                if not validation.valid:
                    raise HTTPException(
                        status_code=422,
                        detail={"message": "Invalid export file", "errors": validation.errors},
                    )

                result = await import_website(config, state, path)
            except ImportFailedError as e:
                raise HTTPException(
                    status_code=500,
                    detail={"message": e.message, "phase": e.details.get("phase")},
                )
            finally:
                path.unlink(missing_ok=True)

        return asdict(result)

    @app.get(f"{prefix}/tables", dependencies=[Depends(verify_api_key)])
    async def get_tables() -> dict:
        """Registry tables in export and import order."""
        return {
            "export": get_export_tables(config),
            "import": get_import_tables(config),
        }

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Reports whether an operation is running and how the last ones went.
        """
        export_dir_ok = config.export_dir.is_dir()

        return {
            "status": "healthy" if export_dir_ok else "degraded",
            "busy": lock.locked(),
            "phase": state["phase"].value,
            "last_error": state["last_error"],
            "last_export_at": (
                state["last_export_at"].isoformat() if state["last_export_at"] else None
            ),
            "last_import_at": (
                state["last_import_at"].isoformat() if state["last_import_at"] else None
            ),
            "total_exports": state["total_exports"],
            "total_imports": state["total_imports"],
            "engine": config.engine.value,
            "environment": config.environment.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }


def _setup_scheduled_cleanup(config: SnapshotConfig) -> Any:
    """Set up APScheduler for the daily export cleanup."""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    scheduler = AsyncIOScheduler(timezone="UTC")

    # Parse HH:MM format
    hour, minute = map(int, config.cleanup_schedule.split(":"))

    async def scheduled_cleanup():
        """Prune old export archives."""
        logger.info("scheduled_cleanup_starting")
        try:
            deleted = prune_old_exports(config)
            logger.info("scheduled_cleanup_completed", deleted=deleted)
        except SiteSnapError as e:
            logger.error("scheduled_cleanup_failed", error=str(e))

    scheduler.add_job(
        scheduled_cleanup,
        trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
        id="sitesnap_cleanup",
        replace_existing=True,
    )
    scheduler.start()

    logger.info(
        "scheduler_started",
        schedule=config.cleanup_schedule,
        next_run=scheduler.get_job("sitesnap_cleanup").next_run_time.isoformat(),
    )
    return scheduler


@asynccontextmanager
async def sitesnap_lifespan(
    app: FastAPI,
    config: SnapshotConfig,
    prefix: str = "/admin/sitesnap",
) -> AsyncIterator[None]:
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: sitesnap_lifespan(app, config))

    Args:
        app: FastAPI application
        config: sitesnap configuration
        prefix: URL prefix for admin endpoints
    """
    logger.info("sitesnap_lifespan_starting", engine=config.engine.value)

    state = await initialize_snapshot_state(config)
    app.state.sitesnap_state = state
    app.state.sitesnap_config = config

    register_sitesnap_routes(app, config, state, prefix)

    scheduler = None
    if config.cleanup_schedule:
        scheduler = _setup_scheduled_cleanup(config)

    logger.info("sitesnap_lifespan_started")

    try:
        yield
    finally:
        logger.info("sitesnap_lifespan_stopping")
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        logger.info("sitesnap_lifespan_stopped")


def setup_sitesnap_plugin(
    app: FastAPI,
    config: SnapshotConfig,
    prefix: str = "/admin/sitesnap",
) -> None:
    """
    Set up the sitesnap plugin on an existing app.

    Chains sitesnap's lifespan in front of the app's own, so routes and the
    cleanup job exist for as long as the app runs.

    Args:
        app: FastAPI application
        config: sitesnap configuration
        prefix: URL prefix for admin endpoints
    """
    app.state.sitesnap_config = config
    app.state.sitesnap_state = None

    app_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        async with sitesnap_lifespan(app_, config, prefix):
            async with app_lifespan(app_) as app_state:
                yield app_state

    app.router.lifespan_context = lifespan


def get_sitesnap_state(app: FastAPI) -> SnapshotState:
    """
    Get sitesnap state from a FastAPI app.

    Raises:
        RuntimeError: If sitesnap is not initialized
    """
    state = getattr(app.state, "sitesnap_state", None)
    if not state:
        raise RuntimeError("sitesnap not initialized. Call setup_sitesnap_plugin first.")
    return state


def get_sitesnap_config(app: FastAPI) -> SnapshotConfig:
    """
    Get sitesnap config from a FastAPI app.

    Raises:
        RuntimeError: If sitesnap is not initialized
    """
    config = getattr(app.state, "sitesnap_config", None)
    if not config:
        raise RuntimeError("sitesnap not initialized. Call setup_sitesnap_plugin first.")
    return config
