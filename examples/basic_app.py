# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with sitesnap Integration.

Exposes the snapshot admin endpoints next to a tiny public API.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    SITESNAP_DATABASE_URL: Website database URL (default: sqlite:///database/website.db)
    SITESNAP_PUBLIC_PATH: Uploaded media directory
    SITESNAP_STORAGE_PATH: Scratch directory (exports land in its temp/ folder)
    SITESNAP_ADMIN_API_KEY: API key for admin endpoints
    APP_ENV: Set to "production" to protect operator accounts on import
"""

import os

from fastapi import FastAPI

from sitesnap.builder import (
    build_config,
    cleanup_daily_at,
    create_empty_config,
    keep_exports_for,
    production_mode,
    with_database,
    with_public_path,
    with_storage_path,
)
from sitesnap.integrations.fastapi import setup_sitesnap_plugin

app = FastAPI(
    title="Portfolio website with sitesnap",
    description="Example application exposing website export/import",
    version="1.0.0",
)


def create_sitesnap_config():
    """
    Create sitesnap configuration with the functional builder.
    """
    config = create_empty_config()
    config = with_database(
        config,
        os.getenv("SITESNAP_DATABASE_URL", "sqlite:///database/website.db"),
    )
    config = with_public_path(config, os.getenv("SITESNAP_PUBLIC_PATH", "storage/app/public"))
    config = with_storage_path(config, os.getenv("SITESNAP_STORAGE_PATH", "storage/app"))

    # Keep a week of exports and prune them every night at 03:15 UTC
    config = keep_exports_for(config, 7)
    config = cleanup_daily_at(config, "03:15")

    if os.getenv("APP_ENV", "local").lower() == "production":
        config = production_mode(config)

    return build_config(config)


setup_sitesnap_plugin(app, create_sitesnap_config())


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Portfolio website",
        "docs": "/docs",
        "sitesnap_admin": "/admin/sitesnap/health",
    }


# ============================================================================
# sitesnap Admin Endpoints (registered on startup)
# ============================================================================
#
# POST /admin/sitesnap/export             - Create an export archive
# GET  /admin/sitesnap/exports            - List export archives
# GET  /admin/sitesnap/exports/{name}     - Download one export archive
# POST /admin/sitesnap/validate           - Validate an uploaded archive
# POST /admin/sitesnap/import?confirm=true - Replace the website from an upload
# GET  /admin/sitesnap/tables             - Export and import table order
# GET  /admin/sitesnap/health             - Health and last-operation status
#
# All admin endpoints require: Authorization: Bearer <SITESNAP_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
