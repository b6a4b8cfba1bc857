# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with dbsnap Integration.

This example demonstrates how to mount the backup admin endpoints into a
FastAPI application, with configuration built either from environment
variables or with the functional builder.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    DATABASE_URL: postgresql://... or sqlite:///... connection URL
    BACKUP_STORAGE_DIR: Where archives are stored
    BACKUP_UPLOADS_DIR: Asset directory included in every archive
    DBSNAP_ADMIN_API_KEY: API key for admin endpoints
    DBSNAP_CRON_SECRET: Bearer token expected by the cron endpoint
"""

import os

from fastapi import FastAPI

from dbsnap.builder import (
    build_config,
    create_empty_config,
    include_uploads,
    keep_backups_for,
    pipe,
    store_backups_in,
    with_sqlite,
)
from dbsnap.env import create_config_from_env
from dbsnap.integrations.fastapi import get_snapshot_service, snapshot_lifespan


def create_snapshot_config():
    """
    Create dbsnap configuration.

    Uses the environment when DATABASE_URL is set; otherwise falls back to
    a local SQLite database for development.
    """
    if os.getenv("DATABASE_URL"):
        return create_config_from_env()

    build = pipe(
        lambda c: with_sqlite(c, "./dev.db"),
        lambda c: store_backups_in(c, "./backups"),
        lambda c: include_uploads(c, "./public/uploads"),
        lambda c: keep_backups_for(c, 30),
    )
    return build_config(build(create_empty_config()))


snapshot_config = create_snapshot_config()

# Create FastAPI app
app = FastAPI(
    title="Campus Ops with dbsnap",
    description="Example application with database backup and restore",
    version="1.0.0",
    lifespan=lambda app: snapshot_lifespan(app, snapshot_config),
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to Campus Ops",
        "docs": "/docs",
        "backups_admin": "/admin/backups",
    }


@app.get("/maintenance")
async def maintenance_status():
    """Tell clients whether a backup or restore is running."""
    service = get_snapshot_service(app)
    return service.get_status()


# ============================================================================
# dbsnap Admin Endpoints (registered by snapshot_lifespan)
# ============================================================================
#
# GET    /admin/backups                 - List backups, summary and status
# POST   /admin/backups                 - Create a manual backup
# POST   /admin/backups/restore         - Restore from a stored backup
# GET    /admin/backups/cron            - Automatic backup (DBSNAP_CRON_SECRET)
# GET    /admin/backups/{name}/download - Download an archive
# DELETE /admin/backups/{name}          - Delete an archive
#
# Admin endpoints require: Authorization: Bearer <DBSNAP_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
