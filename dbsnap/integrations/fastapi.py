# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot FastAPI Integration - Admin endpoints for FastAPI applications.

This module provides:
- Lifespan management (startup/shutdown)
- Protected admin endpoints to list, create, restore, download and delete
  backups
- A cron endpoint for the external scheduler that triggers monthly backups
"""

import os
from contextlib import asynccontextmanager
from typing import Any, Dict

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from dbsnap.config import SnapshotConfig, TriggerSource
from dbsnap.core import SnapshotService, initialize_service, shutdown_service
from dbsnap.exceptions import (
    BackupNotFoundError,
    CorruptArchiveError,
    OperationInProgressError,
    SnapshotError,
)
from dbsnap.models import BackupInfo, Requester

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)

CRON_REQUESTER = Requester(id=None, name="System Cron")


class RequesterBody(BaseModel):
    id: str | None = None
    name: str | None = None

    def to_requester(self) -> Requester:
        return Requester(id=self.id, name=self.name)


class CreateBackupBody(BaseModel):
    requested_by: RequesterBody | None = None


class RestoreBody(BaseModel):
    backup_name: str
    requested_by: RequesterBody | None = None


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the DBSNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("DBSNAP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="DBSNAP_ADMIN_API_KEY environment variable not set",
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


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify the scheduler's bearer token.

    When DBSNAP_CRON_SECRET is unset the cron endpoint is open, so it can
    be called from a private network without credentials.
    """
    cron_secret = os.getenv("DBSNAP_CRON_SECRET")

    if cron_secret and (credentials is None or credentials.credentials != cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")

    return True


def _http_error(e: SnapshotError) -> HTTPException:
    """Map a dbsnap error to an HTTP response."""
    if isinstance(e, OperationInProgressError):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, BackupNotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, CorruptArchiveError):
        return HTTPException(status_code=422, detail=e.message)

    logger.error("snapshot_request_failed", error=str(e))
    return HTTPException(status_code=500, detail=e.message)


def backup_to_dict(info: BackupInfo) -> Dict[str, Any]:
    """JSON body for one archive; metadata keeps its archive field names."""
    return {
        "name": info.name,
        "created_at": info.created_at,
        "size_bytes": info.size_bytes,
        "size_human": info.size_human,
        "metadata": info.metadata.to_dict() if info.metadata else None,
    }


def register_snapshot_routes(
    app: FastAPI,
    service: SnapshotService,
    prefix: str = "/admin/backups",
) -> None:
    """
    Register backup admin endpoints on a FastAPI app.

    All endpoints except the cron endpoint require Bearer token
    authentication.

    Args:
        app: FastAPI application
        service: Connected snapshot service
        prefix: URL prefix for endpoints (default: /admin/backups)
    """

    @app.get(prefix, dependencies=[Depends(verify_api_key)])
    async def list_snapshot_backups() -> dict:
        """
        List stored backups with a summary and the current operation status.
        """
        backups = await service.list_backups()
        summary = await service.get_summary()
        return {
            "backups": [backup_to_dict(info) for info in backups],
            "summary": {
                "total": summary.total,
                "last_backup_at": summary.last_backup_at,
                "next_scheduled_backup_at": summary.next_scheduled_backup_at,
            },
            "status": service.get_status(),
        }

    @app.post(prefix, dependencies=[Depends(verify_api_key)])
    async def trigger_backup(body: CreateBackupBody | None = None) -> dict:
        """
        Manually create a backup.

        Returns the new archive and the archives pruned by retention.
        """
        requested_by = body.requested_by.to_requester() if body and body.requested_by else None
        try:
            result = await service.create_backup(
                triggered_by=TriggerSource.MANUAL,
                requested_by=requested_by,
            )
        except SnapshotError as e:
            raise _http_error(e) from e

        return {
            "message": "Backup created",
            "backup": backup_to_dict(result.backup),
            "deleted": [backup_to_dict(info) for info in result.deleted],
        }

    @app.post(f"{prefix}/restore", dependencies=[Depends(verify_api_key)])
    async def trigger_restore(body: RestoreBody) -> dict:
        """
        Restore the database and uploads from a stored backup.

        Args:
            body: Name of the archive and who asked for the restore
        """
        requested_by = body.requested_by.to_requester() if body.requested_by else None
        try:
            result = await service.restore_backup(body.backup_name, requested_by=requested_by)
        except SnapshotError as e:
            raise _http_error(e) from e

        return {
            "message": "Backup restored",
            "backup": backup_to_dict(result.backup),
            "restored_tables": result.restored_tables,
            "restored_rows": result.restored_rows,
        }

    # Registered before the {name} routes so "cron" is never read as a name
    @app.get(f"{prefix}/cron", dependencies=[Depends(verify_cron_secret)])
    async def cron_backup() -> dict:
        """
        Automatic backup, called by the external scheduler.
        """
        try:
            result = await service.create_backup(
                triggered_by=TriggerSource.AUTOMATIC,
                requested_by=CRON_REQUESTER,
            )
        except SnapshotError as e:
            raise _http_error(e) from e

        return {
            "message": "Automatic backup completed",
            "backup": backup_to_dict(result.backup),
            "deleted": [backup_to_dict(info) for info in result.deleted],
        }

    @app.get(f"{prefix}/{{name}}/download", dependencies=[Depends(verify_api_key)])
    async def download_backup(name: str) -> FileResponse:
        """
        Download a stored archive.
        """
        try:
            archive_path = await service.resolve_backup_path(name)
        except SnapshotError as e:
            raise _http_error(e) from e

        return FileResponse(archive_path, media_type="application/zip", filename=name)

    @app.delete(f"{prefix}/{{name}}", dependencies=[Depends(verify_api_key)])
    async def remove_backup(name: str) -> dict:
        """
        Delete a stored archive.
        """
        try:
            info = await service.delete_backup(name)
        except SnapshotError as e:
            raise _http_error(e) from e

        return {"message": "Backup deleted", "backup": backup_to_dict(info)}


@asynccontextmanager
async def snapshot_lifespan(app: FastAPI, config: SnapshotConfig, prefix: str = "/admin/backups"):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: snapshot_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Snapshot configuration
        prefix: URL prefix for admin endpoints
    """
    logger.info("snapshot_lifespan_starting")

    service = await initialize_service(config)
    app.state.snapshot_service = service

    register_snapshot_routes(app, service, prefix)

    logger.info("snapshot_lifespan_started")

    try:
        yield
    finally:
        logger.info("snapshot_lifespan_stopping")
        await shutdown_service(service)
        logger.info("snapshot_lifespan_stopped")


def get_snapshot_service(app: FastAPI) -> SnapshotService:
    """
    Get the snapshot service from a FastAPI app.

    Useful for triggering backups from custom endpoints.

    Raises:
        RuntimeError: If the service is not initialized
    """
    service = getattr(app.state, "snapshot_service", None)
    if not service:
        raise RuntimeError("dbsnap not initialized. Use snapshot_lifespan first.")
    return service
