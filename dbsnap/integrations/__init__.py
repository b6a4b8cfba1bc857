# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from dbsnap.integrations.fastapi import (
    register_snapshot_routes,
    snapshot_lifespan,
    get_snapshot_service,
    verify_api_key,
    verify_cron_secret,
)

__all__ = [
    "register_snapshot_routes",
    "snapshot_lifespan",
    "get_snapshot_service",
    "verify_api_key",
    "verify_cron_secret",
]
