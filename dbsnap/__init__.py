# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Manager - Full backup and restore for an application database.

Serializes every table of the database together with the uploaded-asset
directory into a portable ZIP archive, prunes archives past a retention
window, and restores the live database and assets from any stored archive
in a single transaction. Package name: dbsnap.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from dbsnap.builder import create_config

# Service facade
from dbsnap.core import (
    SnapshotService,
    initialize_service,
    shutdown_service,
)

# Environment-based configuration
from dbsnap.env import create_config_from_env

from dbsnap.config import SnapshotConfig, TriggerSource
from dbsnap.models import Requester

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "SnapshotConfig",
    "TriggerSource",
    "Requester",
    # Service
    "SnapshotService",
    "initialize_service",
    "shutdown_service",
]
