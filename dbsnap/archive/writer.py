# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Writer - Package a dump, its metadata and the asset tree.

An archive is a ZIP container with three logical members:

- database.json: the DatabaseDump
- metadata.json: the BackupMetadata descriptor
- uploads/: verbatim recursive copy of the asset directory (optional)

Archives are written to a ``.partial`` sibling and renamed into place, so
a crash mid-write never leaves a truncated ``.zip`` for the catalog to
list.
"""

import asyncio
import json
import zipfile
import zlib
from pathlib import Path, PurePosixPath

import aiofiles.os
import structlog

from dbsnap.exceptions import BackupError, CorruptArchiveError
from dbsnap.models import BackupMetadata, DatabaseDump

logger = structlog.get_logger()

DATABASE_MEMBER = "database.json"
METADATA_MEMBER = "metadata.json"
UPLOADS_PREFIX = "uploads"
PARTIAL_SUFFIX = ".partial"


async def write_archive(
    archive_path: Path,
    dump: DatabaseDump,
    metadata: BackupMetadata,
    uploads_dir: Path | None = None,
    compression_level: int = 9,
) -> Path:
    """
    Write a complete archive to archive_path.

    Once this returns, the archive is complete and self-describing.

    Args:
        archive_path: Final path of the .zip file
        dump: Database dump to store as database.json
        metadata: Descriptor to store as metadata.json
        uploads_dir: Asset directory to copy under uploads/, skipped if
            None or missing
        compression_level: DEFLATE level (9 = maximum)

    Returns:
        archive_path

    Raises:
        BackupError: If the archive cannot be written. No partial file
            is left behind.
    """
    temp_path = archive_path.with_name(archive_path.name + PARTIAL_SUFFIX)

    include_uploads = uploads_dir is not None and await aiofiles.os.path.isdir(uploads_dir)

    try:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(
            None,
            _write_zip_sync,
            temp_path,
            dump,
            metadata,
            uploads_dir if include_uploads else None,
            compression_level,
        )

        # Rename to final path (atomic on most filesystems)
        await aiofiles.os.replace(temp_path, archive_path)

    except Exception as e:
        await _discard(temp_path)
        raise BackupError(
            f"Failed to write archive: {e}",
            details={"archive_path": str(archive_path)},
        ) from e

    logger.info(
        "archive_written",
        archive_path=str(archive_path),
        tables=len(dump.tables),
        includes_uploads=include_uploads,
    )

    return archive_path


def _write_zip_sync(
    path: Path,
    dump: DatabaseDump,
    metadata: BackupMetadata,
    uploads_dir: Path | None,
    compression_level: int,
) -> None:
    """Synchronous archive creation."""
    with zipfile.ZipFile(
        path,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compression_level,
    ) as zf:
        zf.writestr(DATABASE_MEMBER, json.dumps(dump.to_dict(), indent=2, ensure_ascii=False))
        zf.writestr(METADATA_MEMBER, json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False))

        if uploads_dir is not None:
            # Directory entries are written too so empty folders survive
            zf.write(uploads_dir, UPLOADS_PREFIX)
            for entry in sorted(uploads_dir.rglob("*")):
                arcname = f"{UPLOADS_PREFIX}/{entry.relative_to(uploads_dir).as_posix()}"
                zf.write(entry, arcname)


async def _discard(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass


async def extract_archive(archive_path: Path, extract_to: Path) -> Path:
    """
    Extract an archive.

    Args:
        archive_path: Path to the .zip file
        extract_to: Directory to extract into

    Returns:
        extract_to

    Raises:
        CorruptArchiveError: If the file is not a readable archive or
            contains unsafe member paths
    """
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(None, _extract_sync, archive_path, extract_to)

    logger.debug(
        "archive_extracted",
        archive_path=str(archive_path),
        extract_to=str(extract_to),
    )

    return extract_to


def _extract_sync(archive_path: Path, extract_to: Path) -> None:
    """Synchronous extraction with path traversal checks."""
    extract_to.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(archive_path) as zf:
            # Security: Check for path traversal
            for member in zf.namelist():
                parts = PurePosixPath(member.replace("\\", "/")).parts
                if member.startswith(("/", "\\")) or ".." in parts:
                    raise CorruptArchiveError(
                        f"Unsafe path in archive: {member}",
                        details={"archive_path": str(archive_path)},
                    )
            zf.extractall(extract_to)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        # CRC mismatch, damaged DEFLATE stream or truncated member
        raise CorruptArchiveError(
            f"Archive is not a valid zip file: {e}",
            details={"archive_path": str(archive_path)},
        ) from e


def read_member(archive_path: Path, member: str) -> bytes | None:
    """
    Read one member of an archive without extracting it.

    Returns:
        The member's bytes, or None if the archive has no such member

    Raises:
        zipfile.BadZipFile, OSError: If the archive cannot be read
    """
    with zipfile.ZipFile(archive_path) as zf:
        try:
            return zf.read(member)
        except KeyError:
            return None
