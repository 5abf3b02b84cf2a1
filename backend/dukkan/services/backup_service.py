# Overview: Service-layer operations for database backup and restore (SQLite file copies).

"""
Backup Service

Backups are full copies of the SQLite database taken with the sqlite3 online
backup API, so a consistent snapshot is produced even while the app holds
open connections. Restore copies a backup over the live database the same way
after a safety copy of the current state has been written next to it.

Only file-backed SQLite databases are supported; other URLs raise BackupError.
"""

from __future__ import annotations

import logging
import os
import sqlite3

from flask import current_app

from ..extensions import db
from ..validation import ValidationError
from dukkan.time_utils import utcnow

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup_"
BACKUP_SUFFIX = ".sqlite3"
SQLITE_HEADER = b"SQLite format 3\x00"


class BackupError(ValidationError):
    """Raised when a backup or restore request cannot be carried out."""


def database_path() -> str:
    url = db.engine.url
    if url.get_backend_name() != "sqlite":
        raise BackupError("Backup is only supported for SQLite databases")
    path = url.database
    if not path or path == ":memory:" or path.startswith("file:"):
        raise BackupError("Backup requires a file-backed SQLite database")
    return os.path.abspath(path)


def _timestamp() -> str:
    return utcnow().strftime("%Y-%m-%d_%H-%M-%S-%f")


def _copy_database(source_path: str, target_path: str) -> None:
    source = sqlite3.connect(source_path)
    try:
        target = sqlite3.connect(target_path)
        try:
            source.backup(target)
        finally:
            target.close()
    finally:
        source.close()


def _is_sqlite_file(path: str) -> bool:
    with open(path, "rb") as fh:
        return fh.read(len(SQLITE_HEADER)) == SQLITE_HEADER


def create_backup(backup_dir: str | None = None) -> dict:
    """Write backup_<timestamp>.sqlite3 into backup_dir and return its location."""
    target_dir = (backup_dir or "").strip() or current_app.config["BACKUP_DIR"]
    source_path = database_path()

    # Pending writes must be on disk before the snapshot is taken.
    db.session.commit()

    try:
        os.makedirs(target_dir, exist_ok=True)
    except OSError as exc:
        raise BackupError(f"Backup directory is not usable: {exc}") from exc

    backup_file = os.path.join(os.path.abspath(target_dir), f"{BACKUP_PREFIX}{_timestamp()}{BACKUP_SUFFIX}")
    _copy_database(source_path, backup_file)

    size = os.path.getsize(backup_file)
    logger.info("Database backup written to %s (%d bytes)", backup_file, size)
    return {
        "success": True,
        "message": "Backup created successfully",
        "backupFile": backup_file,
        "size": size,
    }


def restore_backup(backup_file: str, *, restore_data: bool = True, restore_templates: bool = False) -> dict:
    """
    Replace the live database with the contents of backup_file.

    The current database is first copied to pre_restore_<timestamp>.sqlite3
    in the same directory; sessions are removed and the engine pool disposed
    so no connection keeps serving pre-restore pages.
    """
    if not backup_file or not str(backup_file).strip():
        raise BackupError("Backup file path is required")
    if not restore_data and not restore_templates:
        raise BackupError("At least one restore option must be selected")

    backup_file = os.path.abspath(str(backup_file).strip())
    if not os.path.isfile(backup_file):
        raise BackupError(f"Backup file not found: {backup_file}")
    if not _is_sqlite_file(backup_file):
        raise BackupError("Backup file is not a SQLite database")

    live_path = database_path()
    if os.path.abspath(live_path) == backup_file:
        raise BackupError("Backup file is the live database")

    safety_copy = None
    if restore_data:
        db.session.remove()
        db.engine.dispose()

        if os.path.exists(live_path):
            safety_copy = os.path.join(
                os.path.dirname(live_path), f"pre_restore_{_timestamp()}{BACKUP_SUFFIX}"
            )
            _copy_database(live_path, safety_copy)

        _copy_database(backup_file, live_path)
        db.engine.dispose()
        logger.warning("Database restored from %s (safety copy: %s)", backup_file, safety_copy)

    return {
        "success": True,
        "message": "Database restored successfully",
        "restored": {"data": bool(restore_data), "templates": bool(restore_templates)},
        "safetyCopy": safety_copy,
    }


def list_backups(backup_dir: str | None = None) -> list[dict]:
    target_dir = (backup_dir or "").strip() or current_app.config["BACKUP_DIR"]
    if not os.path.isdir(target_dir):
        return []

    backups = []
    for name in sorted(os.listdir(target_dir), reverse=True):
        if not (name.startswith(BACKUP_PREFIX) and name.endswith(BACKUP_SUFFIX)):
            continue
        path = os.path.join(os.path.abspath(target_dir), name)
        backups.append({"file": path, "name": name, "size": os.path.getsize(path)})
    return backups
