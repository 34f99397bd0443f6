"""Storage module for lessonplay.

This module provides repository interfaces and implementations for
persisting manifests and session snapshots, plus the asynchronous snapshot
writer sessions use to save after every accepted change.

Usage:
    from lessonplay.storage import get_manifest_repository, get_snapshot_repository

    # Get repository using configured backend (from environment)
    manifests = get_manifest_repository()
    snapshots = get_snapshot_repository()

    # Or specify backend explicitly
    from lessonplay.storage import StorageBackend
    snapshots = get_snapshot_repository(StorageBackend.SQLITE)

Configuration via environment variables:
    LESSONPLAY_STORAGE_BACKEND: "file" or "sqlite" (default: "file")
    LESSONPLAY_MANIFESTS_PATH: Path to manifests directory (default: "manifests")
    LESSONPLAY_SNAPSHOTS_PATH: Path to snapshots directory (default: "snapshots")
    LESSONPLAY_DATABASE_URI: SQLite database path (default: "instance/lessonplay.db")
"""

from .config import (
    StorageBackend,
    get_database_uri,
    get_manifest_repository,
    get_manifests_path,
    get_snapshot_repository,
    get_snapshots_path,
    get_storage_backend,
)
from .file_repo import FileManifestRepository, FileSnapshotRepository, slugify
from .repository import ManifestRepository, SnapshotRepository
from .sqlite_repo import SQLiteManifestRepository, SQLiteSnapshotRepository
from .writer import SnapshotWriter

__all__ = [
    # Abstract interfaces
    "ManifestRepository",
    "SnapshotRepository",
    # File implementations
    "FileManifestRepository",
    "FileSnapshotRepository",
    "slugify",
    # SQLite implementations
    "SQLiteManifestRepository",
    "SQLiteSnapshotRepository",
    # Writer
    "SnapshotWriter",
    # Configuration
    "StorageBackend",
    "get_storage_backend",
    "get_manifests_path",
    "get_snapshots_path",
    "get_database_uri",
    # Factory functions
    "get_manifest_repository",
    "get_snapshot_repository",
]
