"""Storage configuration for lessonplay.

This module provides configuration for storage backends and factory functions
to create appropriate repository instances based on configuration.
"""

import os
from enum import Enum

from .file_repo import FileManifestRepository, FileSnapshotRepository
from .repository import ManifestRepository, SnapshotRepository
from .sqlite_repo import SQLiteManifestRepository, SQLiteSnapshotRepository


class StorageBackend(Enum):
    """Available storage backends."""

    FILE = "file"
    SQLITE = "sqlite"


# Default configuration (can be overridden via environment variables)
DEFAULT_STORAGE_BACKEND = StorageBackend.FILE
DEFAULT_MANIFESTS_PATH = "manifests"
DEFAULT_SNAPSHOTS_PATH = "snapshots"
DEFAULT_DATABASE_URI = "instance/lessonplay.db"


def get_storage_backend() -> StorageBackend:
    """Get configured storage backend from environment."""
    backend_str = os.environ.get("LESSONPLAY_STORAGE_BACKEND", DEFAULT_STORAGE_BACKEND.value).lower()
    if backend_str == "sqlite":
        return StorageBackend.SQLITE
    return StorageBackend.FILE


def get_manifests_path() -> str:
    return os.environ.get("LESSONPLAY_MANIFESTS_PATH", DEFAULT_MANIFESTS_PATH)


def get_snapshots_path() -> str:
    return os.environ.get("LESSONPLAY_SNAPSHOTS_PATH", DEFAULT_SNAPSHOTS_PATH)


def get_database_uri() -> str:
    return os.environ.get("LESSONPLAY_DATABASE_URI", DEFAULT_DATABASE_URI)


def get_manifest_repository(
    backend: StorageBackend | None = None,
) -> ManifestRepository:
    """Factory function to create manifest repository.

    Args:
        backend: Storage backend to use. If None, uses environment config.
    """
    if backend is None:
        backend = get_storage_backend()

    if backend == StorageBackend.SQLITE:
        return SQLiteManifestRepository(get_database_uri())
    return FileManifestRepository(get_manifests_path())


def get_snapshot_repository(
    backend: StorageBackend | None = None,
) -> SnapshotRepository:
    """Factory function to create snapshot repository.

    Args:
        backend: Storage backend to use. If None, uses environment config.
    """
    if backend is None:
        backend = get_storage_backend()

    if backend == StorageBackend.SQLITE:
        return SQLiteSnapshotRepository(get_database_uri())
    return FileSnapshotRepository(get_snapshots_path())
