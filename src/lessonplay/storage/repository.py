"""Abstract repository interfaces for lessonplay storage.

This module defines the abstract base classes for manifest and snapshot
repositories. Both file-based (JSON) and SQLite backends implement these
interfaces, so hosts can persist sessions without knowing which backend is
active. Repositories store plain dicts; validation and restore checks
happen in the engine.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ManifestRepository(ABC):
    """Abstract base class for manifest storage."""

    @abstractmethod
    def list_manifests(self) -> list[dict]:
        """Return metadata for all stored manifests.

        Returns:
            List of dicts containing: {gameId, title, schemaVersion, difficulty}
        """
        pass

    @abstractmethod
    def get_manifest(self, game_id: str) -> Optional[dict]:
        """Load a raw manifest by gameId.

        Returns:
            Manifest dict, or None if not found
        """
        pass

    @abstractmethod
    def save_manifest(self, manifest: dict) -> str:
        """Save a raw manifest, return its gameId.

        Raises:
            ValueError: If manifest lacks a 'gameId' field
        """
        pass

    @abstractmethod
    def delete_manifest(self, game_id: str) -> bool:
        """Delete a manifest.

        Returns:
            True if deleted, False if not found
        """
        pass


class SnapshotRepository(ABC):
    """Abstract base class for session snapshot storage."""

    @abstractmethod
    def save_snapshot(self, session_id: str, snapshot: dict) -> None:
        """Persist a snapshot, replacing any earlier one for the session.

        Args:
            session_id: Session the snapshot belongs to
            snapshot: Snapshot as produced by Snapshot.to_dict()
        """
        pass

    @abstractmethod
    def load_snapshot(self, session_id: str) -> Optional[dict]:
        """Load the latest snapshot of a session.

        Returns:
            Snapshot dict, or None if not found
        """
        pass

    @abstractmethod
    def list_snapshots(self, game_id: Optional[str] = None) -> list[dict]:
        """List stored sessions, optionally filtered by gameId.

        Returns:
            List of dicts containing: {sessionId, gameId, status, currentSceneId, updatedAt}
        """
        pass

    @abstractmethod
    def delete_snapshot(self, session_id: str) -> bool:
        """Delete a session's snapshot.

        Returns:
            True if deleted, False if not found
        """
        pass


def snapshot_summary(session_id: str, snapshot: dict, updated_at: str) -> dict:
    """Listing metadata extracted from a snapshot dict."""
    session = snapshot.get("session", {})
    return {
        "sessionId": session_id,
        "gameId": snapshot.get("gameId", ""),
        "status": session.get("status", "in_progress"),
        "currentSceneId": session.get("currentSceneId"),
        "updatedAt": updated_at,
    }


def manifest_summary(manifest: dict) -> dict:
    metadata = manifest.get("metadata", {})
    return {
        "gameId": manifest.get("gameId", ""),
        "title": metadata.get("title", manifest.get("gameId", "")),
        "schemaVersion": manifest.get("schemaVersion", ""),
        "difficulty": metadata.get("difficulty"),
    }
