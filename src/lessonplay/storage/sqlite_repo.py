"""SQLite-based repository implementations.

This module provides SQLite storage for manifests and session snapshots,
suitable for the webapp. Uses the standard library sqlite3 module; each
call opens its own connection, so repositories can be used from the
snapshot writer's worker thread.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .repository import ManifestRepository, SnapshotRepository, manifest_summary


def dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    """Convert sqlite3 row to dict."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


class _SQLiteRepository:
    def __init__(self, database_uri: str = "instance/lessonplay.db"):
        """Initialize repository.

        Args:
            database_uri: Path to SQLite database file
        """
        self.database_path = Path(database_uri)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database_path)
        conn.row_factory = dict_factory
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class SQLiteManifestRepository(_SQLiteRepository, ManifestRepository):
    """SQLite-based manifest repository keyed by gameId."""

    def _init_db(self) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS manifests (
                game_id TEXT PRIMARY KEY,
                title TEXT,
                schema_version TEXT,
                data TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        conn.commit()
        conn.close()

    def list_manifests(self) -> list[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT data FROM manifests ORDER BY title")
        rows = cursor.fetchall()
        conn.close()
        return [manifest_summary(json.loads(row["data"])) for row in rows]

    def get_manifest(self, game_id: str) -> Optional[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT data FROM manifests WHERE game_id = ?", (game_id,))
        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None
        return json.loads(row["data"])

    def save_manifest(self, manifest: dict) -> str:
        game_id = manifest.get("gameId")
        if not game_id:
            raise ValueError("Manifest must have a 'gameId' field")

        now = datetime.now(timezone.utc).isoformat()
        summary = manifest_summary(manifest)

        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO manifests (game_id, title, schema_version, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(game_id) DO UPDATE SET
                title = excluded.title,
                schema_version = excluded.schema_version,
                data = excluded.data,
                updated_at = excluded.updated_at
        """, (
            game_id,
            summary["title"],
            summary["schemaVersion"],
            json.dumps(manifest),
            now,
            now,
        ))
        conn.commit()
        conn.close()
        return game_id

    def delete_manifest(self, game_id: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM manifests WHERE game_id = ?", (game_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted


class SQLiteSnapshotRepository(_SQLiteRepository, SnapshotRepository):
    """SQLite-based snapshot repository, one row per session."""

    def _init_db(self) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                session_id TEXT PRIMARY KEY,
                game_id TEXT NOT NULL,
                status TEXT DEFAULT 'in_progress',
                current_scene_id TEXT,
                data TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_game_id ON snapshots(game_id)")
        conn.commit()
        conn.close()

    def save_snapshot(self, session_id: str, snapshot: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        session = snapshot.get("session", {})

        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO snapshots (session_id, game_id, status, current_scene_id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                status = excluded.status,
                current_scene_id = excluded.current_scene_id,
                data = excluded.data,
                updated_at = excluded.updated_at
        """, (
            session_id,
            snapshot.get("gameId", ""),
            session.get("status", "in_progress"),
            session.get("currentSceneId"),
            json.dumps(snapshot),
            now,
            now,
        ))
        conn.commit()
        conn.close()

    def load_snapshot(self, session_id: str) -> Optional[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT data FROM snapshots WHERE session_id = ?", (session_id,))
        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None
        return json.loads(row["data"])

    def list_snapshots(self, game_id: Optional[str] = None) -> list[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()

        if game_id is not None:
            cursor.execute("""
                SELECT session_id, game_id, status, current_scene_id, updated_at
                FROM snapshots
                WHERE game_id = ?
                ORDER BY updated_at DESC
            """, (game_id,))
        else:
            cursor.execute("""
                SELECT session_id, game_id, status, current_scene_id, updated_at
                FROM snapshots
                ORDER BY updated_at DESC
            """)

        rows = cursor.fetchall()
        conn.close()
        return [
            {
                "sessionId": row["session_id"],
                "gameId": row["game_id"],
                "status": row["status"],
                "currentSceneId": row["current_scene_id"],
                "updatedAt": row["updated_at"],
            }
            for row in rows
        ]

    def delete_snapshot(self, session_id: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM snapshots WHERE session_id = ?", (session_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted
