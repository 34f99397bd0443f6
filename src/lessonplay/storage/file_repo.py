"""File-based repository implementations using JSON files.

Manifests are stored in the manifests/ directory, one file per gameId.
Snapshots are stored in the snapshots/ directory, one file per session; a
new snapshot replaces the file atomically so a crash mid-write never leaves
a truncated snapshot behind.
"""

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .repository import (
    ManifestRepository,
    SnapshotRepository,
    manifest_summary,
    snapshot_summary,
)


def slugify(text: str) -> str:
    """Convert an identifier to a filesystem-safe slug.

    Examples:
        >>> slugify("Workplace Safety 101")
        'workplace-safety-101'
        >>> slugify("gdpr_basics: v2")
        'gdpr-basics-v2'
    """
    text = text.lower()
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"[^a-z0-9-]", "", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-")


def _write_json_atomic(path: Path, data: dict) -> None:
    tmp_path = path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


class FileManifestRepository(ManifestRepository):
    """JSON file-based manifest repository.

    File names are slugified gameIds (e.g., 'gdpr-basics.json'); the
    original gameId is kept inside the document.
    """

    def __init__(self, manifests_path: str | Path = "manifests"):
        self.manifests_path = Path(manifests_path)
        self.manifests_path.mkdir(parents=True, exist_ok=True)

    def _get_manifest_path(self, game_id: str) -> Path:
        return self.manifests_path / f"{slugify(game_id)}.json"

    def list_manifests(self) -> list[dict]:
        manifests = []
        for path in self.manifests_path.glob("*.json"):
            with open(path, encoding="utf-8") as f:
                manifests.append(manifest_summary(json.load(f)))
        return sorted(manifests, key=lambda x: x["title"])

    def get_manifest(self, game_id: str) -> Optional[dict]:
        path = self._get_manifest_path(game_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if data.get("gameId") != game_id:
            return None
        return data

    def save_manifest(self, manifest: dict) -> str:
        game_id = manifest.get("gameId")
        if not game_id:
            raise ValueError("Manifest must have a 'gameId' field")
        if not slugify(game_id):
            raise ValueError(f"gameId '{game_id}' has no filesystem-safe characters")
        _write_json_atomic(self._get_manifest_path(game_id), manifest)
        return game_id

    def delete_manifest(self, game_id: str) -> bool:
        path = self._get_manifest_path(game_id)
        if path.exists():
            path.unlink()
            return True
        return False


class FileSnapshotRepository(SnapshotRepository):
    """JSON file-based snapshot repository. Session ids are UUIDs."""

    def __init__(self, snapshots_path: str | Path = "snapshots"):
        self.snapshots_path = Path(snapshots_path)
        self.snapshots_path.mkdir(parents=True, exist_ok=True)

    def _get_snapshot_path(self, session_id: str) -> Path:
        return self.snapshots_path / f"{slugify(session_id)}.json"

    def save_snapshot(self, session_id: str, snapshot: dict) -> None:
        record = {
            "sessionId": session_id,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
            "snapshot": snapshot,
        }
        _write_json_atomic(self._get_snapshot_path(session_id), record)

    def load_snapshot(self, session_id: str) -> Optional[dict]:
        path = self._get_snapshot_path(session_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)["snapshot"]

    def list_snapshots(self, game_id: Optional[str] = None) -> list[dict]:
        snapshots = []
        for path in self.snapshots_path.glob("*.json"):
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
            summary = snapshot_summary(record["sessionId"], record["snapshot"], record["updatedAt"])
            if game_id is not None and summary["gameId"] != game_id:
                continue
            snapshots.append(summary)
        return sorted(snapshots, key=lambda x: x["updatedAt"], reverse=True)

    def delete_snapshot(self, session_id: str) -> bool:
        path = self._get_snapshot_path(session_id)
        if path.exists():
            path.unlink()
            return True
        return False
