"""Session service - keeps live sessions and hubs for the HTTP layer.

Sessions live in memory while the process runs; every accepted change is
also snapshotted through the SnapshotWriter, so a session missing from
memory (after a restart) is resumed from its latest snapshot on first use.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from flask import current_app

from lessonplay.engine.session import (
    GameSession,
    HubSession,
    ResumeResult,
    create_session,
    resume_session,
)
from lessonplay.engine.timers import ManualScheduler, Scheduler, ThreadingScheduler
from lessonplay.errors import ManifestValidationError, PersistenceWarning
from lessonplay.models.hub import HubDefinition
from lessonplay.models.manifest import GameManifest
from lessonplay.storage import (
    FileManifestRepository,
    FileSnapshotRepository,
    ManifestRepository,
    SnapshotRepository,
    SnapshotWriter,
    SQLiteManifestRepository,
    SQLiteSnapshotRepository,
)
from lessonplay.validation import ValidationResult, load_manifest

logger = logging.getLogger(__name__)


class SessionService:
    """Registry of live sessions and hubs backed by repositories."""

    def __init__(
        self,
        manifests: ManifestRepository,
        snapshots: SnapshotRepository,
        async_snapshots: bool = True,
        scheduler: Optional[Scheduler] = None,
    ):
        self.manifests = manifests
        self.snapshots = snapshots
        self.scheduler = scheduler or ThreadingScheduler()
        if async_snapshots:
            self.writer = SnapshotWriter.threaded(snapshots, on_failure=self._on_persistence_failure)
        else:
            self.writer = SnapshotWriter(snapshots, on_failure=self._on_persistence_failure)
        self._sessions: dict[str, GameSession] = {}
        self._hubs: dict[str, HubSession] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Manifests
    # =========================================================================

    def validate_manifest(self, raw: Any) -> ValidationResult:
        return load_manifest(raw)

    def save_manifest(self, raw: Any) -> ValidationResult:
        """Validate a manifest and store it if it has no fatal issues."""
        result = load_manifest(raw)
        if result.valid:
            self.manifests.save_manifest(result.manifest.to_dict())
        return result

    def list_manifests(self) -> list[dict]:
        return self.manifests.list_manifests()

    def get_manifest(self, game_id: str) -> Optional[GameManifest]:
        raw = self.manifests.get_manifest(game_id)
        if raw is None:
            return None
        result = load_manifest(raw)
        if not result.valid:
            raise ManifestValidationError(result.get_fatal_issues())
        return result.manifest

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, game_id: Optional[str] = None, manifest: Optional[dict] = None) -> GameSession:
        """Start a session for a stored manifest or an inline one.

        Raises:
            ManifestValidationError: If the manifest has fatal issues
            KeyError: If game_id names no stored manifest
        """
        if manifest is not None:
            source: GameManifest | dict = manifest
        else:
            stored = self.get_manifest(game_id) if game_id else None
            if stored is None:
                raise KeyError(game_id)
            source = stored

        session = create_session(source, scheduler=self.scheduler, writer=self.writer)
        self._register(session)
        return session

    def get_session(self, session_id: str) -> Optional[GameSession]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            return session

        snapshot = self.snapshots.load_snapshot(session_id)
        if snapshot is None:
            return None
        try:
            manifest = self.get_manifest(snapshot.get("gameId", ""))
        except ManifestValidationError as e:
            logger.warning(f"Stored session {session_id} cannot be resumed: {e}")
            return None
        if manifest is None:
            return None
        result = resume_session(snapshot, manifest, scheduler=self.scheduler, writer=self.writer)
        if not result.success:
            logger.warning(f"Stored session {session_id} cannot be resumed: {result.error.message}")
            return None
        self._register(result.session)
        return result.session

    def resume(self, snapshot: dict, manifest: Optional[dict] = None) -> ResumeResult:
        """Resume a snapshot supplied by the client.

        Raises:
            ManifestValidationError: If the inline manifest has fatal issues
            KeyError: If the snapshot's game is not stored
        """
        if manifest is not None:
            result = load_manifest(manifest)
            if not result.valid:
                raise ManifestValidationError(result.get_fatal_issues())
            game_manifest = result.manifest
        else:
            game_manifest = self.get_manifest(snapshot.get("gameId", ""))
            if game_manifest is None:
                raise KeyError(snapshot.get("gameId"))

        result = resume_session(snapshot, game_manifest, scheduler=self.scheduler, writer=self.writer)
        if result.success:
            self._register(result.session)
        return result

    def _register(self, session: GameSession) -> None:
        with self._lock:
            previous = self._sessions.get(session.session_id)
            self._sessions[session.session_id] = session
        if previous is not None and previous is not session:
            previous.close()

    def _on_persistence_failure(self, warning: PersistenceWarning) -> None:
        with self._lock:
            session = self._sessions.get(warning.session_id)
        if session is not None:
            session.report_persistence_failure(warning)

    # =========================================================================
    # Hubs
    # =========================================================================

    def create_hub(self, definition: dict) -> HubSession:
        """Create a hub session; every world's manifest must be stored.

        Raises:
            pydantic.ValidationError: If the definition is malformed
            HubError: If the definition's gating is invalid
            KeyError: If a world's manifest is not stored
        """
        hub_definition = HubDefinition.model_validate(definition)
        manifests = {}
        for world in hub_definition.worlds:
            manifest = self.get_manifest(world.game_id)
            if manifest is None:
                raise KeyError(world.game_id)
            manifests[world.game_id] = manifest

        hub = HubSession(hub_definition, manifests, scheduler=self.scheduler, writer=self.writer)
        with self._lock:
            self._hubs[hub.hub_session_id] = hub
        return hub

    def get_hub(self, hub_session_id: str) -> Optional[HubSession]:
        with self._lock:
            return self._hubs.get(hub_session_id)

    def register_hub_world(self, session: GameSession) -> None:
        self._register(session)

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            hubs = list(self._hubs.values())
        for session in sessions:
            session.close()
        for hub in hubs:
            hub.close()
        self.writer.close()


def build_session_service(config: dict) -> SessionService:
    """Create the service from Flask config values."""
    if config.get("STORAGE_BACKEND", "file").lower() == "sqlite":
        manifests: ManifestRepository = SQLiteManifestRepository(config["DATABASE_URI"])
        snapshots: SnapshotRepository = SQLiteSnapshotRepository(config["DATABASE_URI"])
    else:
        manifests = FileManifestRepository(config["MANIFESTS_PATH"])
        snapshots = FileSnapshotRepository(config["SNAPSHOTS_PATH"])

    scheduler: Scheduler
    if config.get("TIMER_SCHEDULER") == "manual":
        scheduler = ManualScheduler()
    else:
        scheduler = ThreadingScheduler()

    return SessionService(
        manifests,
        snapshots,
        async_snapshots=config.get("ASYNC_SNAPSHOTS", True),
        scheduler=scheduler,
    )


def get_session_service() -> SessionService:
    """Get the session service of the current app."""
    return current_app.extensions["lessonplay"]


# =============================================================================
# JSON views
# =============================================================================


def session_to_dict(session: GameSession) -> dict[str, Any]:
    state = session.state
    scene = session.current_scene
    return {
        "sessionId": state.session_id,
        "gameId": state.game_id,
        "status": state.status.value,
        "phase": session.phase.value,
        "terminal": state.terminal,
        "currentSceneId": state.current_scene_id,
        "currentScene": scene.model_dump(mode="json", by_alias=True) if scene is not None else None,
        "reviewMode": state.review_mode,
        "historyStack": list(state.history_stack),
        "completedScenes": list(state.completed_scenes),
        "skippedScenes": list(state.skipped_scenes),
        "answers": dict(state.answers),
        "drafts": dict(state.drafts),
        "scores": {
            scene_id: [attempt.model_dump(mode="json", by_alias=True) for attempt in attempts]
            for scene_id, attempts in state.scores.items()
        },
        "achievements": session.achievements.model_dump(mode="json", by_alias=True),
        "timerPending": session.timer.pending,
        "results": session.results().to_dict() if state.terminal else None,
    }


def hub_to_dict(hub: HubSession) -> dict[str, Any]:
    return {
        "hub": hub.hub_state.to_dict(),
        "worldSessions": {
            str(index): session.session_id for index, session in hub.world_sessions.items()
        },
    }
