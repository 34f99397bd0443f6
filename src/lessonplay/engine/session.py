"""Engine API for lessonplay.

This is the surface hosts program against:

    result = load_manifest(manifest_json)
    session = create_session(result.manifest)
    session.subscribe(print)
    session.advance()
    session.submit_answer("q1", ["b"])
    snapshot = session.get_snapshot()

    resumed = resume_session(snapshot, result.manifest)
    if resumed.success:
        session = resumed.session

GameSession wires the scene state machine to the event emitter, the
achievement reducer and (optionally) a SnapshotWriter. Every accepted
change publishes its events, folds them into the achievement state and
queues a snapshot. Operations are serialized per session with a lock so
timer callbacks from another thread never interleave with host calls.

HubSession runs one GameSession per started world under a HubCoordinator.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from lessonplay.engine.achievements import AchievementCatalog, newly_unlocked, reduce
from lessonplay.engine.hub import HubCoordinator
from lessonplay.engine.serializer import Snapshot, restore, snapshot
from lessonplay.engine.state_machine import (
    AnswerResult,
    Clock,
    MachinePhase,
    NavigationResult,
    SceneStateMachine,
    utc_now,
)
from lessonplay.engine.timers import Callback, ManualScheduler, Scheduler, TimerHandle
from lessonplay.errors import (
    HubError,
    ManifestValidationError,
    NavigationError,
    PersistenceWarning,
    StaleSessionError,
)
from lessonplay.events import Event, EventEmitter, Events, Listener
from lessonplay.models.hub import HubDefinition, WorldHubState
from lessonplay.models.manifest import AssessedScene, BaseScene, GameManifest
from lessonplay.models.state import AchievementState, SessionState, SessionStatus
from lessonplay.storage.writer import SnapshotWriter
from lessonplay.validation.loader import load_manifest, load_manifest_or_raise
from lessonplay.validation.validator import validate_manifest

logger = logging.getLogger(__name__)

__all__ = [
    "GameSession",
    "HubSession",
    "HubResult",
    "ResumeResult",
    "SceneResult",
    "SessionResults",
    "create_session",
    "load_manifest",
    "resume_session",
    "session_results",
]


# =============================================================================
# Results
# =============================================================================


@dataclass
class ResumeResult:
    """Result of resuming a snapshot.

    Attributes:
        success: Whether the session was restored
        session: Restored session if success=True
        error: Why the snapshot could not be resumed
        restart_available: A fresh session can be started instead
    """

    success: bool
    session: Optional["GameSession"] = None
    error: Optional[StaleSessionError] = None
    restart_available: bool = False


@dataclass
class SceneResult:
    scene_id: str
    attempts: int
    percentage: float
    passed: bool
    earned_points: float
    total_points: float


@dataclass
class SessionResults:
    """Final results of a session.

    Scored totals use the latest complete attempt of each quiz and
    assessment. ``percentage`` weights each scene's attempt percentage
    (retry penalties included) by the scene's points.
    """

    session_id: str
    game_id: str
    status: SessionStatus
    total_earned: float
    total_possible: float
    percentage: float
    passed: bool
    completion_rate: float
    scene_results: list[SceneResult] = field(default_factory=list)
    choice_points: float = 0.0
    elapsed: Optional[timedelta] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "gameId": self.game_id,
            "status": self.status.value,
            "totalEarned": self.total_earned,
            "totalPossible": self.total_possible,
            "percentage": self.percentage,
            "passed": self.passed,
            "completionRate": self.completion_rate,
            "choicePoints": self.choice_points,
            "elapsedSeconds": self.elapsed.total_seconds() if self.elapsed is not None else None,
            "sceneResults": [
                {
                    "sceneId": r.scene_id,
                    "attempts": r.attempts,
                    "percentage": r.percentage,
                    "passed": r.passed,
                    "earnedPoints": r.earned_points,
                    "totalPoints": r.total_points,
                }
                for r in self.scene_results
            ],
        }


def session_results(state: SessionState, manifest: GameManifest) -> SessionResults:
    """Summarize a session's scores and completion."""
    scene_results = []
    for scene in manifest.scenes.values():
        if not isinstance(scene, AssessedScene):
            continue
        attempt = state.latest_complete_attempt(scene.scene_id)
        if attempt is None:
            continue
        scene_results.append(
            SceneResult(
                scene_id=scene.scene_id,
                attempts=len(state.attempts(scene.scene_id)),
                percentage=attempt.percentage,
                passed=bool(attempt.passed),
                earned_points=attempt.earned_points,
                total_points=attempt.total_points,
            )
        )

    total_earned = sum(r.earned_points for r in scene_results)
    total_possible = sum(r.total_points for r in scene_results)
    if total_possible > 0:
        percentage = sum(r.percentage * r.total_points for r in scene_results) / total_possible
    else:
        percentage = 0.0

    required = manifest.required_scene_ids()
    done = [scene_id for scene_id in required if scene_id in state.completed_scenes]
    completion_rate = len(done) / len(required) if required else 1.0

    if scene_results:
        passed = all(r.passed for r in scene_results)
    else:
        passed = state.status == SessionStatus.COMPLETED

    elapsed = None
    end = state.completed_at or state.last_active_at
    if state.started_at is not None and end is not None:
        elapsed = end - state.started_at

    return SessionResults(
        session_id=state.session_id,
        game_id=state.game_id,
        status=state.status,
        total_earned=total_earned,
        total_possible=total_possible,
        percentage=percentage,
        passed=passed,
        completion_rate=completion_rate,
        scene_results=scene_results,
        choice_points=sum(choice.points for choice in state.choices),
        elapsed=elapsed,
    )


# =============================================================================
# Game session
# =============================================================================


class _SerializedScheduler:
    """Runs timer callbacks under the session lock."""

    def __init__(self, scheduler: Scheduler, lock: threading.RLock):
        self._scheduler = scheduler
        self._lock = lock

    def schedule(self, delay_s: float, callback: Callback) -> TimerHandle:
        def locked() -> None:
            with self._lock:
                callback()

        return self._scheduler.schedule(delay_s, locked)


class GameSession:
    """One learner playing one manifest.

    Attributes:
        manifest: Validated manifest
        state: Session state (owned by the state machine)
        achievements: Current achievement state
        events: Event emitter for this session
        persistence_warnings: Snapshot write failures reported so far
    """

    def __init__(
        self,
        manifest: GameManifest,
        state: SessionState,
        achievements: Optional[AchievementState] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Clock = utc_now,
        writer: Optional[SnapshotWriter] = None,
    ) -> None:
        self.manifest = manifest
        self.state = state
        self.achievements = achievements or AchievementState()
        self.events = EventEmitter()
        self.persistence_warnings: list[PersistenceWarning] = []
        self.hub_state_provider: Optional[Callable[[], WorldHubState]] = None
        self._catalog = AchievementCatalog.from_manifest(manifest)
        self._clock = clock
        self._writer = writer
        self._lock = threading.RLock()
        self._machine = SceneStateMachine(
            manifest,
            state,
            self._emit,
            scheduler=_SerializedScheduler(scheduler or ManualScheduler(), self._lock),
            clock=clock,
        )
        self._machine.on_timer_fired = self._persist

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def phase(self) -> MachinePhase:
        return self._machine.phase

    @property
    def is_completed(self) -> bool:
        return self.state.status == SessionStatus.COMPLETED

    @property
    def current_scene(self) -> Optional[BaseScene]:
        return self._machine.current_scene()

    @property
    def timer(self):
        return self._machine.timer

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[list[str]] = None,
        replay: bool = False,
    ) -> Callable[[], None]:
        return self.events.subscribe(listener, event_types, replay)

    def get_snapshot(self) -> Snapshot:
        with self._lock:
            hub = self.hub_state_provider() if self.hub_state_provider is not None else None
            return snapshot(self.state, self.achievements, hub=hub, now=self._clock())

    def results(self) -> SessionResults:
        with self._lock:
            return session_results(self.state, self.manifest)

    # =========================================================================
    # Operations
    # =========================================================================

    def start(self) -> NavigationResult:
        return self._run(self._machine.start)

    def advance(self, choice_id: Optional[str] = None) -> NavigationResult:
        return self._run(lambda: self._machine.advance(choice_id))

    def go_back(self) -> NavigationResult:
        return self._run(self._machine.go_back)

    def skip(self) -> NavigationResult:
        return self._run(self._machine.skip)

    def jump_to(self, scene_id: str) -> NavigationResult:
        return self._run(lambda: self._machine.jump_to(scene_id))

    def submit_answer(self, question_id: str, option_ids: list[str]) -> AnswerResult:
        return self._run(lambda: self._machine.submit_answer(question_id, option_ids))

    def select(self, question_id: str, option_ids: list[str]) -> AnswerResult:
        return self._run(lambda: self._machine.select(question_id, option_ids))

    def retry(self) -> NavigationResult:
        return self._run(self._machine.retry)

    def abandon(self) -> NavigationResult:
        """Abandon the session. Unlocked achievements are kept.

        Refused while the snapshot recording completion is still being written.
        """
        with self._lock:
            if self._writer is not None and self._writer.terminal_write_in_flight(self.session_id):
                return NavigationResult(
                    success=False,
                    scene_id=self.state.current_scene_id,
                    error=NavigationError(
                        "completion_in_flight",
                        "Session completion is still being saved",
                    ),
                )
            return self._run(self._machine.abandon)

    def expire_if_idle(self, now: Optional[datetime] = None) -> bool:
        with self._lock:
            expired = self._machine.expire_if_idle(now)
            if expired:
                self._persist()
            return expired

    def report_persistence_failure(self, warning: PersistenceWarning) -> None:
        """Record a failed snapshot write and publish persistence_failed."""
        with self._lock:
            self.persistence_warnings.append(warning)
            self._emit(
                Events.PERSISTENCE_FAILED,
                {"sceneId": self.state.current_scene_id, "error": str(warning.cause)},
            )

    def close(self) -> None:
        """Cancel timers. Call when the host tears the session down."""
        with self._lock:
            self._machine.close()

    def resume_timers(self) -> None:
        with self._lock:
            self._machine.resume_timers()

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(self, operation: Callable[[], Any]) -> Any:
        with self._lock:
            result = operation()
            if result.success:
                self._persist()
            return result

    def _emit(self, event_type: str, data: dict[str, Any]) -> None:
        event = Event(
            type=event_type,
            sequence=self.state.next_sequence(),
            timestamp=self._clock(),
            session_id=self.session_id,
            data=data,
        )
        self.events.publish(event)

        prior = self.achievements
        self.achievements = reduce(prior, event, self._catalog)
        for achievement_id in newly_unlocked(prior, self.achievements):
            achievement = self._catalog.get_achievement(achievement_id)
            logger.info(f"Session {self.session_id}: achievement {achievement_id} unlocked")
            self._emit(
                Events.ACHIEVEMENT_UNLOCKED,
                {
                    "sceneId": data.get("sceneId"),
                    "achievementId": achievement_id,
                    "title": achievement.title if achievement is not None else "",
                },
            )

    def _persist(self) -> None:
        if self._writer is None:
            return
        snap = self.get_snapshot()
        self._writer.submit(self.session_id, snap.to_dict(), terminal=self.state.terminal)


def create_session(
    manifest: GameManifest | str | bytes | dict,
    session_id: Optional[str] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Clock = utc_now,
    writer: Optional[SnapshotWriter] = None,
    start: bool = True,
) -> GameSession:
    """Create a session for a manifest and (by default) enter its start scene.

    Raises:
        ManifestValidationError: If the manifest has fatal issues
    """
    if isinstance(manifest, GameManifest):
        result = validate_manifest(manifest)
        if not result.valid:
            raise ManifestValidationError(result.get_fatal_issues())
    else:
        manifest = load_manifest_or_raise(manifest)

    state = SessionState(
        session_id=session_id or str(uuid.uuid4()),
        game_id=manifest.game_id,
    )
    session = GameSession(manifest, state, scheduler=scheduler, clock=clock, writer=writer)
    logger.info(f"Created session {state.session_id} for {manifest.game_id}")
    if start:
        session.start()
    return session


def resume_session(
    snapshot_data: Snapshot | dict,
    manifest: GameManifest,
    scheduler: Optional[Scheduler] = None,
    clock: Clock = utc_now,
    writer: Optional[SnapshotWriter] = None,
    start_timers: bool = True,
) -> ResumeResult:
    """Resume a session from a snapshot.

    Timers of the current scene are re-armed with their full delay, unless
    start_timers is False (the caller then calls resume_timers itself).
    """
    try:
        restored = restore(snapshot_data, manifest)
    except StaleSessionError as e:
        logger.warning(f"Cannot resume snapshot: {e.message}")
        return ResumeResult(success=False, error=e, restart_available=True)

    session = GameSession(
        manifest,
        restored.state,
        achievements=restored.achievements,
        scheduler=scheduler,
        clock=clock,
        writer=writer,
    )
    if start_timers:
        session.resume_timers()
    logger.info(f"Resumed session {session.session_id} at {restored.state.current_scene_id}")
    return ResumeResult(success=True, session=session)


# =============================================================================
# Hub session
# =============================================================================


@dataclass
class HubResult:
    success: bool
    hub_state: Optional[WorldHubState] = None
    session: Optional[GameSession] = None
    error: Optional[HubError] = None


class HubSession:
    """A learner's progress through a multi-world hub.

    Each started world gets its own independent GameSession. The hub only
    listens for each world's session_completed event and records the
    world's final score (its results percentage).
    """

    def __init__(
        self,
        definition: HubDefinition,
        manifests: dict[str, GameManifest],
        state: Optional[WorldHubState] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Clock = utc_now,
        writer: Optional[SnapshotWriter] = None,
        random_seed: Optional[int] = None,
    ) -> None:
        self.coordinator = HubCoordinator(definition, random_seed=random_seed)
        self.definition = definition
        self.manifests = manifests
        self.events = EventEmitter()
        self.world_sessions: dict[int, GameSession] = {}
        self._scheduler = scheduler
        self._clock = clock
        self._writer = writer
        self._sequence = 0
        self._lock = threading.RLock()
        self.hub_state = state or self.coordinator.create_state(now=clock())

    @property
    def hub_session_id(self) -> str:
        return self.hub_state.hub_session_id

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[list[str]] = None,
        replay: bool = False,
    ) -> Callable[[], None]:
        return self.events.subscribe(listener, event_types, replay)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.coordinator.is_expired(self.hub_state, now or self._clock())

    def can_unlock(self, world_index: int) -> bool:
        return self.coordinator.can_unlock(world_index, self.hub_state)

    def start_world(self, world_index: int) -> HubResult:
        """Start (or replay) a world and return its new GameSession.

        Session locks are only taken after the hub lock is released; world
        completions arrive holding a session lock and then take the hub lock.
        """
        with self._lock:
            world = self.definition.get_world(world_index)
            if world is None:
                return HubResult(False, self.hub_state, error=HubError("unknown_world", f"Hub has no world {world_index}"))
            manifest = self.manifests.get(world.game_id)
            if manifest is None:
                return HubResult(
                    False,
                    self.hub_state,
                    error=HubError("manifest_missing", f"No manifest loaded for game '{world.game_id}'"),
                )
            try:
                self.hub_state = self.coordinator.start_world(world_index, self.hub_state, now=self._clock())
            except HubError as e:
                logger.warning(f"Hub {self.hub_session_id}: cannot start world {world_index}: {e.code}")
                return HubResult(False, self.hub_state, error=e)

            session = create_session(
                manifest,
                scheduler=self._scheduler,
                clock=self._clock,
                writer=self._writer,
                start=False,
            )
            previous = self._attach(world_index, session)
            self._publish(Events.WORLD_STARTED, {"worldIndex": world_index, "worldId": world.world_id})

        if previous is not None:
            previous.close()
        session.start()
        return HubResult(True, self.hub_state, session=session)

    def resume_world(self, world_index: int, snapshot_data: Snapshot | dict) -> HubResult:
        """Resume a world's session from its snapshot."""
        with self._lock:
            world = self.definition.get_world(world_index)
            manifest = self.manifests.get(world.game_id) if world is not None else None
        if manifest is None:
            return HubResult(False, self.hub_state, error=HubError("unknown_world", f"Cannot resume world {world_index}"))

        resumed = resume_session(
            snapshot_data,
            manifest,
            scheduler=self._scheduler,
            clock=self._clock,
            writer=self._writer,
            start_timers=False,
        )
        if not resumed.success:
            return HubResult(False, self.hub_state, error=HubError("stale_session", resumed.error.message))

        with self._lock:
            previous = self._attach(world_index, resumed.session)
        if previous is not None:
            previous.close()
        resumed.session.resume_timers()
        return HubResult(True, self.hub_state, session=resumed.session)

    def close(self) -> None:
        with self._lock:
            sessions = list(self.world_sessions.values())
        for session in sessions:
            session.close()

    def _attach(self, world_index: int, session: GameSession) -> Optional[GameSession]:
        """Register a world's session; returns the session it replaces, for the caller to close."""
        previous = self.world_sessions.get(world_index)
        self.world_sessions[world_index] = session
        session.hub_state_provider = lambda: self.hub_state
        session.subscribe(
            lambda event: self._on_world_completed(world_index, session),
            [Events.SESSION_COMPLETED],
        )
        return previous

    def _on_world_completed(self, world_index: int, session: GameSession) -> None:
        with self._lock:
            results = session_results(session.state, session.manifest)
            prior = self.hub_state
            self.hub_state = self.coordinator.on_world_completed(
                world_index,
                final_score=results.percentage,
                hub_state=self.hub_state,
                completion_percentage=results.completion_rate * 100.0,
                achievements=session.achievements.unlocked_achievement_ids,
                now=self._clock(),
            )
            world = self.hub_state.get_world(world_index)
            self._publish(
                Events.WORLD_COMPLETED,
                {
                    "worldIndex": world_index,
                    "worldId": world.world_id,
                    "score": results.percentage,
                    "totalScore": self.hub_state.total_score,
                    "unlockedWorlds": self.coordinator.newly_unlocked_worlds(prior, self.hub_state),
                },
            )
            for achievement_id in self.hub_state.unlocked_achievement_ids:
                if achievement_id not in prior.unlocked_achievement_ids:
                    self._publish(
                        Events.ACHIEVEMENT_UNLOCKED,
                        {"achievementId": achievement_id, "worldIndex": world_index, "scope": "hub"},
                    )

    def _publish(self, event_type: str, data: dict[str, Any]) -> None:
        self._sequence += 1
        self.events.publish(
            Event(
                type=event_type,
                sequence=self._sequence,
                timestamp=self._clock(),
                session_id=self.hub_session_id,
                data=data,
            )
        )
