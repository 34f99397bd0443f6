"""Manifest execution engine for lessonplay.

This module contains the runtime side of the engine:
- scoring: Question scoring and attempt aggregation
- scene_handlers: Per-scene-type navigation policy
- timers: Cancellable auto-progress and time-limit timers
- state_machine: Scene-to-scene navigation for one session
- achievements: Achievement and competency reducer
- hub: Multi-world gating and aggregation
- serializer: Snapshots and restore
- session: GameSession/HubSession API

Usage:
    from lessonplay.engine import create_session, load_manifest

    result = load_manifest(manifest_json)
    if not result.valid:
        for issue in result.get_fatal_issues():
            print(f"FATAL: {issue.message}")

    session = create_session(result.manifest)
    session.advance()
    answer = session.submit_answer("q1", ["b"])
    print(answer.score.earned, answer.score.possible)

    # Check if the session is over
    if session.is_completed:
        print(session.results().percentage)
"""

from lessonplay.engine.achievements import (
    AchievementCatalog,
    level_for,
    level_name,
    newly_unlocked,
    reduce,
    requirements_met,
)
from lessonplay.engine.hub import (
    HubCoordinator,
    generate_unique_code,
    is_expired,
    validate_hub_definition,
)
from lessonplay.engine.scene_handlers import (
    SCENE_HANDLERS,
    RevisitPolicy,
    SceneHandler,
    Transition,
    get_handler,
)
from lessonplay.engine.scoring import (
    AggregateScore,
    QuestionScore,
    aggregate,
    score,
)
from lessonplay.engine.serializer import RestoredSession, Snapshot, restore, snapshot
from lessonplay.engine.session import (
    GameSession,
    HubResult,
    HubSession,
    ResumeResult,
    SceneResult,
    SessionResults,
    create_session,
    load_manifest,
    resume_session,
    session_results,
)
from lessonplay.engine.state_machine import (
    AnswerResult,
    MachinePhase,
    NavigationResult,
    SceneStateMachine,
)
from lessonplay.engine.timers import (
    AsyncioScheduler,
    ManualScheduler,
    SceneTimer,
    ThreadingScheduler,
)

__all__ = [
    # Session API
    "GameSession",
    "HubSession",
    "HubResult",
    "ResumeResult",
    "SessionResults",
    "SceneResult",
    "create_session",
    "load_manifest",
    "resume_session",
    "session_results",
    # State machine
    "SceneStateMachine",
    "MachinePhase",
    "NavigationResult",
    "AnswerResult",
    "SCENE_HANDLERS",
    "RevisitPolicy",
    "SceneHandler",
    "Transition",
    "get_handler",
    # Timers
    "ManualScheduler",
    "AsyncioScheduler",
    "ThreadingScheduler",
    "SceneTimer",
    # Scoring
    "QuestionScore",
    "AggregateScore",
    "score",
    "aggregate",
    # Achievements
    "AchievementCatalog",
    "reduce",
    "newly_unlocked",
    "requirements_met",
    "level_for",
    "level_name",
    # Hub
    "HubCoordinator",
    "validate_hub_definition",
    "generate_unique_code",
    "is_expired",
    # Snapshots
    "Snapshot",
    "RestoredSession",
    "snapshot",
    "restore",
]
