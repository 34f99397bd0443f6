"""Scene state machine for lessonplay.

This module implements SceneStateMachine, which moves one session through a
manifest's scene graph. Every operation either applies completely and emits
its events, or returns a NavigationError and leaves the session untouched.

Operation sequence (advance):
1. GUARD - session started and still in progress
2. EXIT CHECK - the current scene's handler allows leaving it
3. RESOLVE - choice or navigation decides the target (or the end)
4. REQUIRED CHECK - ending needs every required scene on the path completed
5. COMMIT - cancel timers, record choice, complete scene, enter target

Pseudo-states: a session is NOT_STARTED until start(), and TERMINAL once a
terminal scene (or an "end" edge) is reached. current_scene_id keeps naming
the last scene shown after the session is terminal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from lessonplay.engine.scene_handlers import RevisitPolicy, Transition, get_handler
from lessonplay.engine.scoring import AggregateScore, QuestionScore, aggregate, score
from lessonplay.engine.timers import ManualScheduler, SceneTimer, Scheduler
from lessonplay.errors import EngineInvariantError, NavigationError
from lessonplay.events import Events
from lessonplay.models.manifest import (
    AssessedScene,
    BaseScene,
    DialogueScene,
    GameManifest,
    Question,
)
from lessonplay.models.state import (
    AttemptRecord,
    ChoiceRecord,
    QuestionResult,
    SessionState,
    SessionStatus,
)
from lessonplay.parameters import SESSION_IDLE_LIMIT

logger = logging.getLogger(__name__)

Emit = Callable[[str, dict[str, Any]], None]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MachinePhase(Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    TERMINAL = "terminal"
    ABANDONED = "abandoned"


@dataclass
class NavigationResult:
    """Result of a navigation request.

    Attributes:
        success: Whether the move was applied
        scene_id: Scene shown after the move (None if not started)
        completed: Whether this move completed the session
        review_mode: Whether the scene is shown read-only
        error: Why the move was refused if success=False
    """

    success: bool
    scene_id: Optional[str] = None
    completed: bool = False
    review_mode: bool = False
    error: Optional[NavigationError] = None


@dataclass
class AnswerResult:
    """Result of submitting or drafting an answer.

    Attributes:
        success: Whether the answer was accepted
        question_id: Question answered
        score: Score of the question (None for drafts and refusals)
        attempt_score: Attempt aggregate, once every question is answered
        error: Why the answer was refused if success=False
    """

    success: bool
    question_id: str
    score: Optional[QuestionScore] = None
    attempt_score: Optional[AggregateScore] = None
    error: Optional[NavigationError] = None


class SceneStateMachine:
    """Drives one session through a manifest's scene graph.

    The machine mutates the SessionState it is given and reports every
    accepted change through ``emit(event_type, data)``. It owns one timer
    slot for dialogue auto-progress and quiz time limits.

    Attributes:
        manifest: Validated manifest being played
        state: Session state (mutated in place)
    """

    def __init__(
        self,
        manifest: GameManifest,
        state: SessionState,
        emit: Emit,
        scheduler: Optional[Scheduler] = None,
        clock: Clock = utc_now,
        idle_limit: timedelta = SESSION_IDLE_LIMIT,
    ) -> None:
        if state.game_id != manifest.game_id:
            raise EngineInvariantError(
                f"Session {state.session_id} belongs to {state.game_id}, not {manifest.game_id}"
            )
        self.manifest = manifest
        self.state = state
        self._emit = emit
        self._clock = clock
        self._idle_limit = idle_limit
        self.timer = SceneTimer(scheduler if scheduler is not None else ManualScheduler())
        # Called after a timer changed the state, so the owner can persist it.
        self.on_timer_fired: Optional[Callable[[], None]] = None

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def phase(self) -> MachinePhase:
        if self.state.status == SessionStatus.ABANDONED:
            return MachinePhase.ABANDONED
        if self.state.terminal:
            return MachinePhase.TERMINAL
        if not self.state.is_started:
            return MachinePhase.NOT_STARTED
        return MachinePhase.ACTIVE

    def current_scene(self) -> Optional[BaseScene]:
        if self.state.current_scene_id is None:
            return None
        return self._scene(self.state.current_scene_id)

    # =========================================================================
    # Navigation
    # =========================================================================

    def start(self) -> NavigationResult:
        """Enter the manifest's start scene."""
        if self.state.is_started:
            return self._refuse("already_started", "Session has already started")

        target = self.manifest.start_scene
        error = self._check_can_end(target, leaving=None)
        if error:
            return NavigationResult(success=False, error=error)
        self.state.started_at = self._clock()
        logger.info(f"Session {self.state.session_id} started at {target}")
        return self._enter(target)

    def advance(self, choice_id: Optional[str] = None, automatic: bool = False) -> NavigationResult:
        """Move forward from the current scene.

        Args:
            choice_id: Dialogue choice taken (required for scenes with choices
                unless automatic)
            automatic: Set by the auto-progress timer

        Returns:
            NavigationResult with the scene entered
        """
        error = self._guard_active()
        if error:
            return NavigationResult(success=False, scene_id=self.state.current_scene_id, error=error)

        scene = self.current_scene()
        handler = get_handler(scene)

        if not self.state.review_mode:
            error = handler.exit_check(scene, self.state)
            if error:
                return self._refused(error)

        transition = handler.resolve_next(scene, choice_id, automatic)
        if isinstance(transition, NavigationError):
            return self._refused(transition)

        error = self._check_transition(transition, leaving=scene.scene_id)
        if error:
            return self._refused(error)

        self.timer.cancel()
        if transition.choice is not None:
            self._record_choice(scene, transition)
        self._complete_scene(scene.scene_id)
        return self._follow(transition)

    def go_back(self) -> NavigationResult:
        """Return to the previous scene.

        The target is the scene's navigation.previous, else the prior history
        entry. Quizzes come back in review mode; attempted assessments
        cannot be re-entered.
        """
        error = self._guard_active()
        if error:
            return NavigationResult(success=False, scene_id=self.state.current_scene_id, error=error)

        scene = self.current_scene()
        history = self.state.history_stack
        target = scene.navigation.previous
        if target is None and len(history) >= 2:
            target = history[-2]
        if target is None:
            return self._refused(
                NavigationError("no_previous_scene", f"Scene '{scene.scene_id}' has no previous scene")
            )

        target_scene = self._scene(target)
        if get_handler(target_scene).revisit == RevisitPolicy.LOCKED and self.state.attempts(target):
            return self._refused(
                NavigationError(
                    "scene_locked",
                    f"Scene '{target}' cannot be revisited",
                    {"sceneId": target},
                )
            )

        self.timer.cancel()
        if history and history[-1] == scene.scene_id:
            history.pop()
        logger.debug(f"Session {self.state.session_id}: back {scene.scene_id} -> {target}")
        return self._enter(target, review=self._is_review(target_scene))

    def skip(self) -> NavigationResult:
        """Skip the current scene. Only optional scenes can be skipped."""
        error = self._guard_active()
        if error:
            return NavigationResult(success=False, scene_id=self.state.current_scene_id, error=error)

        scene = self.current_scene()
        if scene.required:
            return self._refused(
                NavigationError(
                    "scene_required",
                    f"Scene '{scene.scene_id}' is required and cannot be skipped",
                    {"sceneId": scene.scene_id},
                )
            )

        transition = Transition(self._forward_target(scene))
        error = self._check_transition(transition, leaving=scene.scene_id)
        if error:
            return self._refused(error)

        self.timer.cancel()
        if scene.scene_id not in self.state.skipped_scenes:
            self.state.skipped_scenes.append(scene.scene_id)
        self._notify(Events.SCENE_SKIPPED, {"sceneId": scene.scene_id})
        return self._follow(transition)

    def jump_to(self, scene_id: str) -> NavigationResult:
        """Jump to any scene by id (manifests with settings.allowNavigation)."""
        error = self._guard_active()
        if error:
            return NavigationResult(success=False, scene_id=self.state.current_scene_id, error=error)

        if not self.manifest.settings.allow_navigation:
            return self._refused(
                NavigationError("navigation_disabled", "This manifest does not allow free navigation")
            )
        if not self.manifest.has_scene(scene_id):
            return self._refused(
                NavigationError("unknown_scene", f"Scene '{scene_id}' does not exist", {"sceneId": scene_id})
            )

        scene = self.current_scene()
        if scene_id == scene.scene_id:
            return self._refused(
                NavigationError("already_current", f"Scene '{scene_id}' is already shown", {"sceneId": scene_id})
            )

        target_scene = self._scene(scene_id)
        if (
            get_handler(target_scene).revisit == RevisitPolicy.LOCKED
            and self.state.attempts(scene_id)
        ):
            return self._refused(
                NavigationError("scene_locked", f"Scene '{scene_id}' cannot be revisited", {"sceneId": scene_id})
            )

        if not self.state.review_mode:
            error = get_handler(scene).exit_check(scene, self.state)
            if error:
                return self._refused(error)

        transition = Transition(scene_id)
        error = self._check_transition(transition, leaving=scene.scene_id)
        if error:
            return self._refused(error)

        self.timer.cancel()
        self._complete_scene(scene.scene_id)
        logger.debug(f"Session {self.state.session_id}: jump {scene.scene_id} -> {scene_id}")
        return self._enter(scene_id, review=self._is_review(target_scene))

    # =========================================================================
    # Answers
    # =========================================================================

    def submit_answer(self, question_id: str, option_ids: list[str]) -> AnswerResult:
        """Score an answer to a question of the current scene.

        Unknown option ids are accepted and score zero; the score lists them.
        """
        scene, question, error = self._answer_target(question_id)
        if error:
            return AnswerResult(success=False, question_id=question_id, error=error)

        attempt = self._open_attempt(scene)
        if question_id in attempt.question_results:
            return AnswerResult(
                success=False,
                question_id=question_id,
                error=NavigationError(
                    "already_answered",
                    f"Question '{question_id}' is already answered in this attempt",
                    {"questionId": question_id, "attempt": attempt.attempt},
                ),
            )

        question_score, attempt_score = self._score_question(scene, question, attempt, option_ids)
        self._touch()
        return AnswerResult(
            success=True,
            question_id=question_id,
            score=question_score,
            attempt_score=attempt_score,
        )

    def select(self, question_id: str, option_ids: list[str]) -> AnswerResult:
        """Record a draft selection without scoring it.

        Drafts are what a time limit submits when it runs out.
        """
        scene, question, error = self._answer_target(question_id)
        if error:
            return AnswerResult(success=False, question_id=question_id, error=error)

        attempt = self.state.current_attempt(scene.scene_id)
        if attempt is not None and question_id in attempt.question_results:
            return AnswerResult(
                success=False,
                question_id=question_id,
                error=NavigationError(
                    "already_answered",
                    f"Question '{question_id}' is already answered in this attempt",
                    {"questionId": question_id},
                ),
            )

        self.state.drafts[question_id] = list(dict.fromkeys(option_ids))
        self._touch()
        return AnswerResult(success=True, question_id=question_id)

    def retry(self) -> NavigationResult:
        """Start a new attempt on the current quiz or assessment."""
        error = self._guard_active()
        if error:
            return NavigationResult(success=False, scene_id=self.state.current_scene_id, error=error)

        scene = self.current_scene()
        if not isinstance(scene, AssessedScene):
            return self._refused(
                NavigationError("not_answerable", f"Scene '{scene.scene_id}' has no questions")
            )
        if self.state.review_mode:
            return self._refused(
                NavigationError("review_mode", f"Scene '{scene.scene_id}' is shown for review only")
            )

        attempt = self.state.current_attempt(scene.scene_id)
        if attempt is None or not attempt.complete:
            return self._refused(get_handler(scene).exit_check(scene, self.state))

        used = len(self.state.attempts(scene.scene_id))
        if scene.max_attempts is not None and used >= scene.max_attempts:
            return self._refused(
                NavigationError(
                    "max_attempts_reached",
                    f"Scene '{scene.scene_id}' allows {scene.max_attempts} attempts",
                    {"sceneId": scene.scene_id, "maxAttempts": scene.max_attempts},
                )
            )

        self.timer.cancel()
        now = self._clock()
        self.state.scores[scene.scene_id].append(AttemptRecord(attempt=used + 1, started_at=now))
        for question_id in scene.question_ids():
            self.state.drafts.pop(question_id, None)
        self.state.scene_entered_at = now
        self._touch()
        self._arm_timers(scene)
        logger.debug(f"Session {self.state.session_id}: attempt {used + 1} at {scene.scene_id}")
        return NavigationResult(success=True, scene_id=scene.scene_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def abandon(self, reason: str = "user") -> NavigationResult:
        """Close the session without completing it."""
        if self.state.status == SessionStatus.ABANDONED:
            return self._refuse("session_abandoned", "Session was abandoned")
        if self.state.terminal:
            return self._refuse("session_completed", "Session is already completed")

        self.timer.cancel()
        self.state.status = SessionStatus.ABANDONED
        self._notify(
            Events.SESSION_ABANDONED,
            {"sceneId": self.state.current_scene_id, "reason": reason},
        )
        logger.info(f"Session {self.state.session_id} abandoned ({reason})")
        return NavigationResult(success=True, scene_id=self.state.current_scene_id)

    def expire_if_idle(self, now: Optional[datetime] = None) -> bool:
        """Abandon the session if it has been idle past the idle limit.

        Returns:
            True if the session was expired by this call
        """
        if self.state.is_closed or self.state.last_active_at is None:
            return False
        now = now or self._clock()
        if now - self.state.last_active_at <= self._idle_limit:
            return False
        return self.abandon(reason="idle").success

    def resume_timers(self) -> None:
        """Re-arm the current scene's timer with its full delay (after restore)."""
        scene = self.current_scene()
        if scene is not None and self.phase == MachinePhase.ACTIVE:
            self._arm_timers(scene)

    def close(self) -> None:
        """Cancel pending timers. The session state is left as is."""
        self.timer.cancel()

    # =========================================================================
    # Internals
    # =========================================================================

    def _scene(self, scene_id: str) -> BaseScene:
        scene = self.manifest.get_scene(scene_id)
        if scene is None:
            raise EngineInvariantError(f"Scene '{scene_id}' missing from validated manifest")
        return scene

    def _guard_active(self) -> Optional[NavigationError]:
        if self.state.status == SessionStatus.ABANDONED:
            return NavigationError("session_abandoned", "Session was abandoned")
        if self.state.terminal:
            return NavigationError("session_completed", "Session is already completed")
        if not self.state.is_started:
            return NavigationError("not_started", "Session has not started")
        return None

    def _refuse(self, code: str, message: str) -> NavigationResult:
        return self._refused(NavigationError(code, message))

    def _refused(self, error: NavigationError) -> NavigationResult:
        logger.warning(f"Session {self.state.session_id}: refused {error.code}: {error.message}")
        return NavigationResult(
            success=False,
            scene_id=self.state.current_scene_id,
            review_mode=self.state.review_mode,
            error=error,
        )

    def _forward_target(self, scene: BaseScene) -> Optional[str]:
        next_scene = scene.navigation.next
        return None if scene.navigation.ends_session else next_scene

    def _is_review(self, scene: BaseScene) -> bool:
        if get_handler(scene).revisit != RevisitPolicy.REVIEW:
            return False
        return self.state.latest_complete_attempt(scene.scene_id) is not None

    def _check_transition(self, transition: Transition, leaving: Optional[str]) -> Optional[NavigationError]:
        if transition.ends_session:
            return self._missing_required_error(leaving, None)
        return self._check_can_end(transition.target, leaving)

    def _check_can_end(self, target: str, leaving: Optional[str]) -> Optional[NavigationError]:
        """If entering target ends the session, every required scene must be done."""
        target_scene = self._scene(target)
        if not get_handler(target_scene).is_terminal_on_entry(target_scene):
            return None
        return self._missing_required_error(leaving, target)

    def _missing_required_error(self, leaving: Optional[str], entering: Optional[str]) -> Optional[NavigationError]:
        done = set(self.state.completed_scenes)
        if leaving is not None:
            done.add(leaving)
        if entering is not None:
            done.add(entering)
        final_scene = entering if entering is not None else leaving
        candidates = list(self.state.history_stack)
        if final_scene is not None:
            candidates.extend(self._required_on_every_path(final_scene))
        missing = [
            scene_id
            for scene_id in dict.fromkeys(candidates)
            if self._scene(scene_id).required and scene_id not in done
        ]
        if not missing:
            return None
        return NavigationError(
            "required_scenes_incomplete",
            f"Required scenes not completed: {missing}",
            {"missingSceneIds": missing},
        )

    def _required_on_every_path(self, scene_id: str) -> list[str]:
        """Required scenes that every forward path from the start scene to scene_id passes through.

        Jumps can bypass these, so they are checked even when they never
        appear in the history.
        """
        start = self.manifest.start_scene
        if scene_id not in self._forward_reachable(start):
            return []
        return [
            candidate
            for candidate in self._forward_reachable(start)
            if candidate != scene_id
            and self._scene(candidate).required
            and scene_id not in self._forward_reachable(start, avoid=candidate)
        ]

    def _forward_reachable(self, start: str, avoid: Optional[str] = None) -> list[str]:
        """Scene ids reachable from start along forward edges, in discovery order."""
        seen: list[str] = []
        frontier = [start]
        while frontier:
            scene_id = frontier.pop(0)
            if scene_id == avoid or scene_id in seen or not self.manifest.has_scene(scene_id):
                continue
            seen.append(scene_id)
            frontier.extend(self._scene(scene_id).forward_targets())
        return seen

    def _follow(self, transition: Transition) -> NavigationResult:
        if transition.ends_session:
            self._finish()
            return NavigationResult(success=True, scene_id=self.state.current_scene_id, completed=True)
        return self._enter(transition.target)

    def _enter(self, scene_id: str, review: bool = False) -> NavigationResult:
        scene = self._scene(scene_id)
        now = self._clock()
        self.state.current_scene_id = scene_id
        self.state.push_history(scene_id)
        self.state.review_mode = review
        self.state.scene_entered_at = now
        self._touch()
        self._notify(
            Events.SCENE_ENTERED,
            {"sceneId": scene_id, "sceneType": scene.type, "review": review},
        )
        logger.debug(f"Session {self.state.session_id}: entered {scene_id}")

        handler = get_handler(scene)
        if handler.is_terminal_on_entry(scene):
            self._complete_scene(scene_id)
            self._finish()
            return NavigationResult(success=True, scene_id=scene_id, completed=True)

        if not review:
            self._arm_timers(scene)
        return NavigationResult(success=True, scene_id=scene_id, review_mode=review)

    def _finish(self) -> None:
        self.timer.cancel()
        self.state.terminal = True
        self.state.status = SessionStatus.COMPLETED
        self.state.completed_at = self._clock()
        self.state.review_mode = False
        self._notify(
            Events.SESSION_COMPLETED,
            {
                "sceneId": self.state.current_scene_id,
                "completedScenes": list(self.state.completed_scenes),
            },
        )
        logger.info(f"Session {self.state.session_id} completed at {self.state.current_scene_id}")

    def _complete_scene(self, scene_id: str) -> None:
        if self.state.mark_completed(scene_id):
            self._notify(
                Events.SCENE_COMPLETED,
                {"sceneId": scene_id, "sceneType": self._scene(scene_id).type},
            )

    def _record_choice(self, scene: BaseScene, transition: Transition) -> None:
        choice = transition.choice
        self.state.choices.append(
            ChoiceRecord(
                scene_id=scene.scene_id,
                choice_id=choice.id,
                points=choice.points,
                made_at=self._clock(),
            )
        )
        self._notify(
            Events.CHOICE_MADE,
            {"sceneId": scene.scene_id, "choiceId": choice.id, "points": choice.points},
        )

    def _answer_target(self, question_id: str) -> tuple[Optional[AssessedScene], Optional[Question], Optional[NavigationError]]:
        error = self._guard_active()
        if error:
            return None, None, error
        scene = self.current_scene()
        question = scene.get_question(question_id) if isinstance(scene, AssessedScene) else None
        if question is None:
            return None, None, NavigationError(
                "unknown_question",
                f"Scene '{scene.scene_id}' has no question '{question_id}'",
                {"sceneId": scene.scene_id, "questionId": question_id},
            )
        if self.state.review_mode:
            return None, None, NavigationError(
                "already_answered",
                f"Scene '{scene.scene_id}' is shown for review only",
                {"sceneId": scene.scene_id, "questionId": question_id},
            )
        return scene, question, None

    def _open_attempt(self, scene: AssessedScene) -> AttemptRecord:
        """Current in-progress attempt, starting attempt 1 if there is none.

        A complete attempt is never reopened; retry() starts the next one.
        """
        attempt = self.state.current_attempt(scene.scene_id)
        if attempt is None:
            attempt = AttemptRecord(attempt=1, started_at=self.state.scene_entered_at or self._clock())
            self.state.scores.setdefault(scene.scene_id, []).append(attempt)
        return attempt

    def _score_question(
        self,
        scene: AssessedScene,
        question: Question,
        attempt: AttemptRecord,
        option_ids: list[str],
    ) -> tuple[QuestionScore, Optional[AggregateScore]]:
        if attempt.complete:
            raise EngineInvariantError(f"Attempt {attempt.attempt} of {scene.scene_id} is closed")

        question_score = score(question, option_ids)
        attempt.question_results[question.id] = QuestionResult(
            question_id=question.id,
            selected_option_ids=list(question_score.selected_option_ids),
            earned=question_score.earned,
            possible=question_score.possible,
            correct=question_score.correct,
            invalid_option_ids=list(question_score.invalid_option_ids),
        )
        self.state.answers[question.id] = list(question_score.selected_option_ids)
        self.state.drafts.pop(question.id, None)
        self._notify(
            Events.QUESTION_SCORED,
            {
                "sceneId": scene.scene_id,
                "questionId": question.id,
                "attempt": attempt.attempt,
                "earned": question_score.earned,
                "possible": question_score.possible,
                "correct": question_score.correct,
                "invalidOptionIds": list(question_score.invalid_option_ids),
                "competencies": dict(question.competencies),
            },
        )

        if any(qid not in attempt.question_results for qid in scene.question_ids()):
            return question_score, None

        results = [attempt.question_results[qid] for qid in scene.question_ids()]
        attempt_score = aggregate(
            [
                QuestionScore(r.question_id, r.earned, r.possible, r.correct)
                for r in results
            ],
            scene.scoring,
            attempt=attempt.attempt,
        )
        attempt.complete = True
        attempt.percentage = attempt_score.percentage
        attempt.passed = attempt_score.passed
        attempt.earned_points = attempt_score.earned_points
        attempt.total_points = attempt_score.total_points
        attempt.penalty_applied = attempt_score.penalty_applied
        attempt.submitted_at = self._clock()

        if self.timer.kind == "time_limit":
            self.timer.cancel()
        self._notify(
            Events.SCENE_SCORED,
            {
                "sceneId": scene.scene_id,
                "attempt": attempt.attempt,
                "percentage": attempt_score.percentage,
                "passed": attempt_score.passed,
                "earnedPoints": attempt_score.earned_points,
                "totalPoints": attempt_score.total_points,
                "penaltyApplied": attempt_score.penalty_applied,
            },
        )
        logger.debug(
            f"Session {self.state.session_id}: {scene.scene_id} attempt {attempt.attempt} "
            f"scored {attempt_score.percentage:.1f}% (passed={attempt_score.passed})"
        )
        return question_score, attempt_score

    def _arm_timers(self, scene: BaseScene) -> None:
        scene_id = scene.scene_id
        if isinstance(scene, DialogueScene) and scene.auto_progress:
            self.timer.arm(
                "auto_progress",
                scene_id,
                scene.progress_delay_seconds,
                lambda: self._on_auto_progress(scene_id),
            )
        elif isinstance(scene, AssessedScene) and scene.time_limit is not None:
            attempt = self.state.current_attempt(scene_id)
            if attempt is None or not attempt.complete:
                self.timer.arm(
                    "time_limit",
                    scene_id,
                    scene.time_limit,
                    lambda: self._on_time_limit(scene_id),
                )

    def _on_auto_progress(self, scene_id: str) -> None:
        if self.state.current_scene_id != scene_id or self.phase != MachinePhase.ACTIVE:
            return
        result = self.advance(automatic=True)
        if not result.success:
            logger.warning(f"Auto-progress from {scene_id} refused: {result.error.code}")
        elif self.on_timer_fired is not None:
            self.on_timer_fired()

    def _on_time_limit(self, scene_id: str) -> None:
        if self.state.current_scene_id != scene_id or self.phase != MachinePhase.ACTIVE:
            return
        scene = self._scene(scene_id)
        attempt = self._open_attempt(scene)
        attempt.timed_out = True
        logger.info(f"Session {self.state.session_id}: time limit reached at {scene_id}")
        for question in scene.questions:
            if question.id not in attempt.question_results:
                draft = self.state.drafts.get(question.id, [])
                self._score_question(scene, question, attempt, draft)
        self._touch()
        if self.on_timer_fired is not None:
            self.on_timer_fired()

    def _touch(self) -> None:
        self.state.last_active_at = self._clock()

    def _notify(self, event_type: str, data: dict[str, Any]) -> None:
        self._emit(event_type, data)
