"""Session state models for lessonplay.

This module defines the mutable per-learner state driven by the scene state
machine and the derived achievement state produced by the tracker reducer.
Both serialize to camelCase for snapshots.

Invariants maintained by the engine (not by these models):
- history_stack never holds the same scene twice in a row
- scores are append-only: a retry adds an attempt, never rewrites one
- status becomes "completed" only on reaching a terminal scene with every
  required scene on the path completed
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class QuestionResult(StateModel):
    """Score of one submitted question within an attempt.

    Attributes:
        selected_option_ids: Selection as submitted
        earned: Points earned
        possible: Points available
        correct: Whether the answer was fully correct
        invalid_option_ids: Selected ids the question does not have
    """

    question_id: str
    selected_option_ids: list[str] = Field(default_factory=list)
    earned: float = 0.0
    possible: float = 0.0
    correct: bool = False
    invalid_option_ids: list[str] = Field(default_factory=list)


class AttemptRecord(StateModel):
    """One attempt at a quiz or assessment scene.

    Question results fill in as answers arrive. Once every question of the
    scene has a result the aggregate fields are set and the attempt is
    complete; a complete attempt is never modified again.
    """

    attempt: int = Field(ge=1)
    question_results: dict[str, QuestionResult] = Field(default_factory=dict)
    complete: bool = False
    percentage: float | None = None
    passed: bool | None = None
    earned_points: float | None = None
    total_points: float | None = None
    penalty_applied: float = 0.0
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    timed_out: bool = False


class ChoiceRecord(StateModel):
    scene_id: str
    choice_id: str
    points: float = 0.0
    made_at: datetime | None = None


class SessionState(StateModel):
    """Complete state of one learner session.

    A session whose current_scene_id is None has not started yet. A session
    with terminal set has reached the end of its graph: current_scene_id then
    still names the last scene shown.
    """

    session_id: str
    game_id: str
    current_scene_id: str | None = None
    history_stack: list[str] = Field(default_factory=list)
    answers: dict[str, list[str]] = Field(default_factory=dict)
    drafts: dict[str, list[str]] = Field(default_factory=dict)
    scores: dict[str, list[AttemptRecord]] = Field(default_factory=dict)
    completed_scenes: list[str] = Field(default_factory=list)
    skipped_scenes: list[str] = Field(default_factory=list)
    choices: list[ChoiceRecord] = Field(default_factory=list)
    review_mode: bool = False
    status: SessionStatus = SessionStatus.IN_PROGRESS
    terminal: bool = False
    started_at: datetime | None = None
    last_active_at: datetime | None = None
    completed_at: datetime | None = None
    scene_entered_at: datetime | None = None
    event_sequence: int = 0

    @property
    def is_started(self) -> bool:
        return self.current_scene_id is not None

    @property
    def is_closed(self) -> bool:
        return self.terminal or self.status != SessionStatus.IN_PROGRESS

    def attempts(self, scene_id: str) -> list[AttemptRecord]:
        return self.scores.get(scene_id, [])

    def current_attempt(self, scene_id: str) -> AttemptRecord | None:
        attempts = self.scores.get(scene_id)
        return attempts[-1] if attempts else None

    def latest_complete_attempt(self, scene_id: str) -> AttemptRecord | None:
        for record in reversed(self.scores.get(scene_id, [])):
            if record.complete:
                return record
        return None

    def mark_completed(self, scene_id: str) -> bool:
        """Record a scene as completed. Returns False if it already was."""
        if scene_id in self.completed_scenes:
            return False
        self.completed_scenes.append(scene_id)
        return True

    def push_history(self, scene_id: str) -> None:
        if not self.history_stack or self.history_stack[-1] != scene_id:
            self.history_stack.append(scene_id)

    def next_sequence(self) -> int:
        self.event_sequence += 1
        return self.event_sequence


class AchievementState(StateModel):
    """Derived achievement and competency progress.

    Only the achievement reducer produces new instances; unlocked ids grow
    monotonically.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    unlocked_achievement_ids: tuple[str, ...] = ()
    competency_points: dict[str, float] = Field(default_factory=dict)
    competency_levels: dict[str, int] = Field(default_factory=dict)
    completed_scenes: tuple[str, ...] = ()
    choices_made: tuple[str, ...] = ()
    best_percentages: dict[str, float] = Field(default_factory=dict)

    def is_unlocked(self, achievement_id: str) -> bool:
        return achievement_id in self.unlocked_achievement_ids
