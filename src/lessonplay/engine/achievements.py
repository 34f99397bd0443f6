"""Achievement and competency tracker.

reduce() folds one engine event into an AchievementState and returns a new
state; it never mutates its input. Only four event types matter:

- scene_completed: adds the scene to the completed set
- question_scored: adds weight * earned to each competency of the question
- scene_scored: keeps the best percentage seen per scene
- choice_made: adds the choice id to the chosen set

Achievements unlock when all of their requirements hold and, once
unlocked, stay unlocked. Competency levels depend only on the accumulated
points, never on how many events produced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from lessonplay.events import Events
from lessonplay.models.manifest import (
    AchievementDefinition,
    CompetencyDefinition,
    GameManifest,
)
from lessonplay.models.state import AchievementState
from lessonplay.parameters import COMPETENCY_LEVELS, COMPETENCY_THRESHOLDS


class TrackedEvent(Protocol):
    type: str
    data: dict[str, Any]


@dataclass(frozen=True)
class AchievementCatalog:
    """Achievement and competency declarations the reducer evaluates against."""

    achievements: tuple[AchievementDefinition, ...] = ()
    competencies: dict[str, CompetencyDefinition] = field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: GameManifest) -> "AchievementCatalog":
        return cls(
            achievements=tuple(manifest.achievements),
            competencies={c.id: c for c in manifest.competencies},
        )

    def thresholds_for(self, competency_id: str) -> dict[str, float]:
        competency = self.competencies.get(competency_id)
        if competency is None:
            return dict(COMPETENCY_THRESHOLDS)
        return competency.thresholds()

    def get_achievement(self, achievement_id: str) -> AchievementDefinition | None:
        for achievement in self.achievements:
            if achievement.id == achievement_id:
                return achievement
        return None


def level_for(points: float, thresholds: dict[str, float]) -> int:
    """Index of the highest level whose threshold the points reach."""
    level = 0
    for index, name in enumerate(COMPETENCY_LEVELS):
        if points >= thresholds.get(name, COMPETENCY_THRESHOLDS[name]):
            level = index
    return level


def level_name(level: int) -> str:
    return COMPETENCY_LEVELS[level]


def requirements_met(achievement: AchievementDefinition, state: AchievementState) -> bool:
    req = achievement.requirements
    if any(scene_id not in state.completed_scenes for scene_id in req.scenes_completed):
        return False
    if any(choice_id not in state.choices_made for choice_id in req.choices_selected):
        return False
    for threshold in req.score_thresholds:
        best = state.best_percentages.get(threshold.scene_id)
        if best is None or best < threshold.min_percentage:
            return False
    return True


def reduce(prior: AchievementState, event: TrackedEvent, catalog: AchievementCatalog) -> AchievementState:
    """Fold one event into the achievement state.

    Args:
        prior: State before the event
        event: Engine event (anything with ``type`` and ``data``)
        catalog: Declarations to evaluate

    Returns:
        New AchievementState (``prior`` itself for irrelevant events)
    """
    data = event.data
    completed = prior.completed_scenes
    choices = prior.choices_made
    best = dict(prior.best_percentages)
    points = dict(prior.competency_points)

    if event.type == Events.SCENE_COMPLETED:
        scene_id = data["sceneId"]
        if scene_id not in completed:
            completed = completed + (scene_id,)
    elif event.type == Events.QUESTION_SCORED:
        earned = float(data.get("earned", 0.0))
        for competency_id, weight in data.get("competencies", {}).items():
            points[competency_id] = points.get(competency_id, 0.0) + weight * earned
    elif event.type == Events.SCENE_SCORED:
        scene_id = data["sceneId"]
        best[scene_id] = max(best.get(scene_id, 0.0), float(data["percentage"]))
    elif event.type == Events.CHOICE_MADE:
        choice_id = data["choiceId"]
        if choice_id not in choices:
            choices = choices + (choice_id,)
    else:
        return prior

    levels = {
        competency_id: level_for(value, catalog.thresholds_for(competency_id))
        for competency_id, value in points.items()
    }
    candidate = AchievementState(
        unlocked_achievement_ids=prior.unlocked_achievement_ids,
        competency_points=points,
        competency_levels=levels,
        completed_scenes=completed,
        choices_made=choices,
        best_percentages=best,
    )

    unlocked = list(prior.unlocked_achievement_ids)
    for achievement in catalog.achievements:
        if achievement.id not in unlocked and requirements_met(achievement, candidate):
            unlocked.append(achievement.id)

    if len(unlocked) == len(prior.unlocked_achievement_ids):
        return candidate
    return candidate.model_copy(update={"unlocked_achievement_ids": tuple(unlocked)})


def newly_unlocked(prior: AchievementState, current: AchievementState) -> list[str]:
    """Achievement ids unlocked between two states, in unlock order."""
    return [a for a in current.unlocked_achievement_ids if a not in prior.unlocked_achievement_ids]
