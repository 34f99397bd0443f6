"""Per-scene-type navigation policy.

The state machine never branches on scene type directly. It looks up the
handler for the current (or target) scene and asks it:

- revisit: what happens when back navigation returns to the scene
  (free: shown again as new; review: shown read-only with prior answers;
  locked: refused)
- resolve_next: where advancing leads, given an optional choice
- exit_check: whether the scene may be left moving forward
- answerable / timed: whether answers and timers apply

Adding a scene type means adding a handler here and a model in
lessonplay.models.manifest.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from lessonplay.errors import NavigationError
from lessonplay.models.manifest import (
    AssessedScene,
    BaseScene,
    DialogueChoice,
    DialogueScene,
)
from lessonplay.models.state import SessionState
from lessonplay.parameters import END_SCENE


class RevisitPolicy(str, Enum):
    FREE = "free"
    REVIEW = "review"
    LOCKED = "locked"


@dataclass(frozen=True)
class Transition:
    """Where a forward move leads.

    Attributes:
        target: Next scene id, or None when the move ends the session
        choice: Dialogue choice taken, if any
    """

    target: str | None
    choice: DialogueChoice | None = None

    @property
    def ends_session(self) -> bool:
        return self.target is None


def _target(next_scene: str | None) -> str | None:
    if next_scene is None or next_scene == END_SCENE:
        return None
    return next_scene


class SceneHandler:
    """Default policy: free revisits, linear navigation, no answers."""

    revisit = RevisitPolicy.FREE
    answerable = False
    auto_progress = False
    timed = False

    def resolve_next(
        self,
        scene: BaseScene,
        choice_id: str | None = None,
        automatic: bool = False,
    ) -> Transition | NavigationError:
        if choice_id is not None:
            return NavigationError(
                "unknown_choice",
                f"Scene '{scene.scene_id}' has no choices",
                {"sceneId": scene.scene_id, "choiceId": choice_id},
            )
        return Transition(_target(scene.navigation.next))

    def exit_check(self, scene: BaseScene, state: SessionState) -> NavigationError | None:
        return None

    def is_terminal_on_entry(self, scene: BaseScene) -> bool:
        return False


class DialogueHandler(SceneHandler):
    auto_progress = True

    def resolve_next(
        self,
        scene: DialogueScene,
        choice_id: str | None = None,
        automatic: bool = False,
    ) -> Transition | NavigationError:
        if choice_id is None:
            if scene.choices and not automatic:
                return NavigationError(
                    "choice_required",
                    f"Scene '{scene.scene_id}' requires a choice",
                    {"sceneId": scene.scene_id, "choiceIds": [c.id for c in scene.choices]},
                )
            return Transition(_target(scene.navigation.next))

        choice = scene.get_choice(choice_id)
        if choice is None:
            return NavigationError(
                "unknown_choice",
                f"Scene '{scene.scene_id}' has no choice '{choice_id}'",
                {"sceneId": scene.scene_id, "choiceId": choice_id},
            )
        next_scene = choice.next_scene if choice.next_scene is not None else scene.navigation.next
        return Transition(_target(next_scene), choice)


class AssessedHandler(SceneHandler):
    """Quiz policy: must be fully answered before moving on."""

    revisit = RevisitPolicy.REVIEW
    answerable = True
    timed = True

    def exit_check(self, scene: AssessedScene, state: SessionState) -> NavigationError | None:
        attempt = state.current_attempt(scene.scene_id)
        if attempt is None or not attempt.complete:
            answered = list(attempt.question_results) if attempt is not None else []
            pending = [qid for qid in scene.question_ids() if qid not in answered]
            return NavigationError(
                "answers_pending",
                f"Scene '{scene.scene_id}' has unanswered questions",
                {"sceneId": scene.scene_id, "pendingQuestionIds": pending},
            )
        return None


class AssessmentHandler(AssessedHandler):
    revisit = RevisitPolicy.LOCKED


class SummaryHandler(SceneHandler):
    def is_terminal_on_entry(self, scene: BaseScene) -> bool:
        return scene.navigation.ends_session


SCENE_HANDLERS: dict[str, SceneHandler] = {
    "dialogue": DialogueHandler(),
    "quiz": AssessedHandler(),
    "assessment": AssessmentHandler(),
    "resource": SceneHandler(),
    "introduction": SceneHandler(),
    "summary": SummaryHandler(),
}


def get_handler(scene: BaseScene) -> SceneHandler:
    return SCENE_HANDLERS[scene.type]
