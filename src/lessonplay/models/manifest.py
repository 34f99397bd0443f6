"""Pydantic models for lessonplay game manifests.

A manifest is the declarative JSON document describing every scene of one
learning experience. The models here describe its shape only; graph-level
rules (dangling references, duplicate ids, reachability, answer keys) are
checked by lessonplay.validation so that every problem can be reported at
once instead of stopping at the first.

Manifests are authored in camelCase. Every model accepts both the camelCase
alias and the Python field name, and serializes back to camelCase. Unknown
fields are kept (and ignored) so renderer-only data such as ``theme``
survives a load/dump cycle.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from lessonplay.parameters import (
    COMPETENCY_LEVELS,
    COMPETENCY_THRESHOLDS,
    DEFAULT_PASSING_SCORE,
    DEFAULT_QUESTION_POINTS,
    END_SCENE,
)

SceneType = Literal["dialogue", "quiz", "assessment", "resource", "introduction", "summary"]
SCENE_TYPES: tuple[str, ...] = (
    "dialogue",
    "quiz",
    "assessment",
    "resource",
    "introduction",
    "summary",
)

QuestionType = Literal["multiple-choice", "true-false", "multiple-select"]


class ManifestModel(BaseModel):
    """Base for all manifest models: camelCase aliases, frozen, extra kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )


# =============================================================================
# Metadata and settings
# =============================================================================


class GameMetadata(ManifestModel):
    """Descriptive metadata shown by the presentation layer."""

    title: str = Field(min_length=1)
    subtitle: str | None = None
    description: str | None = None
    duration: str | None = Field(default=None, description='e.g. "7 minutes"')
    difficulty: Literal["beginner", "intermediate", "advanced"] | None = None
    tags: list[str] = Field(default_factory=list)
    learning_objectives: list[str] = Field(default_factory=list)
    target_audience: str | None = None
    language: str | None = Field(default=None, description="ISO language code")
    version: str | None = None


class ManifestSettings(ManifestModel):
    """Global game settings."""

    allow_navigation: bool = Field(
        default=False,
        description="Whether the learner may jump to any scene by id",
    )
    show_progress: bool = True
    auto_save: bool = True
    sound_enabled: bool = False


# =============================================================================
# Navigation
# =============================================================================


class Navigation(ManifestModel):
    """Outgoing and backward edges of a scene.

    ``next`` may name a scene or be the literal "end". A missing ``next``
    also ends the session when the scene is advanced.
    """

    next: str | None = None
    previous: str | None = None
    can_skip: bool = False

    @property
    def ends_session(self) -> bool:
        return self.next is None or self.next == END_SCENE


# =============================================================================
# Questions and scoring
# =============================================================================


class QuestionOption(ManifestModel):
    """One selectable answer option."""

    id: str = Field(min_length=1)
    text: str = ""
    correct: bool = Field(
        default=False,
        validation_alias=AliasChoices("correct", "isCorrect"),
    )
    partial_credit: float | None = Field(
        default=None,
        ge=0.0,
        validation_alias=AliasChoices("partialCredit", "partial_credit", "score"),
        description="Points earned when this option is selected (partial-credit mode)",
    )
    feedback: str | None = None


class Question(ManifestModel):
    """A scored question inside a quiz or assessment scene."""

    id: str = Field(min_length=1)
    text: str = ""
    question_type: QuestionType = "multiple-choice"
    allow_multiple: bool = False
    points: float = Field(
        default=DEFAULT_QUESTION_POINTS,
        gt=0.0,
        validation_alias=AliasChoices("points", "weight"),
    )
    options: list[QuestionOption] = Field(min_length=1)
    competencies: dict[str, float] = Field(
        default_factory=dict,
        description="Competency id -> weight applied to earned points",
    )

    @property
    def is_multi_select(self) -> bool:
        return self.allow_multiple or self.question_type == "multiple-select"

    @property
    def uses_partial_credit(self) -> bool:
        """Partial credit is opt-in: any option carrying a weight turns it on."""
        return any(option.partial_credit is not None for option in self.options)

    def option_ids(self) -> list[str]:
        return [option.id for option in self.options]

    def get_option(self, option_id: str) -> QuestionOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def correct_option_ids(self) -> list[str]:
        """Options flagged correct in the answer key."""
        return [option.id for option in self.options if option.correct]

    def credited_option_ids(self) -> list[str]:
        """Options that earn credit.

        Normally the options flagged correct. A partial-credit-only question
        (weights but no correct flags) credits every option with a positive
        weight.
        """
        correct = self.correct_option_ids()
        if correct or not self.uses_partial_credit:
            return correct
        return [
            option.id
            for option in self.options
            if option.partial_credit is not None and option.partial_credit > 0
        ]


class ScoringConfig(ManifestModel):
    """Pass/fail and retry settings for a quiz or assessment."""

    passing_score: float = Field(default=DEFAULT_PASSING_SCORE, ge=0.0, le=100.0)
    penalty_per_retry: float = Field(default=0.0, ge=0.0, le=100.0)
    show_score: bool = True
    feedback: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Scenes
# =============================================================================


class BaseScene(ManifestModel):
    """Fields shared by every scene type."""

    scene_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("sceneId", "id", "scene_id"),
    )
    title: str | None = None
    required: bool = True
    navigation: Navigation = Field(default_factory=Navigation)

    def forward_targets(self) -> list[str]:
        """Scene ids reachable by moving forward from this scene."""
        targets = []
        if self.navigation.next is not None and self.navigation.next != END_SCENE:
            targets.append(self.navigation.next)
        return targets


class DialogueMessage(ManifestModel):
    text: str
    character_id: str | None = None
    emotion: Literal["neutral", "happy", "concerned", "thinking"] | None = None
    delay: int | None = Field(default=None, ge=0, description="Milliseconds before showing")


class DialogueChoice(ManifestModel):
    """A branch the learner can take out of a dialogue."""

    id: str = Field(min_length=1)
    text: str = ""
    next_scene: str | None = None
    points: float = 0.0


class DialogueScene(BaseScene):
    """Narrative scene with optional branching choices and auto-progress."""

    type: Literal["dialogue"] = "dialogue"
    character: dict[str, Any] | None = None
    messages: list[DialogueMessage] = Field(default_factory=list)
    choices: list[DialogueChoice] = Field(default_factory=list)
    auto_progress: bool = False
    progress_delay: int | None = Field(
        default=None,
        ge=0,
        description="Milliseconds before an automatic advance",
    )

    def get_choice(self, choice_id: str) -> DialogueChoice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def forward_targets(self) -> list[str]:
        targets = super().forward_targets()
        for choice in self.choices:
            if choice.next_scene is not None and choice.next_scene != END_SCENE:
                if choice.next_scene not in targets:
                    targets.append(choice.next_scene)
        return targets

    @property
    def progress_delay_seconds(self) -> float:
        return (self.progress_delay or 0) / 1000.0


class AssessedScene(BaseScene):
    """Common shape of quiz and assessment scenes."""

    questions: list[Question] = Field(min_length=1)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    max_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Maximum attempts; None allows unlimited retries",
    )
    time_limit: float | None = Field(
        default=None,
        gt=0.0,
        description="Seconds before the current selections are auto-submitted",
    )

    def get_question(self, question_id: str) -> Question | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def question_ids(self) -> list[str]:
        return [question.id for question in self.questions]


class QuizScene(AssessedScene):
    """Knowledge check.

    Also accepts the single-question authoring shape (``question`` and
    ``options`` directly on the scene), normalized into ``questions``.
    """

    type: Literal["quiz"] = "quiz"

    @model_validator(mode="before")
    @classmethod
    def normalize_single_question(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "questions" in data or "question" not in data:
            return data
        data = dict(data)
        scene_id = data.get("sceneId") or data.get("id") or data.get("scene_id")
        question: dict[str, Any] = {
            "id": scene_id,
            "text": data.pop("question"),
            "options": data.pop("options", []),
        }
        if "allowMultiple" in data:
            question["allowMultiple"] = data.pop("allowMultiple")
        if "points" in data:
            question["points"] = data.pop("points")
        data["questions"] = [question]
        return data


class AssessmentScene(AssessedScene):
    """Final evaluation. Cannot be re-entered by back navigation."""

    type: Literal["assessment"] = "assessment"
    instructions: str | None = None


class ResourceItem(ManifestModel):
    id: str
    title: str
    type: Literal["pdf", "video", "link", "download"] = "link"
    url: str
    description: str | None = None


class ResourceScene(BaseScene):
    """Reference material. Usually optional and often a hub entry point."""

    type: Literal["resource"] = "resource"
    description: str | None = None
    resources: list[ResourceItem] = Field(default_factory=list)
    layout: Literal["grid", "list"] = "list"


class IntroductionScene(BaseScene):
    type: Literal["introduction"] = "introduction"
    message: str = ""
    objectives: list[str] = Field(default_factory=list)


class SummaryScene(BaseScene):
    """Completion scene. Without outgoing navigation it is terminal."""

    type: Literal["summary"] = "summary"
    message: str = ""
    next_actions: list[dict[str, Any]] = Field(default_factory=list)


Scene = Annotated[
    Union[
        DialogueScene,
        QuizScene,
        AssessmentScene,
        ResourceScene,
        IntroductionScene,
        SummaryScene,
    ],
    Field(discriminator="type"),
]


# =============================================================================
# Achievements and competencies
# =============================================================================


class ScoreThreshold(ManifestModel):
    scene_id: str
    min_percentage: float = Field(ge=0.0, le=100.0)


class AchievementRequirements(ManifestModel):
    """All listed requirements must hold for the achievement to unlock."""

    scenes_completed: list[str] = Field(default_factory=list)
    score_thresholds: list[ScoreThreshold] = Field(default_factory=list)
    choices_selected: list[str] = Field(default_factory=list)


class AchievementDefinition(ManifestModel):
    id: str = Field(min_length=1)
    title: str = ""
    description: str = ""
    requirements: AchievementRequirements = Field(default_factory=AchievementRequirements)


class CompetencyDefinition(ManifestModel):
    """A tracked skill dimension with optional level threshold overrides."""

    id: str = Field(min_length=1)
    name: str = ""
    levels: dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_level_names(self) -> "CompetencyDefinition":
        unknown = sorted(set(self.levels) - set(COMPETENCY_LEVELS))
        if unknown:
            raise ValueError(
                f"Competency '{self.id}' overrides unknown levels {unknown}. "
                f"Valid levels: {list(COMPETENCY_LEVELS)}"
            )
        return self

    def thresholds(self) -> dict[str, float]:
        merged = dict(COMPETENCY_THRESHOLDS)
        merged.update(self.levels)
        return merged


# =============================================================================
# Manifest root
# =============================================================================


class GameManifest(ManifestModel):
    """Root manifest document.

    ``scenes`` may be authored as an array or an id-keyed map; it is always
    held id-keyed, in authoring order.
    """

    schema_version: str = Field(min_length=1)
    game_id: str = Field(min_length=1)
    metadata: GameMetadata
    start_scene: str = Field(min_length=1)
    scenes: dict[str, Scene]
    settings: ManifestSettings = Field(default_factory=ManifestSettings)
    achievements: list[AchievementDefinition] = Field(default_factory=list)
    competencies: list[CompetencyDefinition] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_scenes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        scenes = data.get("scenes")
        if isinstance(scenes, list):
            data = dict(data)
            data["scenes"] = {_raw_scene_id(scene): scene for scene in scenes}
        elif isinstance(scenes, dict):
            normalized = {}
            for key, scene in scenes.items():
                if isinstance(scene, dict) and _raw_scene_id(scene) is None:
                    scene = {**scene, "sceneId": key}
                normalized[key] = scene
            data = dict(data)
            data["scenes"] = normalized
        return data

    def get_scene(self, scene_id: str) -> BaseScene | None:
        return self.scenes.get(scene_id)

    def has_scene(self, scene_id: str) -> bool:
        return scene_id in self.scenes

    def scene_ids(self) -> list[str]:
        return list(self.scenes)

    def required_scene_ids(self) -> list[str]:
        return [scene_id for scene_id, scene in self.scenes.items() if scene.required]

    def iter_questions(self) -> list[tuple[AssessedScene, Question]]:
        pairs = []
        for scene in self.scenes.values():
            if isinstance(scene, AssessedScene):
                for question in scene.questions:
                    pairs.append((scene, question))
        return pairs

    def get_competency(self, competency_id: str) -> CompetencyDefinition | None:
        for competency in self.competencies:
            if competency.id == competency_id:
                return competency
        return None

    def to_dict(self) -> dict:
        """Serialize manifest to a camelCase dictionary."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def _raw_scene_id(scene: Any) -> str | None:
    if not isinstance(scene, dict):
        return None
    for key in ("sceneId", "id", "scene_id"):
        value = scene.get(key)
        if isinstance(value, str):
            return value
    return None
