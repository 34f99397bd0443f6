"""Lessonplay data models.

This module exports the manifest, session and hub data structures.
"""

from .hub import (
    CrossWorldAchievement,
    HubDefinition,
    WorldCompletionStatus,
    WorldDefinition,
    WorldHubState,
    WorldStatus,
)
from .manifest import (
    SCENE_TYPES,
    AchievementDefinition,
    AchievementRequirements,
    AssessedScene,
    AssessmentScene,
    BaseScene,
    CompetencyDefinition,
    DialogueChoice,
    DialogueMessage,
    DialogueScene,
    GameManifest,
    GameMetadata,
    IntroductionScene,
    ManifestSettings,
    Navigation,
    Question,
    QuestionOption,
    QuizScene,
    ResourceItem,
    ResourceScene,
    Scene,
    ScoreThreshold,
    ScoringConfig,
    SummaryScene,
)
from .state import (
    AchievementState,
    AttemptRecord,
    ChoiceRecord,
    QuestionResult,
    SessionState,
    SessionStatus,
)

__all__ = [
    # Manifest
    "GameManifest",
    "GameMetadata",
    "ManifestSettings",
    "Navigation",
    "SCENE_TYPES",
    "Scene",
    "BaseScene",
    "AssessedScene",
    "DialogueScene",
    "DialogueMessage",
    "DialogueChoice",
    "QuizScene",
    "AssessmentScene",
    "ResourceScene",
    "ResourceItem",
    "IntroductionScene",
    "SummaryScene",
    "Question",
    "QuestionOption",
    "ScoringConfig",
    "AchievementDefinition",
    "AchievementRequirements",
    "ScoreThreshold",
    "CompetencyDefinition",
    # Session state
    "SessionState",
    "SessionStatus",
    "AttemptRecord",
    "QuestionResult",
    "ChoiceRecord",
    "AchievementState",
    # Hub
    "HubDefinition",
    "WorldDefinition",
    "CrossWorldAchievement",
    "WorldHubState",
    "WorldCompletionStatus",
    "WorldStatus",
]
