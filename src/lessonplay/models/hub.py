"""Hub models: multi-world definitions and cross-world progress.

A hub groups several independent manifests ("worlds") behind prerequisite
gates. The definition is authored JSON; the hub state is what the
coordinator produces as worlds are started and completed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HubModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class WorldStatus(str, Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorldDefinition(HubModel):
    """One world of a hub.

    Attributes:
        world_index: Position of the world in the hub, unique per hub
        world_id: Stable identifier of the world
        game_id: Manifest gameId played for this world
        prerequisite_worlds: World indices that must be completed first
    """

    world_index: int = Field(ge=0)
    world_id: str = Field(min_length=1)
    game_id: str = Field(min_length=1)
    title: str = ""
    prerequisite_worlds: list[int] = Field(default_factory=list)


class CrossWorldAchievement(HubModel):
    id: str = Field(min_length=1)
    title: str = ""
    description: str = ""
    required_worlds: list[int] = Field(default_factory=list)


class HubDefinition(HubModel):
    hub_id: str = Field(min_length=1)
    title: str = ""
    worlds: list[WorldDefinition] = Field(min_length=1)
    cross_world_achievements: list[CrossWorldAchievement] = Field(default_factory=list)
    session_duration_days: float | None = Field(default=None, gt=0)

    def get_world(self, world_index: int) -> WorldDefinition | None:
        for world in self.worlds:
            if world.world_index == world_index:
                return world
        return None


class WorldCompletionStatus(HubModel):
    world_index: int
    world_id: str
    status: WorldStatus = WorldStatus.LOCKED
    score: float = 0.0
    completion_percentage: float = 0.0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    achievements_unlocked: tuple[str, ...] = ()


class WorldHubState(HubModel):
    """Progress of one learner across all worlds of a hub.

    Instances are never mutated; every coordinator operation returns a new
    state. total_score, worlds_completed and overall_completion_percentage
    are recomputed from worlds on every change.
    """

    hub_session_id: str
    hub_id: str
    unique_code: str
    worlds: tuple[WorldCompletionStatus, ...]
    total_score: float = 0.0
    worlds_completed: int = 0
    overall_completion_percentage: float = 0.0
    current_world_index: int | None = None
    unlocked_achievement_ids: tuple[str, ...] = ()
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime

    def get_world(self, world_index: int) -> WorldCompletionStatus | None:
        for world in self.worlds:
            if world.world_index == world_index:
                return world
        return None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
