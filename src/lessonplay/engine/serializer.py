"""Session snapshots: save and resume.

A snapshot is a versioned, plain-JSON copy of everything needed to resume a
session exactly where it stopped: the session state, the achievement state
and, for hub sessions, the hub state. Restoring checks the snapshot still
fits the manifest it is resumed against; it never guesses a fallback scene.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from lessonplay.errors import StaleSessionError
from lessonplay.models.hub import WorldHubState
from lessonplay.models.manifest import GameManifest
from lessonplay.models.state import AchievementState, SessionState
from lessonplay.parameters import SNAPSHOT_VERSION

logger = logging.getLogger(__name__)


class Snapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    version: int = SNAPSHOT_VERSION
    game_id: str
    session: SessionState
    achievements: AchievementState
    hub: Optional[WorldHubState] = None
    created_at: datetime

    @property
    def session_id(self) -> str:
        return self.session.session_id

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        return cls.model_validate(data)


@dataclass
class RestoredSession:
    state: SessionState
    achievements: AchievementState
    hub: Optional[WorldHubState] = None


def snapshot(
    session: SessionState,
    achievements: AchievementState,
    hub: Optional[WorldHubState] = None,
    now: Optional[datetime] = None,
) -> Snapshot:
    """Capture a deep copy of the session; later mutations don't leak into it."""
    return Snapshot(
        version=SNAPSHOT_VERSION,
        game_id=session.game_id,
        session=session.model_copy(deep=True),
        achievements=achievements,
        hub=hub,
        created_at=now or datetime.now(timezone.utc),
    )


def restore(data: Snapshot | dict[str, Any], manifest: GameManifest) -> RestoredSession:
    """Rebuild session state from a snapshot.

    Raises:
        StaleSessionError: If the snapshot is malformed, has another version,
            belongs to another game, or names scenes the manifest lacks
    """
    if isinstance(data, dict):
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise StaleSessionError(f"Unsupported snapshot version {version!r}")
        try:
            data = Snapshot.from_dict(data)
        except ValidationError as e:
            raise StaleSessionError(f"Snapshot is malformed: {e.error_count()} errors") from e

    if data.version != SNAPSHOT_VERSION:
        raise StaleSessionError(f"Unsupported snapshot version {data.version!r}")
    if data.game_id != manifest.game_id or data.session.game_id != manifest.game_id:
        raise StaleSessionError(
            f"Snapshot is for game '{data.game_id}', manifest is '{manifest.game_id}'"
        )

    state = data.session.model_copy(deep=True)
    referenced = list(state.history_stack)
    if state.current_scene_id is not None:
        referenced.insert(0, state.current_scene_id)
    missing = [scene_id for scene_id in dict.fromkeys(referenced) if not manifest.has_scene(scene_id)]
    if missing:
        logger.warning(f"Snapshot {state.session_id} references missing scenes {missing}")
        raise StaleSessionError(
            f"Manifest no longer contains scenes {missing}",
            missing_scene_ids=missing,
        )

    logger.info(f"Restored session {state.session_id} at {state.current_scene_id}")
    return RestoredSession(state=state, achievements=data.achievements, hub=data.hub)
