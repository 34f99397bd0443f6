"""World hub coordinator.

A hub gates worlds (independent manifests) behind prerequisite worlds and
aggregates their results. The coordinator only ever sees a world's final
score; it never looks inside a world's scene graph.

All operations are pure: they take a WorldHubState and return a new one.

Gating rule: a world is available only when every one of its prerequisite
worlds is completed. Completion is permanent, so a world never becomes
locked again once available.
"""

from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from lessonplay.errors import HubError
from lessonplay.models.hub import (
    HubDefinition,
    WorldCompletionStatus,
    WorldHubState,
    WorldStatus,
)
from lessonplay.parameters import (
    HUB_SESSION_DURATION,
    UNIQUE_CODE_ALPHABET,
    UNIQUE_CODE_LENGTH,
)
from lessonplay.validation.validator import CheckResult, ValidationSeverity

logger = logging.getLogger(__name__)


def validate_hub_definition(definition: HubDefinition) -> CheckResult:
    """Check world indices are unique and prerequisites exist and are acyclic."""
    result = CheckResult(check_name="hub")
    indices = [world.world_index for world in definition.worlds]
    known = set(indices)

    seen: set[int] = set()
    for index in indices:
        if index in seen:
            result.add_issue(ValidationSeverity.FATAL, f"Duplicate world index {index}")
        seen.add(index)

    for world in definition.worlds:
        for prereq in world.prerequisite_worlds:
            if prereq not in known:
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"World {world.world_index} requires missing world {prereq}",
                    details={"worldIndex": world.world_index, "prerequisite": prereq},
                )
            elif prereq == world.world_index:
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"World {world.world_index} requires itself",
                    details={"worldIndex": world.world_index},
                )

    cycle = _find_cycle(definition)
    if cycle:
        result.add_issue(
            ValidationSeverity.FATAL,
            f"Prerequisite cycle: {' -> '.join(str(i) for i in cycle)}",
            details={"cycle": cycle},
        )

    for achievement in definition.cross_world_achievements:
        missing = [i for i in achievement.required_worlds if i not in known]
        if missing:
            result.add_issue(
                ValidationSeverity.FATAL,
                f"Cross-world achievement '{achievement.id}' requires missing worlds {missing}",
            )

    return result


def _find_cycle(definition: HubDefinition) -> list[int]:
    prereqs = {w.world_index: [p for p in w.prerequisite_worlds if p != w.world_index] for w in definition.worlds}
    visiting: list[int] = []
    done: set[int] = set()

    def visit(index: int) -> list[int]:
        if index in done or index not in prereqs:
            return []
        if index in visiting:
            return visiting[visiting.index(index):] + [index]
        visiting.append(index)
        for prereq in prereqs[index]:
            cycle = visit(prereq)
            if cycle:
                return cycle
        visiting.pop()
        done.add(index)
        return []

    for index in sorted(prereqs):
        cycle = visit(index)
        if cycle:
            return cycle
    return []


def generate_unique_code(rng: Optional[random.Random] = None) -> str:
    """Code a learner types to return to a hub session."""
    chooser = rng or random.SystemRandom()
    return "".join(chooser.choice(UNIQUE_CODE_ALPHABET) for _ in range(UNIQUE_CODE_LENGTH))


class HubCoordinator:
    """Applies gating and aggregation rules of one hub definition.

    Usage:
        coordinator = HubCoordinator(definition)
        state = coordinator.create_state()
        state = coordinator.start_world(1, state)
        state = coordinator.on_world_completed(1, final_score=85.0, hub_state=state)
        coordinator.can_unlock(3, state)
    """

    def __init__(self, definition: HubDefinition, random_seed: Optional[int] = None):
        check = validate_hub_definition(definition)
        if not check.passed:
            raise HubError("invalid_hub", "; ".join(issue.message for issue in check.issues))
        self.definition = definition
        self._random = random.Random(random_seed) if random_seed is not None else None

    @property
    def session_duration(self) -> timedelta:
        if self.definition.session_duration_days is not None:
            return timedelta(days=self.definition.session_duration_days)
        return HUB_SESSION_DURATION

    def create_state(
        self,
        now: Optional[datetime] = None,
        hub_session_id: Optional[str] = None,
    ) -> WorldHubState:
        """Fresh hub state: worlds without prerequisites start available."""
        now = now or datetime.now(timezone.utc)
        worlds = tuple(
            WorldCompletionStatus(
                world_index=world.world_index,
                world_id=world.world_id,
                status=WorldStatus.LOCKED if world.prerequisite_worlds else WorldStatus.AVAILABLE,
            )
            for world in self.definition.worlds
        )
        state = WorldHubState(
            hub_session_id=hub_session_id or str(uuid.uuid4()),
            hub_id=self.definition.hub_id,
            unique_code=generate_unique_code(self._random),
            worlds=worlds,
            created_at=now,
            last_active_at=now,
            expires_at=now + self.session_duration,
        )
        logger.info(f"Created hub session {state.hub_session_id} for hub {self.definition.hub_id}")
        return _recompute(state)

    def can_unlock(self, world_index: int, hub_state: WorldHubState) -> bool:
        """Whether every prerequisite of the world is completed."""
        world = self.definition.get_world(world_index)
        if world is None:
            return False
        for prereq in world.prerequisite_worlds:
            status = hub_state.get_world(prereq)
            if status is None or status.status != WorldStatus.COMPLETED:
                return False
        return True

    def start_world(
        self,
        world_index: int,
        hub_state: WorldHubState,
        now: Optional[datetime] = None,
    ) -> WorldHubState:
        """Mark a world in progress. Completed worlds can be replayed as is.

        Raises:
            HubError: unknown world, locked world or expired hub
        """
        now = now or datetime.now(timezone.utc)
        self._check_open(hub_state, now)
        world = self._require_world(world_index, hub_state)

        if world.status == WorldStatus.LOCKED:
            raise HubError("world_locked", f"World {world_index} is locked")

        if world.status == WorldStatus.AVAILABLE:
            world = world.model_copy(update={"status": WorldStatus.IN_PROGRESS, "started_at": now})

        logger.info(f"Hub {hub_state.hub_session_id}: world {world_index} started")
        return _replace_world(
            hub_state,
            world,
            current_world_index=world_index,
            last_active_at=now,
        )

    def on_world_completed(
        self,
        world_index: int,
        final_score: float,
        hub_state: WorldHubState,
        completion_percentage: float = 100.0,
        achievements: tuple[str, ...] | list[str] = (),
        now: Optional[datetime] = None,
    ) -> WorldHubState:
        """Record a world's final score and re-evaluate every other world.

        A replayed world keeps its best score.

        Raises:
            HubError: unknown or locked world
        """
        now = now or datetime.now(timezone.utc)
        world = self._require_world(world_index, hub_state)
        if world.status == WorldStatus.LOCKED:
            raise HubError("world_locked", f"World {world_index} is locked")

        previous_best = world.score if world.status == WorldStatus.COMPLETED else None
        merged_achievements = tuple(dict.fromkeys(world.achievements_unlocked + tuple(achievements)))
        world = world.model_copy(
            update={
                "status": WorldStatus.COMPLETED,
                "score": final_score if previous_best is None else max(previous_best, final_score),
                "completion_percentage": max(world.completion_percentage, completion_percentage),
                "started_at": world.started_at or now,
                "completed_at": now,
                "achievements_unlocked": merged_achievements,
            }
        )
        state = _replace_world(hub_state, world, last_active_at=now)

        worlds = []
        for status in state.worlds:
            if status.status == WorldStatus.LOCKED and self.can_unlock(status.world_index, state):
                status = status.model_copy(update={"status": WorldStatus.AVAILABLE})
                logger.info(f"Hub {state.hub_session_id}: world {status.world_index} unlocked")
            worlds.append(status)
        state = state.model_copy(update={"worlds": tuple(worlds)})

        unlocked = list(state.unlocked_achievement_ids)
        for achievement in self.definition.cross_world_achievements:
            if achievement.id in unlocked:
                continue
            if all(_is_completed(state, i) for i in achievement.required_worlds):
                unlocked.append(achievement.id)
        state = state.model_copy(update={"unlocked_achievement_ids": tuple(unlocked)})

        logger.info(
            f"Hub {state.hub_session_id}: world {world_index} completed with score {final_score}"
        )
        return _recompute(state)

    def newly_unlocked_worlds(self, prior: WorldHubState, current: WorldHubState) -> list[int]:
        newly = []
        for world in current.worlds:
            before = prior.get_world(world.world_index)
            if world.status == WorldStatus.AVAILABLE and before is not None and before.status == WorldStatus.LOCKED:
                newly.append(world.world_index)
        return newly

    def is_expired(self, hub_state: WorldHubState, now: Optional[datetime] = None) -> bool:
        return is_expired(hub_state, now)

    def _require_world(self, world_index: int, hub_state: WorldHubState) -> WorldCompletionStatus:
        world = hub_state.get_world(world_index)
        if world is None:
            raise HubError("unknown_world", f"Hub has no world {world_index}")
        return world

    def _check_open(self, hub_state: WorldHubState, now: datetime) -> None:
        if is_expired(hub_state, now):
            raise HubError("hub_expired", f"Hub session {hub_state.hub_session_id} has expired")


def is_expired(hub_state: WorldHubState, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now >= hub_state.expires_at


def _is_completed(hub_state: WorldHubState, world_index: int) -> bool:
    world = hub_state.get_world(world_index)
    return world is not None and world.status == WorldStatus.COMPLETED


def _replace_world(hub_state: WorldHubState, world: WorldCompletionStatus, **updates) -> WorldHubState:
    worlds = tuple(world if w.world_index == world.world_index else w for w in hub_state.worlds)
    return hub_state.model_copy(update={"worlds": worlds, **updates})


def _recompute(hub_state: WorldHubState) -> WorldHubState:
    """Derive totals from the per-world records."""
    worlds = hub_state.worlds
    completed = [w for w in worlds if w.status == WorldStatus.COMPLETED]
    overall = sum(w.completion_percentage for w in completed) / len(worlds) if worlds else 0.0
    return hub_state.model_copy(
        update={
            "total_score": sum(w.score for w in completed),
            "worlds_completed": len(completed),
            "overall_completion_percentage": overall,
        }
    )
