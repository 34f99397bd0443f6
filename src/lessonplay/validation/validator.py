"""Manifest validator for lessonplay.

This module provides deterministic validation for game manifests. Every
check runs and every issue is reported, so an author sees all problems in
one pass instead of fixing them one at a time.

What is validated:
1. Structure: schema version, scene id uniqueness, field types (pydantic)
2. Start scene: startScene names an existing scene
3. Navigation: every next/previous/choice target exists ("end" allowed forward)
4. Identifiers: choice, question and option ids are unique where they must be
5. Answer keys: every question is answerable
6. Reachability: scenes unreachable from startScene (warning)
7. Scene policy: skip/auto-progress settings that cannot behave as written
8. Achievements and competencies: declared requirements reference real content

Fatal issues prevent a session from starting. Warnings never do.

Validation is pure: the same input always yields the same issues, in the
same order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from lessonplay.models.manifest import (
    AssessedScene,
    DialogueScene,
    GameManifest,
    SummaryScene,
)
from lessonplay.parameters import END_SCENE, SUPPORTED_SCHEMA_MAJORS


# =============================================================================
# Validation Result Data Classes
# =============================================================================


class ValidationSeverity(Enum):
    """Severity level for validation issues."""

    FATAL = "fatal"  # Manifest cannot be loaded
    WARNING = "warning"  # Loads, but the author probably made a mistake


@dataclass
class ValidationIssue:
    """A single validation issue found."""

    check_name: str
    severity: ValidationSeverity
    message: str
    scene_id: str | None = None
    details: dict | None = None

    def to_dict(self) -> dict:
        return {
            "check": self.check_name,
            "severity": self.severity.value,
            "message": self.message,
            "sceneId": self.scene_id,
            "details": self.details,
        }


@dataclass
class CheckResult:
    """Result of a single validation check."""

    check_name: str
    passed: bool = True
    issues: list[ValidationIssue] = field(default_factory=list)

    def add_issue(
        self,
        severity: ValidationSeverity,
        message: str,
        scene_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Add an issue to this check result."""
        self.issues.append(
            ValidationIssue(
                check_name=self.check_name,
                severity=severity,
                message=message,
                scene_id=scene_id,
                details=details,
            )
        )
        if severity == ValidationSeverity.FATAL:
            self.passed = False


@dataclass
class ValidationResult:
    """Complete validation result for a manifest.

    ``manifest`` is set whenever the document parsed into a GameManifest,
    even if later graph checks failed; callers must check ``valid`` before
    executing it.
    """

    manifest: GameManifest | None = None
    game_id: str | None = None
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.manifest is not None and all(check.passed for check in self.checks)

    def get_all_issues(self) -> list[ValidationIssue]:
        """Get all issues from all checks, in check order."""
        issues = []
        for check in self.checks:
            issues.extend(check.issues)
        return issues

    def get_fatal_issues(self) -> list[ValidationIssue]:
        return [i for i in self.get_all_issues() if i.severity == ValidationSeverity.FATAL]

    def get_warnings(self) -> list[ValidationIssue]:
        return [i for i in self.get_all_issues() if i.severity == ValidationSeverity.WARNING]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "gameId": self.game_id,
            "valid": self.valid,
            "checks": {check.check_name: check.passed for check in self.checks},
            "issues": [issue.to_dict() for issue in self.get_all_issues()],
        }


# =============================================================================
# Structural Checks (raw document)
# =============================================================================


def check_schema_version(raw: dict) -> CheckResult:
    """Check the declared schema version is one this engine executes."""
    result = CheckResult(check_name="schema_version")
    version = raw.get("schemaVersion", raw.get("schema_version"))
    if not isinstance(version, str) or not version:
        result.add_issue(ValidationSeverity.FATAL, "Missing schemaVersion")
        return result

    major_text = version.split(".", 1)[0]
    if not major_text.isdigit():
        result.add_issue(
            ValidationSeverity.FATAL,
            f"schemaVersion '{version}' is not a semantic version",
            details={"schemaVersion": version},
        )
    elif int(major_text) not in SUPPORTED_SCHEMA_MAJORS:
        result.add_issue(
            ValidationSeverity.FATAL,
            f"Unsupported schemaVersion '{version}'",
            details={"schemaVersion": version, "supportedMajors": list(SUPPORTED_SCHEMA_MAJORS)},
        )
    return result


def check_scene_id_uniqueness(raw: dict) -> CheckResult:
    """Check scene ids are unique and agree with their map keys."""
    result = CheckResult(check_name="scene_ids")
    scenes = raw.get("scenes")

    if isinstance(scenes, list):
        seen: set[str] = set()
        reported: set[str] = set()
        for index, scene in enumerate(scenes):
            scene_id = _raw_id(scene)
            if scene_id is None:
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Scene at position {index} has no sceneId",
                    details={"index": index},
                )
                continue
            if scene_id in seen and scene_id not in reported:
                reported.add(scene_id)
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Duplicate scene id '{scene_id}'",
                    scene_id=scene_id,
                )
            seen.add(scene_id)
    elif isinstance(scenes, dict):
        for key, scene in scenes.items():
            scene_id = _raw_id(scene)
            if scene_id is not None and scene_id != key:
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Scene keyed '{key}' declares sceneId '{scene_id}'",
                    scene_id=key,
                    details={"key": key, "sceneId": scene_id},
                )
    elif scenes is not None:
        result.add_issue(ValidationSeverity.FATAL, "scenes must be an array or an object")

    return result


def check_model(raw: dict) -> tuple[CheckResult, GameManifest | None]:
    """Parse the document into a GameManifest, reporting every field error."""
    result = CheckResult(check_name="structure")
    try:
        manifest = GameManifest.model_validate(raw)
    except ValidationError as e:
        for error in e.errors():
            loc = [str(part) for part in error["loc"]]
            scene_id = loc[1] if len(loc) > 1 and loc[0] == "scenes" else None
            result.add_issue(
                ValidationSeverity.FATAL,
                f"{'.'.join(loc) or 'manifest'}: {error['msg']}",
                scene_id=scene_id,
                details={"loc": loc, "type": error["type"]},
            )
        return result, None
    return result, manifest


# =============================================================================
# Graph Checks (parsed manifest)
# =============================================================================


def check_start_scene(manifest: GameManifest) -> CheckResult:
    result = CheckResult(check_name="start_scene")
    if not manifest.has_scene(manifest.start_scene):
        result.add_issue(
            ValidationSeverity.FATAL,
            f"startScene '{manifest.start_scene}' does not exist",
            details={"startScene": manifest.start_scene},
        )
    return result


def check_navigation_targets(manifest: GameManifest) -> CheckResult:
    """Check every navigation and choice edge points at an existing scene.

    "end" is a valid forward target. A previous edge must name a scene.
    """
    result = CheckResult(check_name="navigation")

    for scene_id, scene in manifest.scenes.items():
        nav = scene.navigation
        if nav.next is not None and nav.next != END_SCENE and not manifest.has_scene(nav.next):
            result.add_issue(
                ValidationSeverity.FATAL,
                f"Scene '{scene_id}' navigates next to missing scene '{nav.next}'",
                scene_id=scene_id,
                details={"edge": "next", "target": nav.next},
            )
        if nav.previous is not None and not manifest.has_scene(nav.previous):
            result.add_issue(
                ValidationSeverity.FATAL,
                f"Scene '{scene_id}' navigates previous to missing scene '{nav.previous}'",
                scene_id=scene_id,
                details={"edge": "previous", "target": nav.previous},
            )
        if isinstance(scene, DialogueScene):
            for choice in scene.choices:
                target = choice.next_scene
                if target is not None and target != END_SCENE and not manifest.has_scene(target):
                    result.add_issue(
                        ValidationSeverity.FATAL,
                        f"Choice '{choice.id}' in scene '{scene_id}' targets missing scene '{target}'",
                        scene_id=scene_id,
                        details={"edge": "choice", "choiceId": choice.id, "target": target},
                    )

    return result


def check_identifiers(manifest: GameManifest) -> CheckResult:
    """Check choice ids per scene, question ids per manifest and option ids per question."""
    result = CheckResult(check_name="identifiers")
    question_owner: dict[str, str] = {}

    for scene_id, scene in manifest.scenes.items():
        if isinstance(scene, DialogueScene):
            for dup in _duplicates([choice.id for choice in scene.choices]):
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Duplicate choice id '{dup}' in scene '{scene_id}'",
                    scene_id=scene_id,
                )
        if isinstance(scene, AssessedScene):
            for question in scene.questions:
                if question.id in question_owner:
                    result.add_issue(
                        ValidationSeverity.FATAL,
                        f"Duplicate question id '{question.id}' "
                        f"(scenes '{question_owner[question.id]}' and '{scene_id}')",
                        scene_id=scene_id,
                    )
                else:
                    question_owner[question.id] = scene_id
                for dup in _duplicates(question.option_ids()):
                    result.add_issue(
                        ValidationSeverity.FATAL,
                        f"Duplicate option id '{dup}' in question '{question.id}'",
                        scene_id=scene_id,
                    )

    return result


def check_answer_keys(manifest: GameManifest) -> CheckResult:
    """Check every question can be answered correctly.

    A question needs at least one correct option unless it is scored in
    partial-credit mode. A single-select question needs exactly one.
    """
    result = CheckResult(check_name="answer_keys")

    for scene, question in manifest.iter_questions():
        correct = question.correct_option_ids()
        if not correct and not question.uses_partial_credit:
            result.add_issue(
                ValidationSeverity.FATAL,
                f"Question '{question.id}' has no correct option",
                scene_id=scene.scene_id,
                details={"questionId": question.id},
            )
        elif not question.is_multi_select and len(correct) > 1:
            result.add_issue(
                ValidationSeverity.FATAL,
                f"Single-select question '{question.id}' marks {len(correct)} options correct",
                scene_id=scene.scene_id,
                details={"questionId": question.id, "correct": correct},
            )
        if question.uses_partial_credit:
            max_credit = sum(
                option.partial_credit or 0.0
                for option in question.options
                if option.id in question.credited_option_ids()
            )
            if max_credit < question.points:
                result.add_issue(
                    ValidationSeverity.WARNING,
                    f"Question '{question.id}' can earn at most {max_credit} of {question.points} points",
                    scene_id=scene.scene_id,
                    details={"questionId": question.id},
                )
        if question.question_type == "true-false" and len(question.options) != 2:
            result.add_issue(
                ValidationSeverity.WARNING,
                f"True/false question '{question.id}' has {len(question.options)} options",
                scene_id=scene.scene_id,
            )

    return result


def check_reachability(manifest: GameManifest) -> CheckResult:
    """Warn about scenes that cannot be reached moving forward from startScene."""
    result = CheckResult(check_name="reachability")
    if not manifest.has_scene(manifest.start_scene):
        return result

    reachable = reachable_scene_ids(manifest)
    for scene_id in manifest.scene_ids():
        if scene_id not in reachable:
            result.add_issue(
                ValidationSeverity.WARNING,
                f"Scene '{scene_id}' is unreachable from '{manifest.start_scene}'",
                scene_id=scene_id,
            )

    can_end = any(
        isinstance(manifest.scenes[scene_id], SummaryScene)
        or _has_end_edge(manifest.scenes[scene_id])
        for scene_id in reachable
    )
    if not can_end:
        result.add_issue(
            ValidationSeverity.WARNING,
            "No reachable scene ends the session",
        )
    return result


def check_scene_policies(manifest: GameManifest) -> CheckResult:
    result = CheckResult(check_name="scene_policies")

    for scene_id, scene in manifest.scenes.items():
        if scene.required and scene.navigation.can_skip:
            result.add_issue(
                ValidationSeverity.WARNING,
                f"Scene '{scene_id}' allows skipping but is required; skip will be refused",
                scene_id=scene_id,
            )
        if isinstance(scene, DialogueScene) and scene.auto_progress:
            if scene.progress_delay is None:
                result.add_issue(
                    ValidationSeverity.WARNING,
                    f"Scene '{scene_id}' auto-progresses without a progressDelay; it advances immediately",
                    scene_id=scene_id,
                )
            if scene.choices:
                result.add_issue(
                    ValidationSeverity.WARNING,
                    f"Scene '{scene_id}' auto-progresses past its choices",
                    scene_id=scene_id,
                )

    return result


def check_achievements(manifest: GameManifest) -> CheckResult:
    """Check declared achievements only reference real scenes and choices."""
    result = CheckResult(check_name="achievements")
    choice_ids = {
        choice.id
        for scene in manifest.scenes.values()
        if isinstance(scene, DialogueScene)
        for choice in scene.choices
    }

    for dup in _duplicates([a.id for a in manifest.achievements]):
        result.add_issue(ValidationSeverity.FATAL, f"Duplicate achievement id '{dup}'")

    for achievement in manifest.achievements:
        req = achievement.requirements
        for scene_id in req.scenes_completed:
            if not manifest.has_scene(scene_id):
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Achievement '{achievement.id}' requires missing scene '{scene_id}'",
                    details={"achievementId": achievement.id},
                )
        for threshold in req.score_thresholds:
            scene = manifest.get_scene(threshold.scene_id)
            if not isinstance(scene, AssessedScene):
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Achievement '{achievement.id}' sets a score threshold on "
                    f"'{threshold.scene_id}', which is not a scored scene",
                    details={"achievementId": achievement.id},
                )
        for choice_id in req.choices_selected:
            if choice_id not in choice_ids:
                result.add_issue(
                    ValidationSeverity.FATAL,
                    f"Achievement '{achievement.id}' requires missing choice '{choice_id}'",
                    details={"achievementId": achievement.id},
                )

    return result


def check_competencies(manifest: GameManifest) -> CheckResult:
    result = CheckResult(check_name="competencies")
    declared = {competency.id for competency in manifest.competencies}

    for dup in _duplicates([c.id for c in manifest.competencies]):
        result.add_issue(ValidationSeverity.FATAL, f"Duplicate competency id '{dup}'")

    warned: set[str] = set()
    for scene, question in manifest.iter_questions():
        for competency_id in question.competencies:
            if competency_id not in declared and competency_id not in warned:
                warned.add(competency_id)
                result.add_issue(
                    ValidationSeverity.WARNING,
                    f"Competency '{competency_id}' is not declared; default levels apply",
                    scene_id=scene.scene_id,
                )
    return result


# =============================================================================
# Graph helpers
# =============================================================================


def reachable_scene_ids(manifest: GameManifest) -> set[str]:
    """Scene ids reachable from startScene along forward edges."""
    reachable: set[str] = set()
    frontier = [manifest.start_scene]
    while frontier:
        scene_id = frontier.pop()
        if scene_id in reachable or not manifest.has_scene(scene_id):
            continue
        reachable.add(scene_id)
        frontier.extend(manifest.scenes[scene_id].forward_targets())
    return reachable


def _has_end_edge(scene: Any) -> bool:
    if scene.navigation.ends_session:
        return True
    if isinstance(scene, DialogueScene):
        return any(choice.next_scene == END_SCENE for choice in scene.choices)
    return False


def _duplicates(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    dups: list[str] = []
    for item in ids:
        if item in seen and item not in dups:
            dups.append(item)
        seen.add(item)
    return dups


def _raw_id(scene: Any) -> str | None:
    if not isinstance(scene, dict):
        return None
    for key in ("sceneId", "id", "scene_id"):
        value = scene.get(key)
        if isinstance(value, str):
            return value
    return None


# =============================================================================
# Validator
# =============================================================================


class ManifestValidator:
    """Manifest validator running every check in a fixed order.

    Usage:
        validator = ManifestValidator()
        result = validator.validate(raw_manifest)

        if not result.valid:
            for issue in result.get_fatal_issues():
                print(f"FATAL: {issue.message}")
    """

    def validate(self, raw: dict | GameManifest) -> ValidationResult:
        """Validate a manifest document or an already parsed manifest.

        Args:
            raw: Manifest as a dictionary (as decoded from JSON) or a GameManifest

        Returns:
            ValidationResult with all check results
        """
        result = ValidationResult()

        if isinstance(raw, GameManifest):
            manifest = raw
            result.checks.append(check_schema_version({"schemaVersion": manifest.schema_version}))
        else:
            if not isinstance(raw, dict):
                check = CheckResult(check_name="structure")
                check.add_issue(ValidationSeverity.FATAL, "Manifest must be a JSON object")
                result.checks.append(check)
                return result

            result.game_id = raw.get("gameId") if isinstance(raw.get("gameId"), str) else None
            result.checks.append(check_schema_version(raw))
            result.checks.append(check_scene_id_uniqueness(raw))
            structure, manifest = check_model(raw)
            result.checks.append(structure)
            if manifest is None:
                return result

        result.manifest = manifest
        result.game_id = manifest.game_id
        result.checks.extend(
            [
                check_start_scene(manifest),
                check_navigation_targets(manifest),
                check_identifiers(manifest),
                check_answer_keys(manifest),
                check_reachability(manifest),
                check_scene_policies(manifest),
                check_achievements(manifest),
                check_competencies(manifest),
            ]
        )
        return result


def validate_manifest(raw: dict | GameManifest) -> ValidationResult:
    """Validate a manifest (convenience function)."""
    return ManifestValidator().validate(raw)
