"""Error taxonomy for lessonplay.

Fatal load-time problems raise. Recoverable runtime problems (navigation
policy, malformed answers, stale snapshots) are carried back to the caller
inside result objects so a presentation layer can react without a global
error handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lessonplay.validation.validator import ValidationIssue


class LessonplayError(Exception):
    """Base class for all engine errors."""


class ManifestValidationError(LessonplayError):
    """A manifest failed validation and no session may start from it."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues[:3])
        if len(self.issues) > 3:
            summary += f" (+{len(self.issues) - 3} more)"
        super().__init__(f"Manifest cannot be loaded: {summary}")


class NavigationError(LessonplayError):
    """A navigation or answer request violated scene policy.

    Attributes:
        code: Stable machine-readable reason (e.g. "scene_required")
        message: Human-readable description
        details: Extra context for the caller
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"{code}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ScoringError(LessonplayError):
    """An answer payload referenced options the question does not have."""

    def __init__(self, question_id: str, invalid_option_ids: list[str]):
        self.question_id = question_id
        self.invalid_option_ids = list(invalid_option_ids)
        super().__init__(
            f"Question '{question_id}' has no options {self.invalid_option_ids}"
        )


class StaleSessionError(LessonplayError):
    """A snapshot cannot be resumed against the given manifest."""

    def __init__(self, message: str, missing_scene_ids: list[str] | None = None):
        self.message = message
        self.missing_scene_ids = list(missing_scene_ids or [])
        super().__init__(message)


class HubError(LessonplayError):
    """A hub request violated world gating rules."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class EngineInvariantError(LessonplayError):
    """Internal state the validator should have made impossible."""


class PersistenceWarning(UserWarning):
    """A snapshot write failed. The in-memory session is still authoritative."""

    def __init__(self, session_id: str, cause: BaseException):
        self.session_id = session_id
        self.cause = cause
        super().__init__(f"Snapshot write failed for session {session_id}: {cause}")
