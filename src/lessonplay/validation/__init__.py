"""Manifest validation and loading."""

from lessonplay.validation.loader import (
    load_manifest,
    load_manifest_file,
    load_manifest_or_raise,
    save_manifest,
)
from lessonplay.validation.validator import (
    CheckResult,
    ManifestValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    reachable_scene_ids,
    validate_manifest,
)

__all__ = [
    # Results
    "CheckResult",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    # Validation
    "ManifestValidator",
    "reachable_scene_ids",
    "validate_manifest",
    # Loading
    "load_manifest",
    "load_manifest_file",
    "load_manifest_or_raise",
    "save_manifest",
]
