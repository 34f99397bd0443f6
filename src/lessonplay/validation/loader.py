"""Loading manifests from JSON text, dictionaries and files.

Every entry point returns (or raises with) the full validation result; a
manifest is only handed to the engine once it has no fatal issues.
"""

import json
import logging
from pathlib import Path

from lessonplay.errors import ManifestValidationError
from lessonplay.models.manifest import GameManifest
from lessonplay.validation.validator import (
    CheckResult,
    ValidationResult,
    ValidationSeverity,
    validate_manifest,
)

logger = logging.getLogger(__name__)


def load_manifest(source: str | bytes | dict) -> ValidationResult:
    """Parse and validate a manifest.

    Args:
        source: JSON text or an already decoded dictionary

    Returns:
        ValidationResult; ``result.manifest`` is usable only if ``result.valid``
    """
    if isinstance(source, (str, bytes)):
        try:
            raw = json.loads(source)
        except json.JSONDecodeError as e:
            check = CheckResult(check_name="json")
            check.add_issue(
                ValidationSeverity.FATAL,
                f"Manifest is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
            )
            return ValidationResult(checks=[check])
    else:
        raw = source

    result = validate_manifest(raw)
    if result.valid:
        warnings = result.get_warnings()
        logger.info(f"Loaded manifest {result.game_id} ({len(warnings)} warnings)")
    else:
        logger.warning(
            f"Rejected manifest {result.game_id}: {len(result.get_fatal_issues())} fatal issues"
        )
    return result


def load_manifest_or_raise(source: str | bytes | dict) -> GameManifest:
    """Parse and validate a manifest, raising if it cannot be executed.

    Raises:
        ManifestValidationError: If any fatal issue was found
    """
    result = load_manifest(source)
    if not result.valid:
        raise ManifestValidationError(result.get_fatal_issues())
    return result.manifest


def load_manifest_file(manifest_path: str | Path) -> ValidationResult:
    """Load and validate a manifest from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(manifest_path)
    with path.open(encoding="utf-8") as f:
        return load_manifest(f.read())


def save_manifest(manifest: GameManifest, manifest_path: str | Path) -> None:
    """Write a manifest as camelCase JSON."""
    path = Path(manifest_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(manifest.to_dict(), f, indent=2)
