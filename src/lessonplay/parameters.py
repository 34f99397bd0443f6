"""Engine parameters for lessonplay.

This module is the single source of truth for the tunable constants the
engine uses when a manifest or hub definition does not override them.

Parameter Categories:
- Manifest: Accepted schema versions and the terminal navigation keyword
- Scoring: Defaults applied to quiz and assessment scoring
- Competency: Level names and accumulator thresholds
- Sessions: Snapshot format and idle expiry
- Hub: Hub session lifetime and unique code format

Usage:
    from lessonplay.parameters import DEFAULT_PASSING_SCORE, COMPETENCY_LEVELS
"""

from datetime import timedelta

# =============================================================================
# MANIFEST PARAMETERS
# =============================================================================

SUPPORTED_SCHEMA_MAJORS = (0, 1)
"""Major versions of the manifest schema this engine can execute.

Current: 0 and 1

Manifests are authored against "0.1.0". A manifest declaring a major version
outside this tuple is rejected at load time rather than executed with guessed
semantics.
"""

END_SCENE = "end"
"""Navigation keyword that ends the session instead of naming a scene."""


# =============================================================================
# SCORING PARAMETERS
# =============================================================================

DEFAULT_PASSING_SCORE = 80.0
"""Passing percentage used when a quiz or assessment declares no scoring block.

Current: 80.0 (the pass threshold used by the original assessment screens)
"""

DEFAULT_QUESTION_POINTS = 1.0
"""Points a question is worth when the manifest does not say."""


# =============================================================================
# COMPETENCY PARAMETERS
# =============================================================================

COMPETENCY_LEVELS = ("novice", "competent", "proficient", "expert", "master")
"""Ordered competency level names. The numeric level is the index in this tuple."""

COMPETENCY_THRESHOLDS = {
    "novice": 0.0,
    "competent": 10.0,
    "proficient": 25.0,
    "expert": 50.0,
    "master": 100.0,
}
"""Minimum accumulator value for each competency level.

Accumulators grow by ``weight * earned_points`` per scored question, so the
level depends only on total weighted performance, never on how many events
produced it. A competency declaration may override any of these values.
"""


# =============================================================================
# SESSION PARAMETERS
# =============================================================================

SNAPSHOT_VERSION = 1
"""Version stamped into every snapshot. Restore refuses other versions."""

SESSION_IDLE_LIMIT = timedelta(hours=24)
"""Idle time after which an in-progress session may be expired (abandoned)."""

EVENT_REPLAY_SIZE = 50
"""Number of recent events an emitter keeps for late subscribers."""


# =============================================================================
# HUB PARAMETERS
# =============================================================================

HUB_SESSION_DURATION = timedelta(days=7)
"""Default lifetime of a hub session before it expires."""

UNIQUE_CODE_LENGTH = 8
"""Length of the code a learner uses to return to a hub session."""

UNIQUE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
"""Characters allowed in hub codes (no 0/O or 1/I ambiguity)."""
