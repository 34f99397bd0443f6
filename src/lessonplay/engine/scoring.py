"""Scoring engine for quiz and assessment scenes.

Pure functions: the same question and selection always produce the same
score, and nothing here touches session state.

Scoring rules:
- Single-select: correct iff exactly one option is selected and it is the
  correct one. Selecting more than one earns nothing.
- Multi-select: correct iff the selected set equals the correct set.
- Partial credit is opt-in. When any option carries a partialCredit weight,
  earned = sum(partialCredit of selected credited options), capped at the
  question's points, and the answer is correct only when it earns full
  points without selecting anything uncredited.
- An empty selection earns 0 of the full possible points.
- Unknown option ids earn nothing and are reported, never raised.

Aggregation:
    percentage = earned / total * 100, minus penaltyPerRetry on attempts >= 2
    passed = percentage >= passingScore
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lessonplay.errors import ScoringError
from lessonplay.models.manifest import Question, ScoringConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionScore:
    """Score of one question for one selection."""

    question_id: str
    earned: float
    possible: float
    correct: bool
    selected_option_ids: tuple[str, ...] = ()
    invalid_option_ids: tuple[str, ...] = ()

    @property
    def error(self) -> ScoringError | None:
        """The scoring error folded into this score, if any."""
        if not self.invalid_option_ids:
            return None
        return ScoringError(self.question_id, list(self.invalid_option_ids))


@dataclass(frozen=True)
class AggregateScore:
    """Score of one attempt at a scene."""

    percentage: float
    passed: bool
    earned_points: float
    total_points: float
    penalty_applied: float = 0.0


def score(question: Question, selected_option_ids: list[str] | tuple[str, ...]) -> QuestionScore:
    """Score a selection against a question's answer key.

    Args:
        question: Question being answered
        selected_option_ids: Option ids chosen by the learner, in any order

    Returns:
        QuestionScore; unknown ids give zero credit and are listed in
        invalid_option_ids
    """
    selected = tuple(dict.fromkeys(selected_option_ids))
    possible = question.points
    known = set(question.option_ids())
    invalid = tuple(option_id for option_id in selected if option_id not in known)

    if invalid:
        logger.warning(f"Question {question.id}: unknown options {list(invalid)}")
        return QuestionScore(question.id, 0.0, possible, False, selected, invalid)

    if not selected:
        return QuestionScore(question.id, 0.0, possible, False, selected)

    if not question.is_multi_select and len(selected) > 1:
        return QuestionScore(question.id, 0.0, possible, False, selected)

    if question.uses_partial_credit:
        credited = set(question.credited_option_ids())
        earned = sum(
            question.get_option(option_id).partial_credit or 0.0
            for option_id in selected
            if option_id in credited
        )
        earned = min(possible, earned)
        correct = earned >= possible and set(selected) <= credited
        return QuestionScore(question.id, earned, possible, correct, selected)

    correct_ids = set(question.correct_option_ids())
    correct = set(selected) == correct_ids
    earned = possible if correct else 0.0
    return QuestionScore(question.id, earned, possible, correct, selected)


def aggregate(
    question_scores: list[QuestionScore],
    scoring_config: ScoringConfig,
    attempt: int = 1,
) -> AggregateScore:
    """Combine question scores into an attempt score.

    The retry penalty is subtracted once from this attempt's percentage,
    independent of any earlier attempt, and floored at 0.
    """
    earned = sum(s.earned for s in question_scores)
    total = sum(s.possible for s in question_scores)
    raw_percentage = earned * 100.0 / total if total > 0 else 0.0

    penalty = scoring_config.penalty_per_retry if attempt >= 2 else 0.0
    percentage = max(0.0, raw_percentage - penalty)

    return AggregateScore(
        percentage=percentage,
        passed=percentage >= scoring_config.passing_score,
        earned_points=earned,
        total_points=total,
        penalty_applied=raw_percentage - percentage,
    )


def feedback_for(scoring_config: ScoringConfig, passed: bool) -> str | None:
    """Author feedback for a pass or fail, if the manifest provides it."""
    key = "passed" if passed else "failed"
    return scoring_config.feedback.get(key)
