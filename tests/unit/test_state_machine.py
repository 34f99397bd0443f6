"""Unit tests for lessonplay.engine.state_machine.

Tests cover:
- start/advance along linear and branching graphs
- answers: pending answers, re-answer refusal, unknown questions
- go_back: review mode for quizzes, locked assessments
- skip, jump_to, retry, abandon, idle expiry
- refusals never change the session state
"""

from datetime import timedelta

import pytest

from lessonplay.engine.state_machine import MachinePhase, SceneStateMachine
from lessonplay.errors import EngineInvariantError
from lessonplay.events import Events
from lessonplay.models.state import SessionState, SessionStatus
from lessonplay.validation import load_manifest_or_raise


@pytest.fixture
def make_machine(clock, scheduler):
    """Build a machine for a manifest; returns (machine, emitted events)."""

    def _make(manifest, session_id="session-1"):
        events = []
        state = SessionState(session_id=session_id, game_id=manifest.game_id)
        machine = SceneStateMachine(
            manifest,
            state,
            lambda event_type, data: events.append((event_type, data)),
            scheduler=scheduler,
            clock=clock,
        )
        return machine, events

    return _make


def _types(events):
    return [event_type for event_type, _ in events]


# =============================================================================
# Start and linear navigation
# =============================================================================


class TestLinearNavigation:
    def test_start_enters_start_scene(self, make_machine, linear_manifest):
        machine, events = make_machine(linear_manifest)
        assert machine.phase == MachinePhase.NOT_STARTED

        result = machine.start()

        assert result.success
        assert result.scene_id == "intro"
        assert machine.state.history_stack == ["intro"]
        assert machine.phase == MachinePhase.ACTIVE
        assert events == [
            (Events.SCENE_ENTERED, {"sceneId": "intro", "sceneType": "introduction", "review": False})
        ]

    def test_start_twice_is_refused(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        result = machine.start()
        assert not result.success
        assert result.error.code == "already_started"

    def test_advance_before_start_is_refused(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        result = machine.advance()
        assert result.error.code == "not_started"

    def test_manifest_mismatch_raises(self, linear_manifest, clock):
        state = SessionState(session_id="s", game_id="other-game")
        with pytest.raises(EngineInvariantError):
            SceneStateMachine(linear_manifest, state, lambda t, d: None, clock=clock)

    def test_quiz_blocks_advance_until_answered(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        machine.advance()
        before = machine.state.model_copy(deep=True)

        result = machine.advance()

        assert not result.success
        assert result.error.code == "answers_pending"
        assert result.error.details["pendingQuestionIds"] == ["q1", "q2"]
        assert machine.state == before

    def test_full_run_completes_session(self, make_machine, linear_manifest):
        machine, events = make_machine(linear_manifest)
        machine.start()
        machine.advance()

        first = machine.submit_answer("q1", ["b"])
        assert first.success
        assert first.score.earned == 5
        assert first.attempt_score is None

        second = machine.submit_answer("q2", ["yes"])
        assert second.attempt_score.percentage == 50.0
        assert second.attempt_score.passed

        result = machine.advance()

        assert result.success
        assert result.completed
        assert result.scene_id == "summary"
        assert machine.state.status == SessionStatus.COMPLETED
        assert machine.state.terminal
        assert machine.state.completed_scenes == ["intro", "quiz", "summary"]
        assert machine.phase == MachinePhase.TERMINAL
        assert _types(events)[-1] == Events.SESSION_COMPLETED

    def test_terminal_session_refuses_everything(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        machine.advance()
        machine.submit_answer("q1", ["b"])
        machine.submit_answer("q2", ["no"])
        machine.advance()

        assert machine.advance().error.code == "session_completed"
        assert machine.go_back().error.code == "session_completed"
        assert machine.submit_answer("q1", ["a"]).error.code == "session_completed"
        assert machine.abandon().error.code == "session_completed"

    def test_scene_scored_event(self, make_machine, linear_manifest):
        machine, events = make_machine(linear_manifest)
        machine.start()
        machine.advance()
        machine.submit_answer("q1", ["b"])
        machine.submit_answer("q2", ["no"])

        scored = [data for event_type, data in events if event_type == Events.SCENE_SCORED]
        assert scored == [
            {
                "sceneId": "quiz",
                "attempt": 1,
                "percentage": 100.0,
                "passed": True,
                "earnedPoints": 10.0,
                "totalPoints": 10.0,
                "penaltyApplied": 0.0,
            }
        ]


# =============================================================================
# Answers
# =============================================================================


class TestAnswers:
    @pytest.fixture
    def at_quiz(self, make_machine, linear_manifest):
        machine, events = make_machine(linear_manifest)
        machine.start()
        machine.advance()
        return machine

    def test_reanswer_is_refused(self, at_quiz):
        at_quiz.submit_answer("q1", ["a"])
        before = at_quiz.state.model_copy(deep=True)

        result = at_quiz.submit_answer("q1", ["b"])

        assert not result.success
        assert result.error.code == "already_answered"
        assert at_quiz.state == before

    def test_unknown_question(self, at_quiz):
        result = at_quiz.submit_answer("q9", ["a"])
        assert result.error.code == "unknown_question"

    def test_unknown_option_scores_zero(self, at_quiz):
        result = at_quiz.submit_answer("q1", ["bogus"])
        assert result.success
        assert result.score.earned == 0
        assert result.score.invalid_option_ids == ("bogus",)

    def test_answers_outside_quiz_are_refused(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        assert machine.submit_answer("q1", ["b"]).error.code == "unknown_question"

    def test_select_stores_draft(self, at_quiz):
        result = at_quiz.select("q1", ["a", "a"])
        assert result.success
        assert at_quiz.state.drafts == {"q1": ["a"]}
        assert at_quiz.state.scores == {}


# =============================================================================
# Branching dialogue
# =============================================================================


class TestBranching:
    def test_choice_required(self, make_machine, branching_manifest):
        machine, _ = make_machine(branching_manifest)
        machine.start()
        result = machine.advance()
        assert result.error.code == "choice_required"
        assert result.error.details["choiceIds"] == ["refuse", "comply"]

    def test_unknown_choice(self, make_machine, branching_manifest):
        machine, _ = make_machine(branching_manifest)
        machine.start()
        assert machine.advance("shrug").error.code == "unknown_choice"

    def test_choice_follows_its_target(self, make_machine, branching_manifest):
        machine, events = make_machine(branching_manifest)
        machine.start()

        result = machine.advance("refuse")

        assert result.scene_id == "praise"
        assert machine.state.choices[0].choice_id == "refuse"
        assert machine.state.choices[0].points == 10
        assert (Events.CHOICE_MADE, {"sceneId": "call", "choiceId": "refuse", "points": 10.0}) in events

    def test_other_branch_and_terminal_summary(self, make_machine, branching_manifest):
        machine, _ = make_machine(branching_manifest)
        machine.start()
        machine.advance("comply")
        result = machine.advance()
        assert result.completed
        assert machine.state.history_stack == ["call", "lesson", "wrap"]

    def test_choice_on_plain_scene_is_refused(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        assert machine.advance("anything").error.code == "unknown_choice"


# =============================================================================
# Back, skip, jump
# =============================================================================


class TestBackSkipJump:
    def test_back_pops_history(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        machine.advance()

        result = machine.go_back()

        assert result.success
        assert result.scene_id == "intro"
        assert not result.review_mode
        assert machine.state.history_stack == ["intro"]

    def test_back_at_start_is_refused(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        assert machine.go_back().error.code == "no_previous_scene"

    def test_back_into_answered_quiz_is_review(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.advance()
        machine.advance()
        machine.submit_answer("check", ["yes"])
        machine.advance()
        assert machine.state.current_scene_id == "final"

        result = machine.go_back()

        assert result.success
        assert result.scene_id == "check"
        assert result.review_mode
        answer = machine.submit_answer("check", ["no"])
        assert answer.error.code == "already_answered"
        assert machine.retry().error.code == "review_mode"
        assert machine.advance().scene_id == "final"

    def test_assessment_is_locked_after_attempt(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.jump_to("final")
        machine.submit_answer("f1", ["mfa"])
        machine.jump_to("check")

        back = machine.go_back()
        jump = machine.jump_to("final")

        assert back.error.code == "scene_locked"
        assert jump.error.code == "scene_locked"
        assert machine.state.current_scene_id == "check"

    def test_skip_optional_scene(self, make_machine, navigable_manifest):
        machine, events = make_machine(navigable_manifest)
        machine.start()
        machine.advance()

        result = machine.skip()

        assert result.scene_id == "check"
        assert machine.state.skipped_scenes == ["library"]
        assert "library" not in machine.state.completed_scenes
        assert Events.SCENE_SKIPPED in _types(events)

    def test_skip_required_scene_is_refused(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        before = machine.state.model_copy(deep=True)
        result = machine.skip()
        assert result.error.code == "scene_required"
        assert machine.state == before

    def test_jump_requires_allow_navigation(self, make_machine, linear_manifest):
        machine, _ = make_machine(linear_manifest)
        machine.start()
        assert machine.jump_to("summary").error.code == "navigation_disabled"

    def test_jump_validation(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        assert machine.jump_to("ghost").error.code == "unknown_scene"
        assert machine.jump_to("intro").error.code == "already_current"

    def test_jump_out_of_unanswered_quiz_is_refused(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.jump_to("check")
        assert machine.jump_to("intro").error.code == "answers_pending"

    def test_cannot_finish_with_required_scene_incomplete(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        # Restored sessions can carry required scenes that were entered but never finished.
        machine.state.completed_scenes.append("check")
        machine.state.history_stack.insert(0, "final")

        result = machine.jump_to("done")

        assert result.error.code == "required_scenes_incomplete"
        assert result.error.details["missingSceneIds"] == ["final"]
        assert not machine.state.terminal

    def test_jump_to_end_cannot_bypass_required_scenes(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()

        result = machine.jump_to("done")

        assert result.error.code == "required_scenes_incomplete"
        assert result.error.details["missingSceneIds"] == ["check", "final"]
        assert machine.state.current_scene_id == "intro"
        assert machine.state.status == SessionStatus.IN_PROGRESS

    def test_bypassed_scene_blocks_later_advance_to_end(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.jump_to("final")
        machine.submit_answer("f1", ["mfa", "manager"])

        result = machine.advance()

        assert result.error.code == "required_scenes_incomplete"
        assert result.error.details["missingSceneIds"] == ["check"]
        assert not machine.state.terminal

    def test_jump_to_end_after_required_scenes(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.advance()
        machine.skip()
        machine.submit_answer("check", ["yes"])
        machine.advance()
        machine.submit_answer("f1", ["mfa", "manager"])

        result = machine.jump_to("done")

        assert result.success
        assert result.completed
        assert machine.state.status == SessionStatus.COMPLETED

    def test_back_into_skipped_assessment(self, make_machine):
        manifest = load_manifest_or_raise(
            {
                "schemaVersion": "1.0",
                "gameId": "optional-exam",
                "startScene": "intro",
                "scenes": [
                    {"sceneId": "intro", "type": "introduction", "navigation": {"next": "exam"}},
                    {
                        "sceneId": "exam",
                        "type": "assessment",
                        "required": False,
                        "questions": [
                            {"id": "e1", "options": [{"id": "a", "correct": True}, {"id": "b"}]}
                        ],
                        "navigation": {"next": "notes"},
                    },
                    {"sceneId": "notes", "type": "resource", "navigation": {"next": "wrap"}},
                    {"sceneId": "wrap", "type": "summary"},
                ],
            }
        )
        machine, _ = make_machine(manifest)
        machine.start()
        machine.advance()
        machine.skip()

        result = machine.go_back()

        assert result.success
        assert result.scene_id == "exam"
        assert not result.review_mode
        assert machine.submit_answer("e1", ["a"]).success


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    @pytest.fixture
    def failed_check(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.jump_to("check")
        machine.submit_answer("check", ["no"])
        return machine

    def test_retry_before_finishing_is_refused(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        machine.jump_to("check")
        assert machine.retry().error.code == "answers_pending"

    def test_retry_on_scene_without_questions(self, make_machine, navigable_manifest):
        machine, _ = make_machine(navigable_manifest)
        machine.start()
        assert machine.retry().error.code == "not_answerable"

    def test_retry_applies_penalty(self, failed_check):
        assert not failed_check.state.current_attempt("check").passed

        assert failed_check.retry().success
        result = failed_check.submit_answer("check", ["yes"])

        assert result.attempt_score.percentage == 90.0
        assert result.attempt_score.penalty_applied == 10.0
        assert not result.attempt_score.passed
        attempts = failed_check.state.attempts("check")
        assert [a.attempt for a in attempts] == [1, 2]
        assert attempts[0].percentage == 0.0

    def test_max_attempts(self, failed_check):
        failed_check.retry()
        failed_check.submit_answer("check", ["no"])
        result = failed_check.retry()
        assert result.error.code == "max_attempts_reached"
        assert result.error.details["maxAttempts"] == 2

    def test_failed_attempt_may_advance(self, failed_check):
        assert failed_check.advance().scene_id == "final"


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    def test_abandon(self, make_machine, linear_manifest):
        machine, events = make_machine(linear_manifest)
        machine.start()

        result = machine.abandon()

        assert result.success
        assert machine.state.status == SessionStatus.ABANDONED
        assert machine.phase == MachinePhase.ABANDONED
        assert events[-1] == (Events.SESSION_ABANDONED, {"sceneId": "intro", "reason": "user"})
        assert machine.advance().error.code == "session_abandoned"
        assert machine.abandon().error.code == "session_abandoned"

    def test_idle_expiry(self, make_machine, linear_manifest, clock):
        machine, events = make_machine(linear_manifest)
        machine.start()

        assert not machine.expire_if_idle(clock.now + timedelta(hours=23))
        assert machine.expire_if_idle(clock.now + timedelta(hours=25))
        assert machine.state.status == SessionStatus.ABANDONED
        assert events[-1][1]["reason"] == "idle"

    def test_unstarted_session_does_not_expire(self, make_machine, linear_manifest, clock):
        machine, _ = make_machine(linear_manifest)
        assert not machine.expire_if_idle(clock.now + timedelta(days=30))

    def test_same_inputs_same_history(self, make_machine, navigable_manifest):
        def run(session_id):
            machine, _ = make_machine(navigable_manifest, session_id=session_id)
            machine.start()
            machine.advance()
            machine.skip()
            machine.submit_answer("check", ["no"])
            machine.retry()
            machine.submit_answer("check", ["yes"])
            machine.advance()
            machine.go_back()
            return machine.state.history_stack, machine.state.current_scene_id

        assert run("a") == run("b")
