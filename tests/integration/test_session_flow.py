"""End-to-end session flows.

Tests cover:
- Complete linear, branching and free-navigation playthroughs with results
- Snapshots written through a real repository and resumed mid-quiz
- Resuming against an edited manifest that dropped the current scene
"""

import copy

import pytest

from lessonplay.engine.session import create_session, resume_session
from lessonplay.events import Events
from lessonplay.models.state import SessionStatus
from lessonplay.storage import FileSnapshotRepository, SnapshotWriter, SQLiteSnapshotRepository
from lessonplay.validation import load_manifest_or_raise


@pytest.fixture(params=["file", "sqlite"])
def snapshot_repo(request, tmp_path):
    if request.param == "file":
        return FileSnapshotRepository(tmp_path / "snapshots")
    return SQLiteSnapshotRepository(str(tmp_path / "lessonplay.db"))


class TestPlaythroughs:
    def test_linear_run(self, linear_manifest, scheduler, clock):
        session = create_session(linear_manifest, scheduler=scheduler, clock=clock)
        unlocked = []
        session.subscribe(lambda e: unlocked.append(e.data["achievementId"]), [Events.ACHIEVEMENT_UNLOCKED])

        clock.tick(30)
        session.advance()
        session.submit_answer("q1", ["b"])
        session.submit_answer("q2", ["yes"])
        clock.tick(90)
        result = session.advance()

        assert result.completed
        results = session.results()
        assert results.status == SessionStatus.COMPLETED
        assert results.percentage == 50.0
        assert results.passed
        assert results.completion_rate == 1.0
        assert results.elapsed.total_seconds() == 120
        assert unlocked == ["finisher"]
        assert session.achievements.competency_points == {"security": 5.0}

    def test_branching_run(self, branching_manifest, scheduler, clock):
        session = create_session(branching_manifest, scheduler=scheduler, clock=clock)

        session.advance("refuse")
        session.advance()

        results = session.results()
        assert session.is_completed
        assert session.state.history_stack == ["call", "praise", "wrap"]
        assert results.choice_points == 10.0
        assert results.passed
        assert session.achievements.is_unlocked("gatekeeper")

    def test_free_navigation_run(self, navigable_manifest, scheduler, clock):
        session = create_session(navigable_manifest, scheduler=scheduler, clock=clock)

        assert session.advance().scene_id == "library"
        assert session.skip().scene_id == "check"
        session.submit_answer("check", ["yes"])
        assert session.advance().scene_id == "final"
        session.submit_answer("f1", ["mfa"])
        result = session.advance()

        assert result.completed
        assert session.state.skipped_scenes == ["library"]
        scenes = {r.scene_id: r for r in session.results().scene_results}
        assert scenes["check"].percentage == 100.0
        assert scenes["final"].percentage == 50.0
        assert session.results().completion_rate == 1.0

    def test_results_to_dict_is_camel_case(self, linear_manifest, scheduler, clock):
        session = create_session(linear_manifest, scheduler=scheduler, clock=clock)
        data = session.results().to_dict()
        assert data["status"] == "in_progress"
        assert data["completionRate"] == 0.0
        assert data["sceneResults"] == []


class TestPersistAndResume:
    def test_resume_mid_quiz(self, linear_manifest, snapshot_repo, scheduler, clock):
        writer = SnapshotWriter(snapshot_repo)
        session = create_session(
            linear_manifest, session_id="learner-1", scheduler=scheduler, clock=clock, writer=writer
        )
        session.advance()
        session.submit_answer("q1", ["b"])
        session.close()

        stored = snapshot_repo.load_snapshot("learner-1")
        resumed = resume_session(stored, linear_manifest, scheduler=scheduler, clock=clock)

        assert resumed.success
        restored = resumed.session
        assert restored.state.current_scene_id == "quiz"
        assert restored.state.history_stack == ["intro", "quiz"]
        assert restored.state.current_attempt("quiz").question_results["q1"].correct

        restored.submit_answer("q2", ["no"])
        assert restored.advance().completed
        assert restored.results().percentage == 100.0
        assert restored.achievements.unlocked_achievement_ids == ("ace", "finisher")

    def test_resume_continues_event_sequence(self, linear_manifest, snapshot_repo, scheduler, clock):
        session = create_session(
            linear_manifest,
            session_id="learner-2",
            scheduler=scheduler,
            clock=clock,
            writer=SnapshotWriter(snapshot_repo),
        )
        session.advance()
        last = session.events.recent_events()[-1].sequence

        resumed = resume_session(snapshot_repo.load_snapshot("learner-2"), linear_manifest, clock=clock)
        sequences = []
        resumed.session.subscribe(lambda e: sequences.append(e.sequence))
        resumed.session.go_back()

        assert sequences
        assert sequences[0] > last

    def test_resume_against_edited_manifest(self, linear_manifest_data, snapshot_repo, scheduler, clock):
        manifest = load_manifest_or_raise(linear_manifest_data)
        session = create_session(
            manifest, session_id="learner-3", scheduler=scheduler, clock=clock, writer=SnapshotWriter(snapshot_repo)
        )
        session.advance()

        edited = copy.deepcopy(linear_manifest_data)
        edited["scenes"] = [s for s in edited["scenes"] if s["sceneId"] != "quiz"]
        edited["scenes"][0]["navigation"] = {"next": "summary"}
        edited["achievements"] = [a for a in edited["achievements"] if a["id"] != "ace"]

        result = resume_session(snapshot_repo.load_snapshot("learner-3"), load_manifest_or_raise(edited))

        assert not result.success
        assert result.restart_available
        assert result.error.missing_scene_ids == ["quiz"]
