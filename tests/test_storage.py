"""Tests for the storage module.

Tests cover:
- FileManifestRepository error boundaries and edge cases
- Storage configuration functions
- Parametrized integration tests to verify both backends pass identical tests
- SnapshotWriter single-flight, superseding and failure reporting
"""

import uuid
from concurrent.futures import Executor, Future

import pytest

from lessonplay.engine.session import create_session
from lessonplay.errors import PersistenceWarning
from lessonplay.events import Events
from lessonplay.storage import (
    FileManifestRepository,
    FileSnapshotRepository,
    SnapshotRepository,
    SnapshotWriter,
    SQLiteManifestRepository,
    SQLiteSnapshotRepository,
    StorageBackend,
    get_manifest_repository,
    get_snapshot_repository,
    get_storage_backend,
    slugify,
)


# ============================================================================
# FileManifestRepository Tests - Error Boundaries Only
# ============================================================================


class TestFileManifestRepository:
    """Tests for file-based manifest repository error boundaries and edge cases.

    Most functionality is covered by TestManifestRepositoryIntegration which runs
    parametrized tests against both File and SQLite backends.
    """

    @pytest.fixture
    def repo(self, tmp_path):
        return FileManifestRepository(tmp_path / "manifests")

    def test_save_manifest_without_game_id_raises(self, repo):
        with pytest.raises(ValueError, match="must have a 'gameId' field"):
            repo.save_manifest({"metadata": {"title": "No id"}})

    def test_unsafe_game_id_raises(self, repo):
        with pytest.raises(ValueError, match="no filesystem-safe characters"):
            repo.save_manifest({"gameId": "!!!"})

    def test_file_name_is_slugified(self, repo, linear_manifest_data):
        linear_manifest_data["gameId"] = "Password Basics_v2"
        repo.save_manifest(linear_manifest_data)
        assert (repo.manifests_path / "password-basics-v2.json").exists()
        assert repo.get_manifest("Password Basics_v2")["gameId"] == "Password Basics_v2"

    def test_slugify(self):
        assert slugify("gdpr_basics: v2") == "gdpr-basics-v2"


# ============================================================================
# Config Tests
# ============================================================================


class TestStorageConfig:
    """Tests for storage configuration functions."""

    def test_get_storage_backend_default(self, monkeypatch):
        monkeypatch.delenv("LESSONPLAY_STORAGE_BACKEND", raising=False)
        assert get_storage_backend() == StorageBackend.FILE

    def test_factory_returns_file_repo(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LESSONPLAY_MANIFESTS_PATH", str(tmp_path / "manifests"))
        monkeypatch.setenv("LESSONPLAY_SNAPSHOTS_PATH", str(tmp_path / "snapshots"))

        assert isinstance(get_manifest_repository(StorageBackend.FILE), FileManifestRepository)
        assert isinstance(get_snapshot_repository(StorageBackend.FILE), FileSnapshotRepository)

    def test_factory_uses_env_when_backend_not_specified(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LESSONPLAY_STORAGE_BACKEND", "SQLite")
        monkeypatch.setenv("LESSONPLAY_DATABASE_URI", str(tmp_path / "test.db"))

        assert isinstance(get_manifest_repository(), SQLiteManifestRepository)
        assert isinstance(get_snapshot_repository(), SQLiteSnapshotRepository)


# ============================================================================
# Integration Tests - Parametrized for Both Backends
# ============================================================================


@pytest.fixture(params=["file", "sqlite"])
def manifest_repo(request, tmp_path):
    """Parametrized fixture that provides both manifest repository implementations."""
    if request.param == "file":
        return FileManifestRepository(tmp_path / "file_manifests")
    return SQLiteManifestRepository(str(tmp_path / "test_manifests.db"))


@pytest.fixture(params=["file", "sqlite"])
def snapshot_repo(request, tmp_path):
    """Parametrized fixture that provides both snapshot repository implementations."""
    if request.param == "file":
        return FileSnapshotRepository(tmp_path / "file_snapshots")
    return SQLiteSnapshotRepository(str(tmp_path / "test_snapshots.db"))


class TestManifestRepositoryIntegration:
    """Integration tests that run against both file and SQLite backends."""

    def test_empty_list(self, manifest_repo):
        assert manifest_repo.list_manifests() == []

    def test_save_get_roundtrip(self, manifest_repo, linear_manifest_data):
        game_id = manifest_repo.save_manifest(linear_manifest_data)
        assert game_id == "password-basics"
        assert manifest_repo.get_manifest(game_id) == linear_manifest_data

    def test_update_overwrites(self, manifest_repo, linear_manifest_data):
        manifest_repo.save_manifest(linear_manifest_data)
        linear_manifest_data["metadata"]["title"] = "Password Basics II"
        manifest_repo.save_manifest(linear_manifest_data)

        listed = manifest_repo.list_manifests()
        assert len(listed) == 1
        assert listed[0]["title"] == "Password Basics II"

    def test_list_sorted_by_title(self, manifest_repo, linear_manifest_data, branching_manifest_data):
        manifest_repo.save_manifest(branching_manifest_data)
        manifest_repo.save_manifest(linear_manifest_data)
        titles = [m["title"] for m in manifest_repo.list_manifests()]
        assert titles == ["Password Basics", "The Phone Call"]

    def test_delete(self, manifest_repo, linear_manifest_data):
        game_id = manifest_repo.save_manifest(linear_manifest_data)
        assert manifest_repo.delete_manifest(game_id) is True
        assert manifest_repo.get_manifest(game_id) is None
        assert manifest_repo.delete_manifest(game_id) is False


class TestSnapshotRepositoryIntegration:
    """Integration tests that run against both file and SQLite backends."""

    def _snapshot(self, game_id="password-basics", scene_id="intro"):
        return {
            "version": 1,
            "gameId": game_id,
            "session": {"status": "in_progress", "currentSceneId": scene_id},
        }

    def test_load_missing(self, snapshot_repo):
        assert snapshot_repo.load_snapshot(str(uuid.uuid4())) is None

    def test_save_load_roundtrip(self, snapshot_repo):
        session_id = str(uuid.uuid4())
        snapshot_repo.save_snapshot(session_id, self._snapshot())
        assert snapshot_repo.load_snapshot(session_id) == self._snapshot()

    def test_save_overwrites(self, snapshot_repo):
        session_id = str(uuid.uuid4())
        snapshot_repo.save_snapshot(session_id, self._snapshot(scene_id="intro"))
        snapshot_repo.save_snapshot(session_id, self._snapshot(scene_id="quiz"))

        listed = snapshot_repo.list_snapshots()
        assert len(listed) == 1
        assert listed[0]["currentSceneId"] == "quiz"

    def test_list_filtered_by_game(self, snapshot_repo):
        snapshot_repo.save_snapshot(str(uuid.uuid4()), self._snapshot(game_id="a"))
        snapshot_repo.save_snapshot(str(uuid.uuid4()), self._snapshot(game_id="b"))

        listed = snapshot_repo.list_snapshots(game_id="a")
        assert [s["gameId"] for s in listed] == ["a"]
        assert len(snapshot_repo.list_snapshots()) == 2

    def test_delete(self, snapshot_repo):
        session_id = str(uuid.uuid4())
        snapshot_repo.save_snapshot(session_id, self._snapshot())
        assert snapshot_repo.delete_snapshot(session_id) is True
        assert snapshot_repo.delete_snapshot(session_id) is False


# ============================================================================
# SnapshotWriter
# ============================================================================


class RecordingRepository(SnapshotRepository):
    """In-memory snapshot repository that records every write."""

    def __init__(self, fail=False):
        self.fail = fail
        self.writes = []
        self.snapshots = {}

    def save_snapshot(self, session_id, snapshot):
        if self.fail:
            raise OSError("disk full")
        self.writes.append((session_id, snapshot))
        self.snapshots[session_id] = snapshot

    def load_snapshot(self, session_id):
        return self.snapshots.get(session_id)

    def list_snapshots(self, game_id=None):
        return []

    def delete_snapshot(self, session_id):
        return self.snapshots.pop(session_id, None) is not None


class ManualExecutor(Executor):
    """Executor that runs submitted work only when told to."""

    def __init__(self):
        self.queue = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.queue.append((future, fn, args, kwargs))
        return future

    def run_next(self):
        future, fn, args, kwargs = self.queue.pop(0)
        future.set_result(fn(*args, **kwargs))


class TestSnapshotWriter:
    def test_inline_write(self):
        repo = RecordingRepository()
        writer = SnapshotWriter(repo)

        writer.submit("s1", {"n": 1})

        assert repo.writes == [("s1", {"n": 1})]
        assert writer.writes_completed == 1
        assert not writer.in_flight("s1")

    def test_single_flight_and_supersede(self):
        repo = RecordingRepository()
        executor = ManualExecutor()
        writer = SnapshotWriter(repo, executor=executor)

        writer.submit("s1", {"n": 1})
        writer.submit("s1", {"n": 2})
        writer.submit("s1", {"n": 3})

        assert len(executor.queue) == 1
        assert writer.writes_superseded == 1

        executor.run_next()
        executor.run_next()

        assert repo.writes == [("s1", {"n": 1}), ("s1", {"n": 3})]
        assert not writer.in_flight("s1")
        assert executor.queue == []

    def test_sessions_write_independently(self):
        executor = ManualExecutor()
        writer = SnapshotWriter(RecordingRepository(), executor=executor)
        writer.submit("s1", {"n": 1})
        writer.submit("s2", {"n": 1})
        assert len(executor.queue) == 2

    def test_terminal_write_tracking(self):
        executor = ManualExecutor()
        writer = SnapshotWriter(RecordingRepository(), executor=executor)

        writer.submit("s1", {"n": 1})
        writer.submit("s1", {"n": 2}, terminal=True)
        writer.submit("s1", {"n": 3})
        assert writer.terminal_write_in_flight("s1")

        executor.run_next()
        assert writer.terminal_write_in_flight("s1")
        executor.run_next()
        assert not writer.terminal_write_in_flight("s1")

    def test_failure_is_reported_not_raised(self):
        warnings = []
        writer = SnapshotWriter(RecordingRepository(fail=True), on_failure=warnings.append)

        writer.submit("s1", {"n": 1})

        assert writer.writes_failed == 1
        assert isinstance(warnings[0], PersistenceWarning)
        assert warnings[0].session_id == "s1"
        assert isinstance(warnings[0].cause, OSError)


class TestSessionPersistence:
    def test_every_operation_is_snapshotted(self, linear_manifest, scheduler, clock):
        repo = RecordingRepository()
        session = create_session(
            linear_manifest,
            session_id="s1",
            scheduler=scheduler,
            clock=clock,
            writer=SnapshotWriter(repo),
        )
        session.advance()
        session.advance()  # refused: answers pending

        assert len(repo.writes) == 2
        assert repo.snapshots["s1"]["session"]["currentSceneId"] == "quiz"

    def test_failed_write_keeps_session_running(self, linear_manifest, scheduler, clock):
        sessions = []
        writer = SnapshotWriter(
            RecordingRepository(fail=True),
            on_failure=lambda warning: sessions[0].report_persistence_failure(warning),
        )
        session = create_session(
            linear_manifest, scheduler=scheduler, clock=clock, writer=writer, start=False
        )
        sessions.append(session)
        failures = []
        session.subscribe(failures.append, [Events.PERSISTENCE_FAILED])

        assert session.start().success
        assert session.advance().success

        assert len(session.persistence_warnings) == 2
        assert len(failures) == 2
        assert session.state.current_scene_id == "quiz"

    def test_abandon_waits_for_completion_write(self, linear_manifest, scheduler, clock):
        executor = ManualExecutor()
        session = create_session(
            linear_manifest,
            scheduler=scheduler,
            clock=clock,
            writer=SnapshotWriter(RecordingRepository(), executor=executor),
        )
        session.advance()
        session.submit_answer("q1", ["b"])
        session.submit_answer("q2", ["no"])
        session.advance()

        result = session.abandon()

        assert not result.success
        assert result.error.code == "completion_in_flight"
        assert session.is_completed
