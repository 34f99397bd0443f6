"""Shared pytest fixtures and markers for all tests."""

import copy
from datetime import datetime, timedelta, timezone

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "webapp: marks webapp-specific tests"
    )


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def tick(self, seconds=1.0):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


# ============================================================================
# Manifests
# ============================================================================


LINEAR_MANIFEST = {
    "schemaVersion": "1.0",
    "gameId": "password-basics",
    "metadata": {"title": "Password Basics", "difficulty": "beginner"},
    "startScene": "intro",
    "scenes": [
        {
            "sceneId": "intro",
            "type": "introduction",
            "title": "Welcome",
            "message": "Let's talk about passwords.",
            "navigation": {"next": "quiz"},
        },
        {
            "sceneId": "quiz",
            "type": "quiz",
            "title": "Check",
            "navigation": {"next": "summary", "previous": "intro"},
            "scoring": {"passingScore": 50, "feedback": {"passed": "Nice work"}},
            "questions": [
                {
                    "id": "q1",
                    "text": "Which password is strongest?",
                    "points": 5,
                    "competencies": {"security": 1.0},
                    "options": [
                        {"id": "a", "text": "password1"},
                        {"id": "b", "text": "correct-horse-battery", "correct": True},
                    ],
                },
                {
                    "id": "q2",
                    "text": "Should passwords be reused?",
                    "questionType": "true-false",
                    "points": 5,
                    "options": [
                        {"id": "yes", "text": "Yes"},
                        {"id": "no", "text": "No", "isCorrect": True},
                    ],
                },
            ],
        },
        {
            "sceneId": "summary",
            "type": "summary",
            "message": "Done!",
            "navigation": {"next": "end"},
        },
    ],
    "achievements": [
        {
            "id": "finisher",
            "title": "Finisher",
            "requirements": {"scenesCompleted": ["summary"]},
        },
        {
            "id": "ace",
            "title": "Ace",
            "requirements": {"scoreThresholds": [{"sceneId": "quiz", "minPercentage": 100}]},
        },
    ],
    "competencies": [{"id": "security", "name": "Security awareness"}],
}


BRANCHING_MANIFEST = {
    "schemaVersion": "1.2",
    "gameId": "phishing-call",
    "metadata": {"title": "The Phone Call"},
    "startScene": "call",
    "scenes": {
        "call": {
            "type": "dialogue",
            "messages": [{"text": "Hi, this is IT. I need your password."}],
            "choices": [
                {"id": "refuse", "text": "I can't share that", "nextScene": "praise", "points": 10},
                {"id": "comply", "text": "Sure, it's...", "nextScene": "lesson", "points": 0},
            ],
        },
        "praise": {
            "type": "dialogue",
            "messages": [{"text": "Well done."}],
            "navigation": {"next": "wrap"},
        },
        "lesson": {
            "type": "resource",
            "required": False,
            "navigation": {"next": "wrap", "canSkip": True},
            "resources": [{"id": "r1", "title": "Phishing guide", "url": "https://example.org/guide"}],
        },
        "wrap": {"type": "summary", "message": "That's it."},
    },
    "achievements": [
        {
            "id": "gatekeeper",
            "title": "Gatekeeper",
            "requirements": {"choicesSelected": ["refuse"]},
        }
    ],
}


NAVIGABLE_MANIFEST = {
    "schemaVersion": "1.0",
    "gameId": "free-roam",
    "metadata": {"title": "Free Roam"},
    "startScene": "intro",
    "settings": {"allowNavigation": True},
    "scenes": [
        {"sceneId": "intro", "type": "introduction", "navigation": {"next": "library"}},
        {
            "sceneId": "library",
            "type": "resource",
            "required": False,
            "navigation": {"next": "check", "canSkip": True},
        },
        {
            "sceneId": "check",
            "type": "quiz",
            "question": "Is 2FA worth it?",
            "options": [
                {"id": "yes", "text": "Yes", "correct": True},
                {"id": "no", "text": "No"},
            ],
            "maxAttempts": 2,
            "scoring": {"passingScore": 100, "penaltyPerRetry": 10},
            "navigation": {"next": "final"},
        },
        {
            "sceneId": "final",
            "type": "assessment",
            "questions": [
                {
                    "id": "f1",
                    "text": "Pick every good habit",
                    "questionType": "multiple-select",
                    "points": 4,
                    "options": [
                        {"id": "mfa", "correct": True, "partialCredit": 2},
                        {"id": "manager", "correct": True, "partialCredit": 2},
                        {"id": "sticky", "partialCredit": 0},
                    ],
                }
            ],
            "navigation": {"next": "done"},
        },
        {"sceneId": "done", "type": "summary"},
    ],
}


TIMED_MANIFEST = {
    "schemaVersion": "1.0",
    "gameId": "timed-drill",
    "metadata": {"title": "Timed Drill"},
    "startScene": "briefing",
    "scenes": [
        {
            "sceneId": "briefing",
            "type": "dialogue",
            "messages": [{"text": "Get ready."}],
            "autoProgress": True,
            "progressDelay": 3000,
            "navigation": {"next": "drill"},
        },
        {
            "sceneId": "drill",
            "type": "quiz",
            "timeLimit": 30,
            "scoring": {"passingScore": 50},
            "questions": [
                {
                    "id": "d1",
                    "options": [{"id": "x", "correct": True}, {"id": "y"}],
                },
                {
                    "id": "d2",
                    "options": [{"id": "x", "correct": True}, {"id": "y"}],
                },
            ],
            "navigation": {"next": "end"},
        },
    ],
}


@pytest.fixture
def linear_manifest_data():
    return copy.deepcopy(LINEAR_MANIFEST)


@pytest.fixture
def branching_manifest_data():
    return copy.deepcopy(BRANCHING_MANIFEST)


@pytest.fixture
def navigable_manifest_data():
    return copy.deepcopy(NAVIGABLE_MANIFEST)


@pytest.fixture
def timed_manifest_data():
    return copy.deepcopy(TIMED_MANIFEST)


@pytest.fixture
def linear_manifest(linear_manifest_data):
    from lessonplay.validation import load_manifest_or_raise
    return load_manifest_or_raise(linear_manifest_data)


@pytest.fixture
def branching_manifest(branching_manifest_data):
    from lessonplay.validation import load_manifest_or_raise
    return load_manifest_or_raise(branching_manifest_data)


@pytest.fixture
def navigable_manifest(navigable_manifest_data):
    from lessonplay.validation import load_manifest_or_raise
    return load_manifest_or_raise(navigable_manifest_data)


@pytest.fixture
def timed_manifest(timed_manifest_data):
    from lessonplay.validation import load_manifest_or_raise
    return load_manifest_or_raise(timed_manifest_data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    from lessonplay.engine.timers import ManualScheduler
    return ManualScheduler()
