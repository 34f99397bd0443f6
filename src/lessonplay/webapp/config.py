"""Flask configuration."""

import os
from pathlib import Path


class Config:
    """Base configuration."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-prod")

    # Storage - instance folder is at project root
    PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
    INSTANCE_PATH = PROJECT_ROOT / "instance"
    STORAGE_BACKEND = os.environ.get("LESSONPLAY_STORAGE_BACKEND", "file")  # 'file' or 'sqlite'
    MANIFESTS_PATH = os.environ.get("LESSONPLAY_MANIFESTS_PATH", str(PROJECT_ROOT / "manifests"))
    SNAPSHOTS_PATH = os.environ.get("LESSONPLAY_SNAPSHOTS_PATH", str(INSTANCE_PATH / "snapshots"))
    DATABASE_URI = os.environ.get("LESSONPLAY_DATABASE_URI", str(INSTANCE_PATH / "lessonplay.db"))

    # Snapshots are written on a background worker; timers run on threads
    ASYNC_SNAPSHOTS = True
    TIMER_SCHEDULER = "threading"  # 'threading' or 'manual'


class TestConfig(Config):
    """Testing configuration."""

    TESTING = True
    ASYNC_SNAPSHOTS = False
    TIMER_SCHEDULER = "manual"
