"""HTTP host for the lessonplay engine."""

from .app import create_app

__all__ = ["create_app"]
