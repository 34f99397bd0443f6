"""Route blueprints for the webapp."""

from . import hubs, manifests, sessions

__all__ = ["hubs", "manifests", "sessions"]
