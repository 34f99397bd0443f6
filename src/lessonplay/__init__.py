"""lessonplay: executes declarative learning-game manifests."""

__version__ = "0.1.0"
