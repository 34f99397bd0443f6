"""Services for the webapp."""

from .session_service import (
    SessionService,
    build_session_service,
    get_session_service,
    hub_to_dict,
    session_to_dict,
)

__all__ = [
    "SessionService",
    "build_session_service",
    "get_session_service",
    "hub_to_dict",
    "session_to_dict",
]
