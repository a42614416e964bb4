"""Service layer entry points."""

from .ssh import Session, SessionConfig, SessionPool, get_session_pool

__all__ = ["Session", "SessionConfig", "SessionPool", "get_session_pool"]
