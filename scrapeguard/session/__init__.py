"""Session and cookie persistence for warm restarts."""

from scrapeguard.session.store import Cookie, Session, SessionStore

__all__ = ["Cookie", "Session", "SessionStore"]
