"""File-backed session snapshot store.

One snapshot file holds the active browsing identity::

    {"id": ..., "cookies": [...], "timestamp": <epoch ms>,
     "lastActivity": <epoch ms>, "userAgent": ..., "url": ...}

Snapshots are written atomically (temp file + rename, full overwrite).
A snapshot older than the session timeout is treated as absent and the
file is removed. The store never touches the network.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class Cookie(BaseModel):
    """A browser cookie record. Unknown engine-specific keys are preserved."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float | None = None
    http_only: bool | None = Field(default=None, alias="httpOnly")
    secure: bool | None = None
    same_site: str | None = Field(default=None, alias="sameSite")

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.name, self.domain, self.path)


def merge_cookies(*groups: Iterable[Cookie]) -> list[Cookie]:
    """Ordered set of cookies keyed by (name, domain, path); later wins."""
    merged: dict[tuple[str, str, str], Cookie] = {}
    for group in groups:
        for cookie in group:
            merged.pop(cookie.identity, None)
            merged[cookie.identity] = cookie
    return list(merged.values())


class Session(BaseModel):
    """Persisted browsing identity."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"session_{uuid.uuid4().hex[:12]}")
    cookies: list[Cookie] = Field(default_factory=list)
    user_agent: str | None = Field(default=None, alias="userAgent")
    url: str | None = None
    created_at: int = Field(default_factory=_now_ms, alias="timestamp")
    last_activity_at: int = Field(default_factory=_now_ms, alias="lastActivity")
    timeout_ms: int = Field(default=2 * 60 * 60 * 1000, exclude=True)

    @property
    def expires_at(self) -> int:
        return self.created_at + self.timeout_ms

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.created_at

    def with_cookies(self, cookies: Iterable[dict[str, Any] | Cookie], url: str | None = None, now_ms: int | None = None) -> Session:
        """Return a copy with *cookies* merged in and activity refreshed."""
        incoming = [c if isinstance(c, Cookie) else Cookie.model_validate(c) for c in cookies]
        return self.model_copy(
            update={
                "cookies": merge_cookies(self.cookies, incoming),
                "url": url or self.url,
                "last_activity_at": now_ms if now_ms is not None else _now_ms(),
            }
        )


class SessionStore:
    """Loads, saves and expires the session snapshot at *path*.

    Args:
        path: Snapshot file location (parent directories are created).
        timeout_ms: Maximum snapshot age before it is discarded.
        refresh_fraction: ``needs_refresh`` fires past this fraction of the timeout.
        clock: Wall-clock source in epoch milliseconds.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        timeout_ms: int = 2 * 60 * 60 * 1000,
        refresh_fraction: float = 0.8,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._path = Path(path)
        self._timeout_ms = timeout_ms
        self._refresh_fraction = refresh_fraction
        self._clock = clock
        self._current: Session | None = None

    @property
    def path(self) -> Path:
        return self._path

    def new_session(self, user_agent: str | None = None) -> Session:
        """Create (but do not persist) a fresh session."""
        now = self._clock()
        return Session(
            user_agent=user_agent,
            created_at=now,
            last_activity_at=now,
            timeout_ms=self._timeout_ms,
        )

    def load(self) -> Session | None:
        """Return the persisted session, or ``None`` if absent or expired."""
        if not self._path.exists():
            logger.debug("No session snapshot at %s", self._path)
            return None

        try:
            session = Session.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Unreadable session snapshot at %s: %s, discarding", self._path, exc)
            self.clear()
            return None

        session.timeout_ms = self._timeout_ms
        if session.age_ms(self._clock()) > self._timeout_ms:
            logger.info("Session %s expired, starting fresh", session.id)
            self.clear()
            return None

        self._current = session
        logger.info("Loaded session %s with %d cookies", session.id, len(session.cookies))
        return session

    def save(self, session: Session) -> None:
        """Persist *session*, replacing any previous snapshot."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = session.model_dump_json(by_alias=True, indent=2)

        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent, prefix=".session-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._current = session
        logger.debug("Saved session %s (%d cookies)", session.id, len(session.cookies))

    def clear(self) -> None:
        """Remove the snapshot file and forget the current session."""
        self._path.unlink(missing_ok=True)
        self._current = None

    def needs_refresh(self, session: Session | None) -> bool:
        """True when *session* is missing or older than the refresh threshold."""
        if session is None:
            return True
        return session.age_ms(self._clock()) > self._timeout_ms * self._refresh_fraction

    def get_stats(self) -> dict:
        now = self._clock()
        current = self._current
        return {
            "has_active_session": current is not None,
            "session_id": current.id if current else None,
            "session_age_ms": current.age_ms(now) if current else 0,
            "cookie_count": len(current.cookies) if current else 0,
            "snapshot_exists": self._path.exists(),
            "session_timeout_ms": self._timeout_ms,
        }
