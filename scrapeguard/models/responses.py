"""Reporting envelope served by the status router.

Every status payload goes out as
{ success, data, error, meta, generated_at }
where ``generated_at`` is the UTC instant the snapshot was taken, so
consumers polling ``/status`` can tell stale readings apart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(BaseModel):
    """Liveness summary: pool occupancy, usable proxies, block cooldown."""

    status: str = "healthy"
    pool_capacity: int
    pool_active: int
    proxies_healthy: int
    in_cooldown: bool


class ApiResponse(BaseModel, Generic[T]):
    """Envelope around one status snapshot."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict[str, Any] | None = None
    generated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def ok(cls, data: T, **meta: Any) -> dict[str, Any]:
        """Serialized success envelope; *meta* is omitted when empty."""
        return cls(success=True, data=data, meta=meta or None).model_dump(mode="json")
