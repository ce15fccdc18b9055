"""Proxy data model for the proxy manager."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote


@dataclass
class Proxy:
    """A single egress path with health and usage tracking."""

    id: str
    host: str
    port: int
    protocol: str = "http"  # http, https, socks4, socks5
    username: str | None = None
    password: str | None = None
    success_count: int = 0
    failure_count: int = 0
    avg_latency_ms: float = 0.0
    quarantined_until: float | None = None  # clock() value
    last_used_at: float | None = None

    @property
    def server(self) -> str:
        """Scheme, host and port without credentials (safe to log)."""
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def url(self) -> str:
        """Full proxy URL including credentials, for HTTP clients."""
        if self.username:
            auth = quote(self.username, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            return f"{self.protocol}://{auth}@{self.host}:{self.port}"
        return self.server

    def is_quarantined(self, now: float) -> bool:
        return self.quarantined_until is not None and now < self.quarantined_until
