"""Pydantic Settings for the extraction core.

All environment variables use the SCRAPEGUARD_ prefix.
Example: SCRAPEGUARD_POOL_CAPACITY=4, SCRAPEGUARD_COOLDOWN_MIN_MS=60000

Durations are milliseconds unless the field name says otherwise.
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from scrapeguard.config.proxies import ProxyConfig

DEFAULT_BLOCK_PHRASES: list[str] = [
    "challenge",
    "security check",
    "unusual activity",
    "temporarily blocked",
    "rate limit",
    "please verify",
    "captcha",
    "suspicious activity",
]

DEFAULT_CHALLENGE_URL_PATTERNS: list[str] = [
    "/challenge/",
    "/login/",
    "/authwall/",
    "/checkpoint/",
]


class ScrapeGuardSettings(BaseSettings):
    """Extraction core configuration validated from environment variables."""

    log_level: str = "INFO"

    # Request pacing
    base_delay_ms: int = Field(default=8000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)
    max_requests_per_window: int = Field(default=10, ge=1)
    rotation_window_seconds: int = Field(default=3600, ge=1)
    burst_delay_ms: int = Field(default=60000, ge=0)
    jitter_ms: int = Field(default=2000, ge=0)

    # Session persistence
    session_path: str = "sessions/session.json"
    session_duration_ms: int = Field(default=2 * 60 * 60 * 1000, ge=1000)
    session_refresh_fraction: float = Field(default=0.8, gt=0.0, le=1.0)

    # Anti-block detection
    cooldown_min_ms: int = Field(default=5 * 60 * 1000, ge=0)
    cooldown_max_ms: int = Field(default=60 * 60 * 1000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    antiblock_auto_reset: bool = True
    antiblock_reset_after_successes: int = Field(default=3, ge=1)
    min_content_length: int = Field(default=1000, ge=0)
    block_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCK_PHRASES))
    challenge_url_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CHALLENGE_URL_PATTERNS)
    )
    block_status_codes: list[int] = Field(default_factory=lambda: [429, 403, 401])

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    retry_jitter_ms: int = Field(default=250, ge=0)
    max_extraction_attempts: int = Field(default=2, ge=1)

    # Timeouts
    navigation_timeout_ms: int = Field(default=30000, ge=1)
    extraction_timeout_ms: int = Field(default=45000, ge=1)
    total_timeout_ms: int = Field(default=240000, ge=1)

    # Execution pool
    pool_capacity: int = Field(default=2, ge=1, le=20)
    context_task_limit: int = Field(default=100, ge=1)  # Recycle after N tasks
    headless: bool = True
    browser_ws_endpoint: str | None = None

    # Proxy
    proxies: list[ProxyConfig] = []
    proxy_config_path: str | None = None
    require_proxy: bool = False
    proxy_quarantine_seconds: int = Field(default=30 * 60, ge=0)
    proxy_rotation_interval_seconds: int = Field(default=10 * 60, ge=1)
    proxy_sticky: bool = False

    # Result cache
    cache_ttl_seconds: int = Field(default=600, ge=1)
    cache_max_entries: int = Field(default=1000, ge=1)
    coalesce_inflight: bool = True

    model_config = {"env_prefix": "SCRAPEGUARD_"}

    @model_validator(mode="after")
    def _check_ranges(self) -> ScrapeGuardSettings:
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.cooldown_max_ms < self.cooldown_min_ms:
            raise ValueError("cooldown_max_ms must be >= cooldown_min_ms")
        return self
