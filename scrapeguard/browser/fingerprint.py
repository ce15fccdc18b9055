"""Browsing identity randomization.

Fresh sessions get a user agent, viewport and language drawn from curated
desktop Chrome values; the stealth script is injected into every page
before site scripts run.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

CURATED_USER_AGENTS: list[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
]

LANGUAGES: list[str] = ["en-US", "en-GB", "en-CA", "en-AU"]

# Runs before any page script
STEALTH_INIT_JS = """
(() => {
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined, configurable: true });
    Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
    if (!window.chrome) {
        window.chrome = {};
    }
    if (!window.chrome.runtime) {
        window.chrome.runtime = {};
    }
})();
"""


@dataclass(frozen=True)
class BrowsingProfile:
    """Viewport and locale settings applied to a browser context."""

    user_agent: str
    viewport_width: int    # 1280–1920
    viewport_height: int   # 720–1080
    language: str


class ProfileRandomizer:
    """Draws user agents and browsing profiles."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def user_agent(self) -> str:
        return self._rng.choice(CURATED_USER_AGENTS)

    def generate(self, user_agent: str | None = None) -> BrowsingProfile:
        """Return a profile, keeping *user_agent* if the session already has one."""
        return BrowsingProfile(
            user_agent=user_agent or self.user_agent(),
            viewport_width=self._rng.randint(1280, 1920),
            viewport_height=self._rng.randint(720, 1080),
            language=self._rng.choice(LANGUAGES),
        )
