"""Execution pool and browser engine adapters."""

from scrapeguard.browser.engine import CHROMIUM_ARGS, PlaywrightContextFactory, collect_cookies, open_page
from scrapeguard.browser.fingerprint import (
    CURATED_USER_AGENTS,
    STEALTH_INIT_JS,
    BrowsingProfile,
    ProfileRandomizer,
)
from scrapeguard.browser.pool import ContextFactory, ExecutionContext, ExecutionPool

__all__ = [
    "CHROMIUM_ARGS",
    "CURATED_USER_AGENTS",
    "STEALTH_INIT_JS",
    "BrowsingProfile",
    "ContextFactory",
    "ExecutionContext",
    "ExecutionPool",
    "PlaywrightContextFactory",
    "ProfileRandomizer",
    "collect_cookies",
    "open_page",
]
