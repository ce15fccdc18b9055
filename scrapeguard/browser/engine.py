"""Playwright-backed execution contexts.

Each execution context is one headless Chromium instance, launched locally
or attached over CDP when ``ws_endpoint`` is configured. Extraction
callbacks open an isolated page on it with :func:`open_page`, which applies
the task's proxy, the session's user agent and cookies, and the stealth
init script::

    async def callback(context, task):
        async with open_page(
            context,
            proxy=task.proxy,
            session=task.session,
            navigation_timeout_ms=task.navigation_timeout_ms,
        ) as page:
            ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from scrapeguard.browser.fingerprint import STEALTH_INIT_JS, ProfileRandomizer
from scrapeguard.browser.pool import ExecutionContext

if TYPE_CHECKING:
    from playwright.async_api import Page

    from scrapeguard.proxy.types import Proxy
    from scrapeguard.session.store import Session

logger = logging.getLogger(__name__)

# Chromium flags for containerized / headless operation
CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class PlaywrightContextFactory:
    """Launches one Chromium browser per execution context."""

    def __init__(
        self,
        *,
        headless: bool = True,
        ws_endpoint: str | None = None,
    ) -> None:
        self._headless = headless
        self._ws_endpoint = ws_endpoint
        self._playwright: Any = None

    async def _ensure_started(self) -> Any:
        if self._playwright is None:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
        return self._playwright

    async def create(self) -> ExecutionContext:
        playwright = await self._ensure_started()

        if self._ws_endpoint:
            browser = await playwright.chromium.connect_over_cdp(self._ws_endpoint)
        else:
            browser = await playwright.chromium.launch(
                headless=self._headless,
                args=CHROMIUM_ARGS,
            )

        context = ExecutionContext(handle=browser)

        def _on_disconnected(*_: Any) -> None:
            context.usable = False
            logger.warning("Browser for context %s disconnected", context.id)

        browser.on("disconnected", _on_disconnected)
        return context

    async def reset(self, context: ExecutionContext) -> None:
        """Close every browser context left open by the previous task."""
        for browser_context in list(context.handle.contexts):
            await browser_context.close()

    async def destroy(self, context: ExecutionContext) -> None:
        await context.handle.close()

    async def close(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


@asynccontextmanager
async def open_page(
    context: ExecutionContext,
    *,
    proxy: Proxy | None = None,
    session: Session | None = None,
    navigation_timeout_ms: int = 30000,
    randomizer: ProfileRandomizer | None = None,
) -> AsyncIterator[Page]:
    """Open an isolated page on *context*, closing it on exit."""
    profile = (randomizer or ProfileRandomizer()).generate(
        session.user_agent if session else None
    )

    options: dict[str, Any] = {
        "user_agent": profile.user_agent,
        "viewport": {"width": profile.viewport_width, "height": profile.viewport_height},
        "locale": profile.language,
        "extra_http_headers": {"Accept-Language": f"{profile.language},en;q=0.9"},
    }
    if proxy is not None:
        options["proxy"] = {"server": proxy.server}
        if proxy.username:
            options["proxy"]["username"] = proxy.username
            options["proxy"]["password"] = proxy.password or ""

    browser_context = await context.handle.new_context(**options)
    try:
        if session is not None and session.cookies:
            await browser_context.add_cookies(
                [c.model_dump(by_alias=True, exclude_none=True) for c in session.cookies]
            )
        await browser_context.add_init_script(STEALTH_INIT_JS)
        page = await browser_context.new_page()
        page.set_default_navigation_timeout(navigation_timeout_ms)
        yield page
    finally:
        await browser_context.close()


async def collect_cookies(page: Page) -> list[dict[str, Any]]:
    """Return the page's cookies in the session snapshot format."""
    return list(await page.context.cookies())
