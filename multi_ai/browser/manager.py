"""
Browser resource manager for concurrent AI service automation.

This module owns the single browser process and the registries of browser
contexts and pages that agents share.

Key components:
- BrowserManager: Launches Chromium once, creates or reuses contexts and
  pages by string id, injects cookies and the stealth script at context
  creation, and tears resources down individually or all at once.

Architecture:
    One BrowserManager per process (or per web worker). Each service gets
    its own context (an isolated cookie/storage jar) keyed by a
    deterministic id such as "claude-context", and one page inside it.
    Agents only ever ask the manager for a page; they never close contexts
    or the browser, so one service finishing can't tear down another
    service's session.

    All registry mutation happens inside the manager under an asyncio.Lock,
    which makes create-or-get and validate-or-recreate atomic from the
    caller's point of view even with many agents scheduled concurrently.

Example:
    >>> async with BrowserManager(BrowserSettings(headless=True)) as manager:
    ...     page = await manager.create_or_get_page("chatgpt-context", "chatgpt-page")
    ...     await page.goto("https://chatgpt.com/")
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..config.schema import BrowserSettings
from ..exceptions import BrowserInitializationError
from ..models import CookieRecord, filter_live_cookies
from .stealth import IGNORED_DEFAULT_ARGS, STEALTH_LAUNCH_ARGS, apply_stealth

logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Owns one browser process plus its contexts and pages.

    Attributes:
        settings: Browser launch and context preferences

    Example:
        >>> manager = BrowserManager(BrowserSettings(headless=True))
        >>> await manager.initialize()
        >>> page = await manager.create_or_get_page("gemini-context", "gemini-page")
        >>> manager.active_page_count()
        1
        >>> await manager.close_all()
    """

    def __init__(
        self,
        settings: BrowserSettings | None = None,
        *,
        playwright_factory: Callable[[], Any] | None = None,
    ):
        """
        Initialize browser manager (does not launch anything yet).

        Args:
            settings: Browser preferences (defaults to BrowserSettings())
            playwright_factory: Callable returning an object with an async
                start() method, like playwright.async_api.async_playwright.
                Tests pass an in-memory fake here.
        """
        self.settings = settings or BrowserSettings()
        self._playwright_factory = playwright_factory or async_playwright
        self._playwright = None
        self._browser: Browser | None = None
        self._contexts: dict[str, BrowserContext] = {}
        self._pages: dict[str, Page] = {}
        self._page_owners: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._users = 0

    async def __aenter__(self) -> "BrowserManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close_all()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """
        Launch the browser process (at most once).

        Idempotent: later calls return immediately, and concurrent first
        calls share a single launch.

        Raises:
            BrowserInitializationError: If Playwright or Chromium cannot start
        """
        async with self._lock:
            await self._ensure_browser()

    async def _ensure_browser(self) -> Browser:
        if self._browser is not None:
            return self._browser

        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._launch(self._playwright.chromium)
        except Exception as e:
            await self._stop_playwright()
            raise BrowserInitializationError(f"Failed to launch browser: {e}") from e

        logger.info(
            f"Browser launched (headless={self.settings.headless}, "
            f"version={getattr(self._browser, 'version', 'unknown')})"
        )
        return self._browser

    async def _launch(self, chromium) -> Browser:
        """
        Launch Chromium, preferring the system Chrome in headed mode.

        Sites are less suspicious of a real Chrome build, which matters when
        the user logs in interactively. Headless runs never log in, so they
        skip the preference and use the bundled Chromium directly.
        """
        launch_kwargs = {
            "headless": self.settings.headless,
            "args": list(STEALTH_LAUNCH_ARGS),
            "ignore_default_args": list(IGNORED_DEFAULT_ARGS),
        }

        if not self.settings.headless and self.settings.prefer_system_chrome:
            try:
                browser = await chromium.launch(channel="chrome", **launch_kwargs)
                logger.debug("Launched system Chrome")
                return browser
            except PlaywrightError as e:
                logger.info(f"System Chrome unavailable, using bundled Chromium: {e}")

        return await chromium.launch(**launch_kwargs)

    async def _stop_playwright(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug(f"Ignoring error while stopping Playwright: {e}")
        self._playwright = None

    async def acquire(self) -> "BrowserManager":
        """
        Register a user of this manager, launching the browser if needed.

        Long-lived callers (a web worker serving several requests) pair this
        with release() so the browser stays up while any request is active.
        """
        await self.initialize()
        self._users += 1
        return self

    async def release(self, close_when_idle: bool = True) -> None:
        """
        Unregister a user; close everything once the last user leaves.

        Args:
            close_when_idle: If False, keep the browser running at zero users
        """
        self._users = max(0, self._users - 1)
        if self._users == 0 and close_when_idle:
            await self.close_all()

    # ------------------------------------------------------------------ #
    # Contexts and pages
    # ------------------------------------------------------------------ #

    async def create_or_get_context(
        self, context_id: str, cookies: Sequence[CookieRecord] | None = None
    ) -> BrowserContext:
        """
        Return the context for ``context_id``, creating it on first use.

        Cookies are only injected when the context is created. Expired
        cookies are dropped first; session cookies are always kept.

        Args:
            context_id: Caller-chosen identifier (typically per service)
            cookies: Cookies to inject if the context is new

        Returns:
            BrowserContext: The cached or newly created context

        Raises:
            BrowserInitializationError: If the browser cannot be launched
        """
        async with self._lock:
            return await self._context_locked(context_id, cookies)

    async def _context_locked(
        self, context_id: str, cookies: Sequence[CookieRecord] | None
    ) -> BrowserContext:
        context = self._contexts.get(context_id)
        if context is not None:
            if cookies:
                logger.debug(
                    f"Context {context_id} already exists; cookies are only "
                    f"injected at creation"
                )
            return context

        browser = await self._ensure_browser()
        context = await browser.new_context(
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            },
            user_agent=self.settings.user_agent,
            bypass_csp=self.settings.bypass_csp,
        )
        context.set_default_timeout(self.settings.timeout_ms)

        live_cookies = filter_live_cookies(cookies)
        if live_cookies:
            try:
                await context.add_cookies([c.to_playwright() for c in live_cookies])
            except PlaywrightError:
                # Not registered yet, so close_all() would never see it
                await context.close()
                raise
            dropped = len(cookies) - len(live_cookies)
            logger.info(
                f"Injected {len(live_cookies)} cookies into context {context_id}"
                + (f" ({dropped} expired cookies dropped)" if dropped else "")
            )

        await apply_stealth(context, context_id)

        self._contexts[context_id] = context
        logger.debug(f"Created context {context_id}")
        return context

    async def create_or_get_page(
        self,
        context_id: str,
        page_id: str,
        cookies: Sequence[CookieRecord] | None = None,
    ) -> Page:
        """
        Return a live page for ``page_id`` inside the ``context_id`` context.

        A cached page is probed with a no-op script first. If the probe
        fails (page closed, crashed or detached) the stale entry is dropped
        and a fresh page is opened, so callers never receive a dead handle.

        Args:
            context_id: Context that owns (or will own) the page
            page_id: Caller-chosen page identifier
            cookies: Cookies to inject if the context has to be created

        Returns:
            Page: A live page
        """
        async with self._lock:
            context = await self._context_locked(context_id, cookies)

            page = self._pages.get(page_id)
            if page is not None:
                if await self._is_alive(page):
                    return page
                logger.info(f"Page {page_id} is no longer usable, recreating it")
                self._pages.pop(page_id, None)
                self._page_owners.pop(page_id, None)

            page = await context.new_page()
            self._pages[page_id] = page
            self._page_owners[page_id] = context_id
            logger.debug(f"Opened page {page_id} in context {context_id}")
            return page

    @staticmethod
    async def _is_alive(page: Page) -> bool:
        try:
            await page.evaluate("() => true")
        except Exception:
            return False
        return True

    def get_page(self, page_id: str) -> Page | None:
        """Return the cached page for ``page_id`` without validating it."""
        return self._pages.get(page_id)

    async def close_page(self, page_id: str) -> None:
        """
        Close one page and forget it.

        Args:
            page_id: Page identifier (unknown ids are ignored)
        """
        async with self._lock:
            page = self._pages.pop(page_id, None)
            self._page_owners.pop(page_id, None)

        if page is not None and not page.is_closed():
            try:
                await page.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing page {page_id}: {e}")

    async def close_context(self, context_id: str) -> None:
        """
        Close one context and forget every page it owned.

        Pages that belong to other contexts are left untouched.

        Args:
            context_id: Context identifier (unknown ids are ignored)
        """
        async with self._lock:
            context = self._contexts.pop(context_id, None)
            if context is None:
                return
            owned = [pid for pid, cid in self._page_owners.items() if cid == context_id]
            for page_id in owned:
                self._pages.pop(page_id, None)
                self._page_owners.pop(page_id, None)

        try:
            await context.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing context {context_id}: {e}")

        logger.debug(f"Closed context {context_id} ({len(owned)} pages released)")

    async def close_all(self) -> None:
        """
        Close all pages, then all contexts, then the browser.

        Best-effort teardown: individual close failures are logged and
        ignored so one broken page can never block shutdown.
        """
        async with self._lock:
            pages = list(self._pages.items())
            contexts = list(self._contexts.items())
            browser = self._browser
            self._pages.clear()
            self._page_owners.clear()
            self._contexts.clear()
            self._browser = None

            for page_id, page in pages:
                try:
                    if not page.is_closed():
                        await page.close()
                except Exception as e:
                    logger.debug(f"Ignoring error closing page {page_id}: {e}")

            for context_id, context in contexts:
                try:
                    await context.close()
                except Exception as e:
                    logger.debug(f"Ignoring error closing context {context_id}: {e}")

            if browser is not None:
                try:
                    await browser.close()
                except Exception as e:
                    logger.debug(f"Ignoring error closing browser: {e}")

            await self._stop_playwright()

        if browser is not None:
            logger.info(
                f"Browser closed ({len(contexts)} contexts, {len(pages)} pages)"
            )

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def is_ready(self) -> bool:
        """Return True if the browser is launched and still connected."""
        return self._browser is not None and self._browser.is_connected()

    def active_context_count(self) -> int:
        """Return the number of registered contexts."""
        return len(self._contexts)

    def active_page_count(self) -> int:
        """Return the number of registered pages."""
        return len(self._pages)

    @property
    def active_users(self) -> int:
        """Return the number of acquire() calls not yet released."""
        return self._users
