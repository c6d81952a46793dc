"""
Tests for browser.manager module.

All tests run against the in-memory Playwright fakes in tests/fakes.py,
so no browser is launched.
"""

import asyncio
import time

import pytest
from fakes import FakeContext, FakePage, FakePlaywright
from playwright.async_api import Error as PlaywrightError

from multi_ai.browser.manager import BrowserManager
from multi_ai.browser.stealth import (
    IGNORED_DEFAULT_ARGS,
    STEALTH_INIT_SCRIPT,
    STEALTH_LAUNCH_ARGS,
    apply_stealth,
)
from multi_ai.config.schema import BrowserSettings
from multi_ai.exceptions import BrowserInitializationError
from multi_ai.models import CookieRecord


@pytest.fixture
def playwright():
    return FakePlaywright()


@pytest.fixture
def manager(playwright):
    return BrowserManager(
        BrowserSettings(headless=True, timeout_ms=12345), playwright_factory=playwright
    )


class TestInitialize:
    """Tests for BrowserManager.initialize()."""

    @pytest.mark.asyncio
    async def test_concurrent_initialize_launches_once(self, manager, playwright):
        """Concurrent first calls share one launch."""
        await asyncio.gather(*(manager.initialize() for _ in range(5)))

        assert playwright.starts == 1
        assert len(playwright.chromium.launches) == 1
        assert manager.is_ready()

    @pytest.mark.asyncio
    async def test_headless_uses_bundled_chromium(self, manager, playwright):
        await manager.initialize()

        launch = playwright.chromium.launches[0]
        assert "channel" not in launch
        assert launch["headless"] is True

    @pytest.mark.asyncio
    async def test_launch_args_hide_automation(self, manager, playwright):
        await manager.initialize()

        launch = playwright.chromium.launches[0]
        assert "--disable-blink-features=AutomationControlled" in launch["args"]
        assert launch["args"] == STEALTH_LAUNCH_ARGS
        assert launch["ignore_default_args"] == IGNORED_DEFAULT_ARGS

    @pytest.mark.asyncio
    async def test_headed_prefers_system_chrome(self, playwright):
        manager = BrowserManager(
            BrowserSettings(headless=False), playwright_factory=playwright
        )
        await manager.initialize()

        assert playwright.chromium.launches[0]["channel"] == "chrome"
        assert len(playwright.chromium.launches) == 1

    @pytest.mark.asyncio
    async def test_headed_falls_back_to_bundled_chromium(self, playwright):
        """Missing system Chrome is not fatal."""
        playwright.chromium.failing_channels.add("chrome")
        manager = BrowserManager(
            BrowserSettings(headless=False), playwright_factory=playwright
        )

        await manager.initialize()

        launches = playwright.chromium.launches
        assert len(launches) == 2
        assert launches[0]["channel"] == "chrome"
        assert "channel" not in launches[1]
        assert manager.is_ready()

    @pytest.mark.asyncio
    async def test_launch_failure_raises_initialization_error(self, manager, playwright):
        cause = PlaywrightError("Executable doesn't exist")
        playwright.chromium.launch_error = cause

        with pytest.raises(BrowserInitializationError) as exc_info:
            await manager.initialize()

        assert exc_info.value.__cause__ is cause
        assert "Executable doesn't exist" in str(exc_info.value)
        assert playwright.stopped is True
        assert not manager.is_ready()

    @pytest.mark.asyncio
    async def test_create_page_launches_lazily(self, manager, playwright):
        await manager.create_or_get_page("chatgpt-context", "chatgpt-page")

        assert playwright.starts == 1
        assert manager.is_ready()


class TestContexts:
    """Tests for context creation and cookie injection."""

    @pytest.mark.asyncio
    async def test_context_options(self, manager):
        context = await manager.create_or_get_context("claude-context")

        assert context.options["viewport"] == {"width": 1280, "height": 720}
        assert context.options["user_agent"] == manager.settings.user_agent
        assert context.options["bypass_csp"] is False
        assert context.default_timeout == 12345

    @pytest.mark.asyncio
    async def test_stealth_script_added_to_every_context(self, manager):
        first = await manager.create_or_get_context("a")
        second = await manager.create_or_get_context("b")

        assert first.init_scripts == [STEALTH_INIT_SCRIPT]
        assert second.init_scripts == [STEALTH_INIT_SCRIPT]

    @pytest.mark.asyncio
    async def test_same_id_returns_cached_context(self, manager):
        first = await manager.create_or_get_context("gemini-context")
        second = await manager.create_or_get_context("gemini-context")

        assert first is second
        assert manager.active_context_count() == 1

    @pytest.mark.asyncio
    async def test_cookies_injected_once_at_creation(self, manager):
        cookies = [CookieRecord(name="sid", value="secret", domain="chatgpt.com")]

        context = await manager.create_or_get_context("chatgpt-context", cookies)
        await manager.create_or_get_context("chatgpt-context", cookies)
        await manager.create_or_get_page("chatgpt-context", "chatgpt-page", cookies)

        assert len(context.cookie_batches) == 1
        assert context.cookie_batches[0][0]["name"] == "sid"
        assert context.cookie_batches[0][0]["sameSite"] == "Lax"

    @pytest.mark.asyncio
    async def test_expired_cookies_are_not_injected(self, manager):
        now = time.time()
        cookies = [
            CookieRecord(name="old", value="1", domain="x.com", expires=now - 100),
            CookieRecord(name="fresh", value="2", domain="x.com", expires=now + 3600),
            CookieRecord(name="session", value="3", domain="x.com"),
        ]

        context = await manager.create_or_get_context("x", cookies)

        injected = [c["name"] for c in context.cookie_batches[0]]
        assert injected == ["fresh", "session"]

    @pytest.mark.asyncio
    async def test_no_cookie_call_without_live_cookies(self, manager):
        expired = [
            CookieRecord(name="old", value="1", domain="x.com", expires=time.time() - 10)
        ]

        empty = await manager.create_or_get_context("empty")
        only_expired = await manager.create_or_get_context("expired", expired)

        assert empty.cookie_batches == []
        assert only_expired.cookie_batches == []


    @pytest.mark.asyncio
    async def test_cookie_injection_failure_closes_context(self, manager, playwright):
        await manager.initialize()
        browser = playwright.chromium.browsers[0]
        browser.cookie_error = PlaywrightError("Invalid cookie fields")
        cookies = [CookieRecord(name="sid", value="v", domain="x.com")]

        with pytest.raises(PlaywrightError):
            await manager.create_or_get_context("broken", cookies)

        assert browser.contexts[-1].closed is True
        assert manager.active_context_count() == 0


class TestPages:
    """Tests for page validation and teardown."""

    @pytest.mark.asyncio
    async def test_live_page_is_reused(self, manager):
        first = await manager.create_or_get_page("c", "p")
        second = await manager.create_or_get_page("c", "p")

        assert first is second
        assert manager.active_page_count() == 1

    @pytest.mark.asyncio
    async def test_dead_page_is_recreated(self, manager):
        """A page failing the liveness probe is replaced transparently."""
        first = await manager.create_or_get_page("c", "p")
        first.alive = False

        second = await manager.create_or_get_page("c", "p")

        assert second is not first
        assert isinstance(second, FakePage)
        assert manager.get_page("p") is second
        assert manager.active_page_count() == 1

    @pytest.mark.asyncio
    async def test_closed_page_is_recreated(self, manager):
        first = await manager.create_or_get_page("c", "p")
        await first.close()

        second = await manager.create_or_get_page("c", "p")

        assert second is not first

    @pytest.mark.asyncio
    async def test_get_page_unknown_returns_none(self, manager):
        assert manager.get_page("missing") is None

    @pytest.mark.asyncio
    async def test_close_page(self, manager):
        page = await manager.create_or_get_page("c", "p")

        await manager.close_page("p")

        assert page.closed is True
        assert manager.get_page("p") is None
        assert manager.active_context_count() == 1

    @pytest.mark.asyncio
    async def test_close_context_removes_only_its_pages(self, manager):
        await manager.create_or_get_page("chatgpt-context", "chatgpt-page")
        claude_page = await manager.create_or_get_page("claude-context", "claude-page")

        await manager.close_context("chatgpt-context")

        assert manager.get_page("chatgpt-page") is None
        assert manager.get_page("claude-page") is claude_page
        assert manager.active_context_count() == 1
        assert manager.active_page_count() == 1
        assert claude_page.closed is False

    @pytest.mark.asyncio
    async def test_close_unknown_context_is_noop(self, manager):
        await manager.close_context("nope")
        assert manager.active_context_count() == 0

    @pytest.mark.asyncio
    async def test_close_all(self, manager, playwright):
        page = await manager.create_or_get_page("c", "p")
        context = await manager.create_or_get_context("c")

        await manager.close_all()

        assert page.closed is True
        assert context.closed is True
        assert manager.active_context_count() == 0
        assert manager.active_page_count() == 0
        assert not manager.is_ready()
        assert playwright.stopped is True

    @pytest.mark.asyncio
    async def test_close_all_swallows_close_errors(self, manager):
        page = await manager.create_or_get_page("c", "p")

        async def broken_close():
            raise PlaywrightError("Target closed")

        page.close = broken_close

        await manager.close_all()

        assert manager.active_page_count() == 0

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self, playwright):
        async with BrowserManager(
            BrowserSettings(headless=True), playwright_factory=playwright
        ) as manager:
            assert manager.is_ready()
            await manager.create_or_get_page("c", "p")

        assert not manager.is_ready()
        assert manager.active_page_count() == 0

    @pytest.mark.asyncio
    async def test_acquire_release_refcount(self, manager):
        await manager.acquire()
        await manager.acquire()
        assert manager.active_users == 2

        await manager.release()
        assert manager.is_ready()

        await manager.release()
        assert manager.active_users == 0
        assert not manager.is_ready()


class TestStealth:
    """Tests for browser.stealth module."""

    @pytest.mark.asyncio
    async def test_apply_stealth_registers_script(self):
        context = FakeContext({})

        assert await apply_stealth(context, "ctx") is True
        assert "webdriver" in context.init_scripts[0]

    @pytest.mark.asyncio
    async def test_apply_stealth_failure_is_tolerated(self):
        context = FakeContext({})
        context.init_script_error = PlaywrightError("boom")

        assert await apply_stealth(context, "ctx") is False
