"""
Service automation agent.

A ServiceAgent drives one AI chat service in one browser page: it navigates
to the service, waits out interactive login when no cookies were supplied,
submits a prompt, waits for the reply to finish streaming and extracts its
text. Services differ only by their ServiceDescriptor; there is exactly one
agent class.

Agents never raise out of send_prompt(). Every failure (missing element,
timeout, login ceiling, cancellation) becomes a PromptResult with status
"error" or "timeout" so a batch can always be aggregated.

Lifecycle:
    UNSTARTED → NAVIGATED → (LOGIN_PENDING → LOGGED_IN | FAILED)
              → READY → PROMPTING → AWAITING_RESPONSE → DONE

Example:
    >>> agent = ServiceAgent(get_descriptor("chatgpt"), manager)
    >>> await agent.initialize()
    >>> result = await agent.send_prompt("What is 2+2?", timeout_ms=60_000)
    >>> result.status, result.content
    (<ResponseStatus.SUCCESS: 'success'>, '4')
    >>> agent.cleanup()
"""

import logging
import time
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..browser.manager import BrowserManager
from ..config.constants import (
    DEFAULT_RESPONSE_TIMEOUT_MS,
    HEALTH_CHECK_TIMEOUT_MS,
    LOADING_APPEAR_TIMEOUT_MS,
    LOGIN_POLL_INTERVAL_S,
    LOGIN_TIMEOUT_S,
    NAVIGATION_TIMEOUT_MS,
    READY_TIMEOUT_MS,
)
from ..exceptions import (
    DispatchCancelledError,
    ElementNotFoundError,
    PageOperationError,
    ResponseExtractionError,
    ServiceTimeoutError,
)
from ..models import CookieRecord, PromptResult, ResponseStatus
from ..utils.logging import log_with_context
from ..utils.time import elapsed_ms
from .cancel import CancelToken
from .descriptors import ServiceDescriptor
from .login import LoginDetector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AgentState(str, Enum):
    """Where an agent is in its lifecycle."""

    UNSTARTED = "unstarted"
    NAVIGATED = "navigated"
    LOGIN_PENDING = "login_pending"
    LOGGED_IN = "logged_in"
    FAILED = "failed"
    READY = "ready"
    PROMPTING = "prompting"
    AWAITING_RESPONSE = "awaiting_response"
    DONE = "done"


@dataclass(frozen=True)
class AgentTimings:
    """
    Bounds for the waits an agent performs.

    The per-prompt response budget is passed to send_prompt() instead;
    these cover everything around it. Tests shrink them to milliseconds.

    Attributes:
        navigation_timeout_ms: DOMContentLoaded bound for the service page
        ready_timeout_ms: Bound for the ready selector to become visible
        login_timeout_s: Ceiling for interactive login
        login_poll_interval_s: Pause between login checks
        loading_appear_timeout_ms: How long to look for a loading indicator
        health_check_timeout_ms: Bound for is_ready()
    """

    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    ready_timeout_ms: int = READY_TIMEOUT_MS
    login_timeout_s: float = LOGIN_TIMEOUT_S
    login_poll_interval_s: float = LOGIN_POLL_INTERVAL_S
    loading_appear_timeout_ms: int = LOADING_APPEAR_TIMEOUT_MS
    health_check_timeout_ms: int = HEALTH_CHECK_TIMEOUT_MS


class ServiceAgent:
    """
    Automates one AI chat service in one browser page.

    Attributes:
        descriptor: URL and selectors for the service
        service_name: Lowercase service identifier
        context_id: Browser context this agent's page lives in
        page_id: Page identifier registered with the manager
        cookies: Cookies injected when the context is created
        timings: Wait bounds
        page: Current page (None until initialized, or after cleanup())
        state: Lifecycle state
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        manager: BrowserManager,
        *,
        context_id: str | None = None,
        cookies: Sequence[CookieRecord] | None = None,
        timings: AgentTimings | None = None,
    ):
        self.descriptor = descriptor
        self.service_name = descriptor.service_name
        self.context_id = context_id or f"{self.service_name}-context"
        self.page_id = f"{self.service_name}-page"
        self.cookies = list(cookies or [])
        self.timings = timings or AgentTimings()
        self.page: Page | None = None
        self.state = AgentState.UNSTARTED
        self._manager = manager

    def __repr__(self) -> str:
        return f"ServiceAgent(service={self.service_name!r}, state={self.state.value})"

    @property
    def ready_selector(self) -> str:
        return self.descriptor.ready_selector or self.descriptor.input_selector

    # ------------------------------------------------------------------ #
    # Initialization
    # ------------------------------------------------------------------ #

    async def initialize(self, cancel: CancelToken | None = None) -> None:
        """
        Open (or reuse) the service page and wait until it is usable.

        Re-entrant: a live page is reused and only navigation repeats.

        Args:
            cancel: Batch cancellation token

        Raises:
            BrowserInitializationError: If the browser cannot be launched
            PageOperationError: If navigation fails
            LoginRequiredError: If interactive login did not complete
            ElementNotFoundError: If the ready selector never became visible
            DispatchCancelledError: If the batch was cancelled
        """
        try:
            await self._initialize(cancel)
        except Exception:
            self.state = AgentState.FAILED
            raise

    async def _initialize(self, cancel: CancelToken | None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled(self.service_name)

        self.page = await self._manager.create_or_get_page(
            self.context_id, self.page_id, cookies=self.cookies
        )

        url = self.descriptor.base_url
        logger.info(f"{self.service_name}: navigating to {url}")
        try:
            await self._guard(
                self.page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self._clamp(self.timings.navigation_timeout_ms, cancel),
                ),
                cancel,
            )
        except PlaywrightError as e:
            raise PageOperationError(
                f"Navigation to {url} failed: {e}", self.service_name
            ) from e
        self.state = AgentState.NAVIGATED

        if not self.cookies:
            self.state = AgentState.LOGIN_PENDING
            detector = LoginDetector(
                self.service_name,
                self.ready_selector,
                timeout_s=self.timings.login_timeout_s,
                poll_interval_s=self.timings.login_poll_interval_s,
                cancel=cancel,
            )
            await detector.ensure_logged_in(self.page)
            self.state = AgentState.LOGGED_IN

        await self._wait_until_ready(cancel)
        self.state = AgentState.READY
        logger.info(f"{self.service_name}: ready")

    async def _wait_until_ready(self, cancel: CancelToken | None) -> None:
        selector = self.ready_selector
        try:
            await self._guard(
                self.page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=self._clamp(self.timings.ready_timeout_ms, cancel),
                ),
                cancel,
            )
        except PlaywrightError as e:
            raise ElementNotFoundError(selector, self.service_name) from e

    # ------------------------------------------------------------------ #
    # Prompting
    # ------------------------------------------------------------------ #

    async def send_prompt(
        self,
        text: str,
        timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS,
        *,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        """
        Submit ``text`` and return the service's reply.

        Never raises for service-level failures: the outcome is always a
        PromptResult. Initializes first when there is no live page.

        Args:
            text: Prompt to submit
            timeout_ms: Bound for the whole call, including initialization
                when it has to happen here
            cancel: Batch cancellation token

        Returns:
            PromptResult: success with the extracted text, or error/timeout
                with a message naming the cause
        """
        start = time.monotonic()
        try:
            if self.page is None or self.page.is_closed():
                await self.initialize(cancel)

            self.state = AgentState.PROMPTING
            await self._fill_input(text, start, timeout_ms, cancel)
            await self._submit(start, timeout_ms, cancel)

            self.state = AgentState.AWAITING_RESPONSE
            content = await self._wait_for_response(start, timeout_ms, cancel)
        except Exception as e:
            return self._failure(e, start, timeout_ms, cancel)

        self.state = AgentState.DONE
        response_time_ms = max(1, elapsed_ms(start))
        log_with_context(
            logger,
            logging.INFO,
            f"{self.service_name}: response received",
            context={"response_time_ms": response_time_ms, "chars": len(content)},
            service=self.service_name,
        )
        return PromptResult.success(self.service_name, content, response_time_ms)

    def _failure(
        self,
        error: Exception,
        start: float,
        timeout_ms: int,
        cancel: CancelToken | None,
    ) -> PromptResult:
        response_time_ms = elapsed_ms(start)
        timed_out = (
            isinstance(error, ServiceTimeoutError)
            or response_time_ms >= timeout_ms
            or (cancel is not None and cancel.expired)
        )
        if timed_out:
            message = str(
                error
                if isinstance(error, ServiceTimeoutError)
                else ServiceTimeoutError(self.service_name, timeout_ms)
            )
            logger.warning(f"{self.service_name}: {message}")
            logger.debug(f"{self.service_name}: underlying error: {error}")
            return PromptResult.failure(
                self.service_name, message, response_time_ms, ResponseStatus.TIMEOUT
            )

        logger.warning(f"{self.service_name}: prompt failed: {error}")
        return PromptResult.failure(self.service_name, str(error), response_time_ms)

    async def _fill_input(
        self, text: str, start: float, timeout_ms: int, cancel: CancelToken | None
    ) -> None:
        selector = self.descriptor.input_selector
        try:
            element = await self._guard(
                self.page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=self._remaining(start, timeout_ms, cancel),
                ),
                cancel,
            )
        except PlaywrightTimeoutError as e:
            raise ElementNotFoundError(selector, self.service_name) from e
        if element is None:
            raise ElementNotFoundError(selector, self.service_name)

        if await element.get_attribute("contenteditable") in ("true", ""):
            # Rich editors ignore fill(); simulate a user clearing and typing
            await element.click()
            await self.page.keyboard.press("ControlOrMeta+A")
            await self.page.keyboard.press("Delete")
            await self._guard(self.page.keyboard.type(text), cancel)
        else:
            await element.fill(text)
        logger.debug(f"{self.service_name}: prompt entered ({len(text)} chars)")

    async def _submit(
        self, start: float, timeout_ms: int, cancel: CancelToken | None
    ) -> None:
        selector = self.descriptor.submit_selector
        try:
            await self._guard(
                self.page.click(
                    selector, timeout=self._remaining(start, timeout_ms, cancel)
                ),
                cancel,
            )
        except PlaywrightTimeoutError as e:
            raise ElementNotFoundError(selector, self.service_name) from e
        logger.debug(f"{self.service_name}: prompt submitted")

    async def _wait_for_response(
        self, start: float, timeout_ms: int, cancel: CancelToken | None
    ) -> str:
        """
        Wait for the reply to finish streaming and return its text.

        Raises:
            ServiceTimeoutError: If the budget ran out
            ResponseExtractionError: On any other failure
        """
        loading = self.descriptor.loading_selector
        try:
            if loading:
                await self._wait_for_loading(loading, start, timeout_ms, cancel)

            await self._guard(
                self.page.wait_for_selector(
                    self.descriptor.response_selector,
                    state="attached",
                    timeout=self._remaining(start, timeout_ms, cancel),
                ),
                cancel,
            )
            return await self._extract()
        except PlaywrightTimeoutError as e:
            raise ServiceTimeoutError(self.service_name, timeout_ms) from e
        except (ServiceTimeoutError, DispatchCancelledError, ResponseExtractionError):
            raise
        except Exception as e:
            raise ResponseExtractionError(self.service_name, str(e)) from e

    async def _wait_for_loading(
        self, selector: str, start: float, timeout_ms: int, cancel: CancelToken | None
    ) -> None:
        appear_timeout = min(
            self.timings.loading_appear_timeout_ms,
            self._remaining(start, timeout_ms, cancel),
        )
        try:
            await self._guard(
                self.page.wait_for_selector(
                    selector, state="attached", timeout=appear_timeout
                ),
                cancel,
            )
        except PlaywrightTimeoutError:
            # Short replies often finish before an indicator renders
            logger.debug(f"{self.service_name}: no loading indicator seen")
            return

        await self._guard(
            self.page.wait_for_selector(
                selector,
                state="detached",
                timeout=self._remaining(start, timeout_ms, cancel),
            ),
            cancel,
        )

    async def _extract(self) -> str:
        selector = self.descriptor.response_selector
        elements = await self.page.query_selector_all(selector)
        if not elements:
            raise ResponseExtractionError(
                self.service_name, f"No element matches {selector}"
            )

        try:
            text = (await elements[0].inner_text()).strip()
        except PlaywrightError as e:
            logger.debug(f"{self.service_name}: inner_text failed: {e}")
            text = ""

        if not text:
            text = ((await elements[0].text_content()) or "").strip()
        return text

    # ------------------------------------------------------------------ #
    # Health and teardown
    # ------------------------------------------------------------------ #

    async def is_ready(self) -> bool:
        """Return True if the page is live and the ready selector is visible."""
        if self.page is None or self.page.is_closed():
            return False
        try:
            await self.page.wait_for_selector(
                self.ready_selector,
                state="visible",
                timeout=self.timings.health_check_timeout_ms,
            )
        except PlaywrightError:
            return False
        return True

    def cleanup(self) -> None:
        """
        Release this agent's page reference.

        The page and its context stay open in the manager, so a later
        initialize() can reuse the logged-in session.
        """
        self.page = None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _guard(self, awaitable: Awaitable[T], cancel: CancelToken | None) -> T:
        if cancel is None:
            return await awaitable
        return await cancel.guard(awaitable, self.service_name)

    @staticmethod
    def _clamp(timeout_ms: int, cancel: CancelToken | None) -> int:
        return cancel.clamp(timeout_ms) if cancel is not None else timeout_ms

    def _remaining(
        self, start: float, timeout_ms: int, cancel: CancelToken | None
    ) -> int:
        """Milliseconds left of the prompt budget, at least 1."""
        remaining = timeout_ms - elapsed_ms(start)
        if remaining <= 0:
            raise ServiceTimeoutError(self.service_name, timeout_ms)
        return self._clamp(remaining, cancel)
