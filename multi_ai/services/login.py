"""
Login detection for AI chat services.

Without imported cookies every service greets a fresh browser context with
a sign-in page. LoginDetector recognises that situation from page text,
URL and form fields, then waits (bounded) for the user to finish logging in
inside the visible browser window.

The heuristic is intentionally coarse. It only has to distinguish "a chat
composer is usable" from "some auth screen is in the way"; which provider
the auth screen belongs to does not matter.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..exceptions import LoginRequiredError
from .cancel import CancelToken

logger = logging.getLogger(__name__)

LOGIN_PHRASES = (
    "sign in",
    "log in",
    "sign up",
    "continue with google",
    "continue with apple",
    "continue with email",
)

# Shown by Google and others when they refuse automated browsers
SECURITY_PHRASES = (
    "couldn't sign you in",
    "this browser or app may not be secure",
    "may not be secure",
)

AUTH_URL_FRAGMENTS = (
    "/login",
    "/signin",
    "/sign-in",
    "/auth",
    "accounts.google.com",
    "/oauth",
)

_OBSERVE_SCRIPT = """
() => ({
    url: window.location.href,
    title: document.title || '',
    text: document.body ? document.body.innerText : '',
    passwordFields: document.querySelectorAll('input[type="password"]').length,
    emailFields: document.querySelectorAll(
        'input[type="email"], input[name*="email"]'
    ).length,
})
"""


@dataclass(frozen=True)
class LoginObservation:
    """
    Snapshot of the signals used to decide whether a login screen is showing.

    Attributes:
        url: Current page URL
        title: Document title
        text: Lower-cased visible body text
        password_fields: Number of password inputs
        email_fields: Number of email inputs
    """

    url: str = ""
    title: str = ""
    text: str = ""
    password_fields: int = 0
    email_fields: int = 0

    @property
    def on_auth_path(self) -> bool:
        url = self.url.lower()
        return any(fragment in url for fragment in AUTH_URL_FRAGMENTS)

    @property
    def security_challenge(self) -> bool:
        haystack = f"{self.title.lower()} {self.text}"
        return any(phrase in haystack for phrase in SECURITY_PHRASES)

    @property
    def has_login_form(self) -> bool:
        return self.password_fields > 0 or self.email_fields > 0

    @property
    def needs_login(self) -> bool:
        """True if any login signal is present."""
        haystack = f"{self.title.lower()} {self.text}"
        return (
            any(phrase in haystack for phrase in LOGIN_PHRASES)
            or self.security_challenge
            or self.on_auth_path
            or self.has_login_form
        )


async def observe_page(page: Page) -> LoginObservation:
    """
    Collect login signals from a page in a single script evaluation.

    Raises:
        playwright.async_api.Error: If the page navigated mid-evaluation
    """
    data = await page.evaluate(_OBSERVE_SCRIPT) or {}
    return LoginObservation(
        url=str(data.get("url") or page.url or ""),
        title=str(data.get("title") or ""),
        text=str(data.get("text") or "").lower(),
        password_fields=int(data.get("passwordFields") or 0),
        email_fields=int(data.get("emailFields") or 0),
    )


class LoginDetector:
    """
    Detects a login screen and waits for the user to complete it.

    Attributes:
        service_name: Service whose page is being watched
        ready_selector: Selector that is visible once the chat UI is usable
        timeout_s: Ceiling for the whole wait, measured from entry
        poll_interval_s: Pause between checks

    Example:
        >>> detector = LoginDetector("claude", 'div[contenteditable="true"]')
        >>> await detector.ensure_logged_in(page)  # returns at once if logged in
    """

    def __init__(
        self,
        service_name: str,
        ready_selector: str,
        *,
        timeout_s: float = 300.0,
        poll_interval_s: float = 2.0,
        cancel: CancelToken | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service_name = service_name
        self.ready_selector = ready_selector
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._cancel = cancel
        self._sleep = sleep

    async def ensure_logged_in(self, page: Page) -> bool:
        """
        Return once the page shows a usable chat UI.

        Args:
            page: Page already navigated to the service

        Returns:
            bool: False if no login was needed, True if the user logged in

        Raises:
            LoginRequiredError: If the ceiling elapsed first
            DispatchCancelledError: If the batch was cancelled while waiting
        """
        observation = await observe_page(page)
        if not observation.needs_login:
            logger.debug(f"{self.service_name}: no login screen detected")
            return False

        logger.warning(
            f"{self.service_name}: login required. Complete login in the browser "
            f"window (waiting up to {self.timeout_s:g}s)"
        )
        await self._wait_for_login(page, observation)
        logger.info(f"{self.service_name}: login completed")
        return True

    async def _wait_for_login(self, page: Page, observation: LoginObservation) -> None:
        deadline = time.monotonic() + self.timeout_s
        started_on_auth_path = observation.on_auth_path
        last = observation

        while True:
            if self._cancel is not None:
                self._cancel.raise_if_cancelled(self.service_name)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise self._timeout_error(last)

            await self._pause(min(self.poll_interval_s, remaining))

            try:
                last = await observe_page(page)
                if await self._logged_in(page, last, started_on_auth_path):
                    return
            except PlaywrightError as e:
                # Redirects during login destroy the execution context
                logger.debug(f"{self.service_name}: login check failed: {e}")

    async def _logged_in(
        self, page: Page, observation: LoginObservation, started_on_auth_path: bool
    ) -> bool:
        """
        Decide whether login finished, from a fresh observation.

        Either every login signal is gone, or the page left the auth path it
        started on. Both also require the ready selector to be visible.
        """
        if not await page.is_visible(self.ready_selector):
            return False
        if not observation.needs_login:
            return True
        return started_on_auth_path and not observation.on_auth_path

    async def _pause(self, seconds: float) -> None:
        if self._cancel is None:
            await self._sleep(seconds)
        else:
            await self._cancel.guard(self._sleep(seconds), self.service_name)

    def _timeout_error(self, observation: LoginObservation) -> LoginRequiredError:
        if observation.security_challenge:
            return LoginRequiredError(
                self.service_name,
                f"{self.service_name} showed a security challenge "
                f"(\"this browser may not be secure\") and login did not complete "
                f"within {self.timeout_s:g}s. Import cookies for {self.service_name} "
                f"or log in with a regular browser first.",
                security_challenge=True,
            )
        return LoginRequiredError(
            self.service_name,
            f"{self.service_name} is still not logged in after {self.timeout_s:g}s. "
            f"Log in manually or import cookies and try again.",
        )
