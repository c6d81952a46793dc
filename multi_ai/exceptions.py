"""
Custom exceptions for multi-ai.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the application. All exceptions inherit from the base
MultiAIError for consistent catching.

Exception Hierarchy:
    MultiAIError (base)
    ├── ConfigurationError
    │   ├── ConfigValidationError
    │   ├── UnknownServiceError
    │   └── CookieImportError
    ├── BrowserInitializationError
    ├── PageOperationError
    │   ├── ElementNotFoundError
    │   ├── ResponseExtractionError
    │   └── LoginRequiredError
    ├── ServiceTimeoutError
    └── DispatchCancelledError

Propagation policy:
    Configuration errors and BrowserInitializationError are pre-flight
    failures: they abort a batch before any prompt is sent. Everything
    raised while a single agent initializes, prompts or extracts is turned
    into a PromptResult by the agent or the dispatcher and never escapes
    the batch.

Usage:
    from multi_ai.exceptions import UnknownServiceError

    try:
        agents = build_agents(manager, ["chatgpt", "bard"])
    except UnknownServiceError as e:
        logger.error(f"Unknown service: {e}")
        sys.exit(1)
"""


class MultiAIError(Exception):
    """
    Base exception for all multi-ai errors.

    Example:
        try:
            # application code
            pass
        except MultiAIError as e:
            logger.error(f"Application error: {e}")
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(MultiAIError):
    """
    Base class for configuration-related errors.

    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (schema validation failed).

    Example:
        raise ConfigValidationError("Field 'services' must be a non-empty list")
    """

    pass


class UnknownServiceError(ConfigurationError):
    """
    A requested service name has no descriptor.

    Raised by the agent factory before any agent is built, so a typo in
    the service list never reaches the browser.

    Attributes:
        service_name: The name that could not be resolved
        available: Names that would have been accepted

    Example:
        raise UnknownServiceError("bard", ["chatgpt", "claude"])
    """

    def __init__(self, service_name: str, available: list[str] | None = None):
        self.service_name = service_name
        self.available = list(available or [])
        message = f'Unknown service: "{service_name}"'
        if self.available:
            message += f". Available services: {', '.join(self.available)}"
        super().__init__(message)


class CookieImportError(ConfigurationError):
    """
    Cookie file could not be read or parsed.

    Example:
        raise CookieImportError("No cookies found in cookies.txt")
    """

    pass


# ============================================================================
# Browser Errors
# ============================================================================


class BrowserInitializationError(MultiAIError):
    """
    The browser process could not be started.

    Fatal to the whole batch: no agent can proceed without a browser.
    The underlying Playwright error is chained as __cause__.

    Example:
        raise BrowserInitializationError("Failed to launch browser: ...") from e
    """

    pass


class PageOperationError(MultiAIError):
    """
    A page is missing or an operation on it failed.

    Attributes:
        service_name: Service whose page failed (None if not service-bound)
    """

    def __init__(self, message: str, service_name: str | None = None):
        super().__init__(message)
        self.service_name = service_name


class ElementNotFoundError(PageOperationError):
    """
    A selector never resolved within its bound.

    Example:
        raise ElementNotFoundError("#prompt-textarea", "chatgpt")
    """

    def __init__(self, selector: str, service_name: str | None = None):
        super().__init__(f"Element not found: {selector}", service_name)
        self.selector = selector


class ResponseExtractionError(PageOperationError):
    """
    Unexpected failure while reading the response container.

    Example:
        raise ResponseExtractionError("claude", "Target closed")
    """

    def __init__(self, service_name: str, message: str):
        super().__init__(
            f"Failed to extract response from {service_name}: {message}",
            service_name,
        )


class LoginRequiredError(PageOperationError):
    """
    Interactive login did not complete before the login ceiling.

    Terminal for the agent; the user must log in (or import cookies)
    out-of-band and try again.

    Attributes:
        security_challenge: True when the provider showed a security
            challenge ("this browser may not be secure") rather than a
            plain sign-in form
    """

    def __init__(
        self, service_name: str, message: str, security_challenge: bool = False
    ):
        super().__init__(message, service_name)
        self.security_challenge = security_challenge


# ============================================================================
# Timing Errors
# ============================================================================


class ServiceTimeoutError(MultiAIError):
    """
    Elapsed time met or exceeded the per-prompt bound.

    Example:
        raise ServiceTimeoutError("gemini", 60000)
    """

    def __init__(self, service_name: str, timeout_ms: int):
        super().__init__(f'Service "{service_name}" timed out after {timeout_ms}ms')
        self.service_name = service_name
        self.timeout_ms = timeout_ms


class DispatchCancelledError(MultiAIError):
    """
    The batch was cancelled by the caller while this agent was working.

    Example:
        raise DispatchCancelledError("Dispatch cancelled before perplexity finished")
    """

    pass
