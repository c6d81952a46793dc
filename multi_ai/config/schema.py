"""
Configuration schema models for multi-ai.

This module defines Pydantic models for validating and parsing the
~/.multi-ai/config.yaml file. All models use Pydantic v2 field validators
for comprehensive validation.

Models:
    BrowserSettings: Browser launch and context preferences
    OutputSettings: How results are rendered by the CLI
    MultiAIConfig: Root configuration model (validates entire YAML)
"""

from typing import Literal

from pydantic import BaseModel, field_validator

from .constants import (
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_RESPONSE_TIMEOUT_MS,
    LOGIN_POLL_INTERVAL_S,
    LOGIN_TIMEOUT_S,
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BrowserSettings(BaseModel):
    """
    Browser launch and context preferences.

    Attributes:
        headless: Run without a visible window. Interactive login needs a
                 visible window, so this defaults to False.
        viewport_width: Context viewport width in pixels
        viewport_height: Context viewport height in pixels
        timeout_ms: Default timeout for page operations
        user_agent: User agent string sent by every context
        bypass_csp: Whether contexts bypass Content-Security-Policy
        prefer_system_chrome: In headed mode, try the installed Chrome
                             before Playwright's bundled Chromium
    """

    headless: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    timeout_ms: int = 30000
    user_agent: str = DEFAULT_USER_AGENT
    bypass_csp: bool = False
    prefer_system_chrome: bool = True

    @field_validator("viewport_width", "viewport_height", "timeout_ms")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate sizes and timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        """Validate user_agent is non-empty."""
        if not v or v.isspace():
            raise ValueError("user_agent cannot be empty")
        return v


class OutputSettings(BaseModel):
    """
    Rendering preferences for prompt results.

    Attributes:
        format: Output format - "table", "json" or "markdown"
        include_timestamp: Show completion timestamps
        include_response_time: Show per-service response times
        max_content_length: Truncate content in tables (0 for unlimited)
    """

    format: Literal["table", "json", "markdown"] = "table"
    include_timestamp: bool = True
    include_response_time: bool = True
    max_content_length: int = 500

    @field_validator("max_content_length")
    @classmethod
    def validate_max_content_length(cls, v: int) -> int:
        """Validate max_content_length is non-negative."""
        if v < 0:
            raise ValueError(f"max_content_length must be >= 0, got: {v}")
        return v


class MultiAIConfig(BaseModel):
    """
    Root configuration model for config.yaml.

    Read once before building agents. Missing keys fall back to defaults,
    so an empty or absent file is a valid configuration.

    Attributes:
        services: Default services when none are given on the command line
        browser: Browser launch and context preferences
        output: Rendering preferences
        response_timeout_ms: Per-prompt bound for each agent
        max_concurrent: Maximum agents prompting at the same time (1-20)
        login_timeout_s: Ceiling for interactive login detection
        login_poll_interval_s: Seconds between login checks

    Example:
        services:
          - chatgpt
          - claude
        browser:
          headless: false
        response_timeout_ms: 90000
    """

    services: list[str] = ["chatgpt", "claude", "gemini"]
    browser: BrowserSettings = BrowserSettings()
    output: OutputSettings = OutputSettings()
    response_timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    login_timeout_s: float = LOGIN_TIMEOUT_S
    login_poll_interval_s: float = LOGIN_POLL_INTERVAL_S

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: list[str]) -> list[str]:
        """
        Normalize service names and reject unknown or duplicate entries.

        Raises:
            ValueError: If the list is empty, has duplicates or unknown names
        """
        # Imported here: the services package imports this module
        from ..services.descriptors import available_services

        cleaned = [s.strip().lower() for s in v if s and not s.isspace()]
        if not cleaned:
            raise ValueError("At least one service must be configured")

        known = available_services()
        unknown = [s for s in cleaned if s not in known]
        if unknown:
            raise ValueError(
                f"Unknown services: {', '.join(unknown)}. "
                f"Available services: {', '.join(known)}"
            )

        if len(cleaned) != len(set(cleaned)):
            duplicates = sorted({s for s in cleaned if cleaned.count(s) > 1})
            raise ValueError(f"Duplicate services found: {duplicates}")

        return cleaned

    @field_validator("response_timeout_ms")
    @classmethod
    def validate_response_timeout(cls, v: int) -> int:
        """Validate response_timeout_ms is positive."""
        if v <= 0:
            raise ValueError(f"response_timeout_ms must be positive, got: {v}")
        return v

    @field_validator("max_concurrent")
    @classmethod
    def validate_max_concurrent(cls, v: int) -> int:
        """
        Validate max_concurrent is within safe limits.

        Each agent drives its own page; beyond ~20 pages a single Chromium
        process becomes the bottleneck.
        """
        if not 1 <= v <= 20:
            raise ValueError(f"max_concurrent must be between 1 and 20 (got: {v})")
        return v

    @field_validator("login_timeout_s", "login_poll_interval_s")
    @classmethod
    def validate_login_timing(cls, v: float) -> float:
        """Validate login timings are positive."""
        if v <= 0:
            raise ValueError(f"Login timing must be positive, got: {v}")
        return v
