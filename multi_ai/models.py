"""
Core data types for multi-ai.

This module defines the values that flow between the caller, the agents and
the browser manager:

- ResponseStatus: Outcome of one agent's prompt ("success" | "error" | "timeout")
- CookieRecord: One browser cookie, as supplied by the cookie store
- PromptResult: Immutable per-agent outcome of one prompt
- filter_live_cookies(): Drop expired cookies before injection

PromptResult is the explicit result-or-error value returned at the agent
boundary. An agent never raises out of send_prompt(); failures are carried
in-band through ``status`` and ``error`` so the dispatcher can aggregate
results without exception handling on the happy path.

Example:
    >>> result = PromptResult.success("chatgpt", "4", response_time_ms=812)
    >>> result.ok
    True
    >>> PromptResult.failure("claude", "Element not found: textarea", 30012).status
    <ResponseStatus.ERROR: 'error'>
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils.time import epoch_seconds, utc_timestamp


class ResponseStatus(str, Enum):
    """Outcome of a single agent's prompt."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class CookieRecord(BaseModel):
    """
    A browser cookie as stored by the cookie store.

    Field names follow Python conventions; the camelCase spellings used by
    browser exports (httpOnly, sameSite, expiration) are accepted as
    aliases so JSON exported from browser extensions validates directly.

    Attributes:
        name: Cookie name
        value: Cookie value (secret, never logged)
        domain: Domain the cookie belongs to
        path: Path the cookie is valid for (default "/")
        expires: Unix time in seconds, or None for a session cookie
        http_only: Whether the cookie is HTTP-only
        secure: Whether the cookie is HTTPS-only
        same_site: SameSite attribute
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    value: str
    domain: str
    path: str = "/"
    expires: float | None = Field(
        default=None,
        validation_alias=AliasChoices("expires", "expiration", "expirationDate"),
    )
    http_only: bool = Field(
        default=False, validation_alias=AliasChoices("http_only", "httpOnly")
    )
    secure: bool = False
    same_site: Literal["Strict", "Lax", "None"] | None = Field(
        default=None, validation_alias=AliasChoices("same_site", "sameSite")
    )

    @field_validator("expires", mode="before")
    @classmethod
    def validate_expires(cls, v):
        """Treat 0 and negative expiry (Netscape "session") as no expiry."""
        if v is None or v == "":
            return None
        v = float(v)
        return v if v > 0 else None

    @field_validator("same_site", mode="before")
    @classmethod
    def validate_same_site(cls, v):
        """Normalize browser-export spellings (no_restriction, lax, strict)."""
        if v is None:
            return None
        mapping = {
            "strict": "Strict",
            "lax": "Lax",
            "none": "None",
            "no_restriction": "None",
            "unspecified": None,
        }
        return mapping.get(str(v).lower(), v)

    def is_expired(self, now: float | None = None) -> bool:
        """
        Check whether this cookie has expired.

        Session cookies (no ``expires``) never expire here.

        Args:
            now: Unix time to compare against (defaults to current time)

        Returns:
            bool: True only if ``expires`` is set and strictly earlier than ``now``
        """
        if self.expires is None:
            return False
        if now is None:
            now = epoch_seconds()
        return self.expires < now

    def to_playwright(self) -> dict:
        """
        Convert to the dict shape accepted by BrowserContext.add_cookies().

        Returns:
            dict: Cookie in Playwright's format
        """
        cookie = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path or "/",
            "httpOnly": self.http_only,
            "secure": self.secure,
            "sameSite": self.same_site or ("None" if self.secure else "Lax"),
        }
        if self.expires is not None:
            cookie["expires"] = self.expires
        return cookie


def filter_live_cookies(
    cookies: Iterable[CookieRecord] | None, now: float | None = None
) -> list[CookieRecord]:
    """
    Drop expired cookies, keeping session cookies.

    Args:
        cookies: Cookies to filter (None is treated as empty)
        now: Unix time to compare against (defaults to current time)

    Returns:
        list[CookieRecord]: Cookies that are not expired, in input order

    Example:
        >>> now = 1_700_000_000
        >>> cookies = [
        ...     CookieRecord(name="a", value="1", domain="x", expires=now - 100),
        ...     CookieRecord(name="b", value="2", domain="x", expires=now + 3600),
        ...     CookieRecord(name="c", value="3", domain="x"),
        ... ]
        >>> [c.name for c in filter_live_cookies(cookies, now=now)]
        ['b', 'c']
    """
    if not cookies:
        return []
    if now is None:
        now = epoch_seconds()
    return [cookie for cookie in cookies if not cookie.is_expired(now)]


@dataclass(frozen=True)
class PromptResult:
    """
    Outcome of one agent handling one prompt.

    Created exactly once per agent per prompt and never mutated. This is
    the unit the dispatcher aggregates and the CLI renders.

    Attributes:
        service_name: Service that produced this result
        content: Extracted response text ("" unless status is success)
        status: success, error or timeout
        error: Error message when status is not success
        response_time_ms: Wall-clock time spent in send_prompt()
        timestamp_utc: UTC timestamp of completion (ISO 8601 with 'Z' suffix)

    Example:
        >>> PromptResult.failure("grok", 'Service "grok" timed out after 50ms', 51,
        ...                      status=ResponseStatus.TIMEOUT).status.value
        'timeout'
    """

    service_name: str
    content: str
    status: ResponseStatus
    error: str | None = None
    response_time_ms: int = 0
    timestamp_utc: str = field(default_factory=utc_timestamp)

    @classmethod
    def success(
        cls, service_name: str, content: str, response_time_ms: int
    ) -> "PromptResult":
        """Build a successful result."""
        return cls(
            service_name=service_name,
            content=content,
            status=ResponseStatus.SUCCESS,
            response_time_ms=response_time_ms,
        )

    @classmethod
    def failure(
        cls,
        service_name: str,
        error: str,
        response_time_ms: int = 0,
        status: ResponseStatus = ResponseStatus.ERROR,
    ) -> "PromptResult":
        """Build an error or timeout result with empty content."""
        if status is ResponseStatus.SUCCESS:
            raise ValueError("failure() cannot build a successful result")
        return cls(
            service_name=service_name,
            content="",
            status=status,
            error=error,
            response_time_ms=response_time_ms,
        )

    @property
    def ok(self) -> bool:
        """Return True if the prompt succeeded."""
        return self.status is ResponseStatus.SUCCESS

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict (status rendered as its string value)."""
        data = asdict(self)
        data["status"] = self.status.value
        return data
