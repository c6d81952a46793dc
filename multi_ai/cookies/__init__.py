"""Cookie import and storage for multi-ai."""

from .store import (
    CookieStore,
    default_cookies_path,
    parse_json_cookies,
    parse_netscape_cookies,
)

__all__ = [
    "CookieStore",
    "default_cookies_path",
    "parse_json_cookies",
    "parse_netscape_cookies",
]
