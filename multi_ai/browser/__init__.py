"""
Browser resource management for multi-ai.

Example:
    >>> from multi_ai.browser import BrowserManager
    >>> async with BrowserManager() as manager:
    ...     page = await manager.create_or_get_page("claude-context", "claude-page")
"""

from .manager import BrowserManager
from .stealth import STEALTH_INIT_SCRIPT, apply_stealth

__all__ = [
    "BrowserManager",
    "STEALTH_INIT_SCRIPT",
    "apply_stealth",
]
