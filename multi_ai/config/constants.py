"""
Configuration constants for multi-ai.

This module contains global constants used across the application
to avoid tight coupling between modules.
"""

# Bounded wait for the DOMContentLoaded signal when opening a service page
NAVIGATION_TIMEOUT_MS = 30_000

# Bounded wait for the ready (or input) selector after navigation
READY_TIMEOUT_MS = 30_000

# Interactive login is a one-time event, so it gets its own ceiling that is
# independent of the per-prompt response budget
LOGIN_TIMEOUT_S = 300.0
LOGIN_POLL_INTERVAL_S = 2.0

# Loading indicators often never render for short replies
LOADING_APPEAR_TIMEOUT_MS = 5_000

# Upper bound for the lightweight is_ready() health probe
HEALTH_CHECK_TIMEOUT_MS = 5_000

DEFAULT_RESPONSE_TIMEOUT_MS = 60_000
DEFAULT_MAX_CONCURRENT = 7
