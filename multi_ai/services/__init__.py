"""
Service automation for multi-ai.

This package turns a prompt and a list of service names into one
PromptResult per service:

- ServiceDescriptor table (URLs and selectors for each chat service)
- ServiceAgent (one class, parameterized by a descriptor)
- AgentFactory / build_agents (name → agent, validated up front)
- Dispatcher / dispatch (parallel two-phase execution)
- CancelToken (batch-wide cancellation)

Example:
    >>> from multi_ai.browser import BrowserManager
    >>> from multi_ai.services import build_agents, dispatch
    >>>
    >>> async with BrowserManager() as manager:
    ...     agents = build_agents(manager, ["chatgpt", "claude"])
    ...     results = await dispatch("What is 2+2?", agents, timeout_ms=60_000)
"""

from .agent import AgentState, AgentTimings, ServiceAgent
from .cancel import CancelToken
from .descriptors import (
    SERVICE_DESCRIPTORS,
    ServiceDescriptor,
    available_services,
    get_descriptor,
)
from .dispatcher import Dispatcher, dispatch
from .factory import AgentFactory, build_agents
from .login import LoginDetector, LoginObservation

__all__ = [
    # Descriptors
    "SERVICE_DESCRIPTORS",
    "ServiceDescriptor",
    "available_services",
    "get_descriptor",
    # Agents
    "AgentState",
    "AgentTimings",
    "ServiceAgent",
    "LoginDetector",
    "LoginObservation",
    # Orchestration
    "AgentFactory",
    "build_agents",
    "Dispatcher",
    "dispatch",
    "CancelToken",
]
