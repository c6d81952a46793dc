"""
Agent factory.

Maps service names to ServiceAgent instances wired to a shared
BrowserManager. All names are validated before any agent is built, so an
unknown service aborts the batch before the browser does any work.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence

from ..browser.manager import BrowserManager
from ..exceptions import ConfigValidationError, UnknownServiceError
from ..models import CookieRecord
from .agent import AgentTimings, ServiceAgent
from .descriptors import SERVICE_DESCRIPTORS, ServiceDescriptor

logger = logging.getLogger(__name__)


class AgentFactory:
    """
    Builds agents for a list of service names.

    Attributes:
        manager: Browser manager every built agent shares
        descriptors: Name → descriptor table (defaults to the built-ins)
        timings: Wait bounds passed to every agent

    Example:
        >>> factory = AgentFactory(manager)
        >>> [a.context_id for a in factory.build(["ChatGPT", " claude "])]
        ['chatgpt-context', 'claude-context']
    """

    def __init__(
        self,
        manager: BrowserManager,
        descriptors: Mapping[str, ServiceDescriptor] | None = None,
        timings: AgentTimings | None = None,
    ):
        self.manager = manager
        self.descriptors = dict(descriptors or SERVICE_DESCRIPTORS)
        self.timings = timings

    def available(self) -> list[str]:
        """Return the service names this factory can build."""
        return list(self.descriptors)

    def build(
        self,
        service_names: Iterable[str],
        cookies_by_service: Mapping[str, Sequence[CookieRecord]] | None = None,
    ) -> list[ServiceAgent]:
        """
        Create one agent per service name, in input order.

        Args:
            service_names: Names to build (case and surrounding whitespace
                are ignored)
            cookies_by_service: Cookies to inject, keyed by service name

        Returns:
            list[ServiceAgent]: One agent per name

        Raises:
            UnknownServiceError: If any name has no descriptor (nothing is
                built in that case)
            ConfigValidationError: If a name appears twice; both agents
                would drive the same page
        """
        names = [name.strip().lower() for name in service_names]
        for name in names:
            if name not in self.descriptors:
                raise UnknownServiceError(name, self.available())
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigValidationError(
                f"Duplicate services: {', '.join(duplicates)}"
            )

        cookies_by_service = cookies_by_service or {}
        agents = [
            ServiceAgent(
                self.descriptors[name],
                self.manager,
                context_id=f"{name}-context",
                cookies=cookies_by_service.get(name),
                timings=self.timings,
            )
            for name in names
        ]
        logger.debug(f"Built {len(agents)} agents: {', '.join(names)}")
        return agents


def build_agents(
    manager: BrowserManager,
    service_names: Iterable[str],
    cookies_by_service: Mapping[str, Sequence[CookieRecord]] | None = None,
    *,
    descriptors: Mapping[str, ServiceDescriptor] | None = None,
    timings: AgentTimings | None = None,
) -> list[ServiceAgent]:
    """
    Build agents with a one-off AgentFactory.

    Raises:
        UnknownServiceError: If any name has no descriptor
        ConfigValidationError: If a name appears twice
    """
    factory = AgentFactory(manager, descriptors=descriptors, timings=timings)
    return factory.build(service_names, cookies_by_service)
