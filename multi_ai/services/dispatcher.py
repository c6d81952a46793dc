"""
Parallel dispatch of one prompt to many agents.

The dispatcher runs in two phases:

1. Initialize every agent concurrently. Failures are captured per agent
   (asyncio.gather with return_exceptions=True), so one service that can't
   load never stops the others from logging in.
2. Send the prompt through every agent that initialized, bounded by an
   asyncio.Semaphore. Agents whose initialization failed get a synthetic
   error result instead. cleanup() always runs.

There are no retries: a failed service is reported once and the batch
moves on.

Example:
    >>> agents = build_agents(manager, ["chatgpt", "claude", "gemini"])
    >>> results = await Dispatcher(max_concurrent=7).run("What is 2+2?", agents, 60_000)
    >>> [r.service_name for r in results]
    ['chatgpt', 'claude', 'gemini']
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

from ..config.constants import DEFAULT_MAX_CONCURRENT, DEFAULT_RESPONSE_TIMEOUT_MS
from ..exceptions import ServiceTimeoutError
from ..models import PromptResult, ResponseStatus
from .agent import ServiceAgent
from .cancel import CancelToken

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Sends one prompt to a list of agents with bounded concurrency.

    Attributes:
        max_concurrent: Maximum agents prompting at the same time
    """

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got: {max_concurrent}")
        self.max_concurrent = max_concurrent

    async def run(
        self,
        prompt: str,
        agents: Sequence[ServiceAgent],
        timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS,
        *,
        cancel: CancelToken | None = None,
    ) -> list[PromptResult]:
        """
        Send ``prompt`` to every agent and wait for all of them.

        Args:
            prompt: Prompt text
            agents: Agents to use (typically from build_agents())
            timeout_ms: Per-agent response bound
            cancel: Token shared by the whole batch

        Returns:
            list[PromptResult]: One result per agent, in the same order as
                ``agents``. Never raises for per-agent failures.
        """
        if not agents:
            return []

        logger.info(
            f"Dispatching prompt to {len(agents)} services "
            f"(max {self.max_concurrent} concurrent, timeout {timeout_ms}ms)"
        )
        init_outcomes = await self._initialize_all(agents, cancel)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        results = await asyncio.gather(
            *(
                self._prompt_one(semaphore, agent, outcome, prompt, timeout_ms, cancel)
                for agent, outcome in zip(agents, init_outcomes)
            )
        )
        self._log_summary(results)
        return list(results)

    async def stream(
        self,
        prompt: str,
        agents: Sequence[ServiceAgent],
        timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS,
        *,
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[tuple[int, PromptResult]]:
        """
        Like run(), but yield ``(index, result)`` as each agent finishes.

        ``index`` is the agent's position in ``agents``. Closing the
        generator early cancels the agents that are still working.

        Example:
            >>> async for index, result in dispatcher.stream(prompt, agents):
            ...     print(agents[index].service_name, result.status.value)
        """
        if not agents:
            return

        init_outcomes = await self._initialize_all(agents, cancel)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def indexed(index: int, agent: ServiceAgent, outcome):
            result = await self._prompt_one(
                semaphore, agent, outcome, prompt, timeout_ms, cancel
            )
            return index, result

        tasks = [
            asyncio.ensure_future(indexed(i, agent, outcome))
            for i, (agent, outcome) in enumerate(zip(agents, init_outcomes))
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _initialize_all(
        self, agents: Sequence[ServiceAgent], cancel: CancelToken | None
    ) -> list:
        async def init_one(agent: ServiceAgent):
            # initialize() may raise before returning an awaitable
            try:
                return await agent.initialize(cancel)
            except Exception as e:
                return e

        outcomes = await asyncio.gather(
            *(init_one(agent) for agent in agents), return_exceptions=True
        )
        for agent, outcome in zip(agents, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    f"{agent.service_name}: initialization failed: {outcome}"
                )
        return outcomes

    async def _prompt_one(
        self,
        semaphore: asyncio.Semaphore,
        agent: ServiceAgent,
        init_outcome,
        prompt: str,
        timeout_ms: int,
        cancel: CancelToken | None,
    ) -> PromptResult:
        try:
            if isinstance(init_outcome, BaseException):
                return self._init_failure(agent, init_outcome, cancel)

            async with semaphore:
                return await agent.send_prompt(prompt, timeout_ms, cancel=cancel)
        except Exception as e:
            logger.error(
                f"{agent.service_name}: unexpected error while prompting: {e}",
                exc_info=True,
            )
            return PromptResult.failure(agent.service_name, str(e))
        finally:
            agent.cleanup()

    @staticmethod
    def _init_failure(
        agent: ServiceAgent, error: BaseException, cancel: CancelToken | None
    ) -> PromptResult:
        timed_out = isinstance(error, ServiceTimeoutError) or (
            cancel is not None and cancel.expired
        )
        return PromptResult.failure(
            agent.service_name,
            str(error) or type(error).__name__,
            status=ResponseStatus.TIMEOUT if timed_out else ResponseStatus.ERROR,
        )

    @staticmethod
    def _log_summary(results: Sequence[PromptResult]) -> None:
        success_count = sum(1 for r in results if r.ok)
        logger.info(
            f"Dispatch complete: {success_count}/{len(results)} services succeeded"
        )


async def dispatch(
    prompt: str,
    agents: Sequence[ServiceAgent],
    timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS,
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    cancel: CancelToken | None = None,
) -> list[PromptResult]:
    """Send ``prompt`` to ``agents`` with a one-off Dispatcher."""
    dispatcher = Dispatcher(max_concurrent=max_concurrent)
    return await dispatcher.run(prompt, agents, timeout_ms, cancel=cancel)
